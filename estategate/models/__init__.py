from estategate.models.base import Base, EntityBase, OrganizationScopedBase, TimestampedBase
from estategate.models.catalog import Button, NavigationItem, ProfileButton, ProfileNavigationItem
from estategate.models.organization import Organization
from estategate.models.plan import Feature, Plan
from estategate.models.profile import Profile, ProfileObjectPermission
from estategate.models.subscription import Subscription
from estategate.models.user import User

__all__ = [
    "Base",
    "TimestampedBase",
    "EntityBase",
    "OrganizationScopedBase",
    "Organization",
    "User",
    "Subscription",
    "Plan",
    "Feature",
    "Profile",
    "ProfileObjectPermission",
    "Button",
    "NavigationItem",
    "ProfileButton",
    "ProfileNavigationItem",
]
