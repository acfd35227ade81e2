from estategate.core.repositories.base import LookupFailure, Repository
from estategate.core.repositories.billing import FeatureRepository, PlanRepository, SubscriptionRepository
from estategate.core.repositories.catalog import ButtonRepository, NavigationItemRepository
from estategate.core.repositories.organizations import OrganizationRepository, UserRepository
from estategate.core.repositories.profiles import (
    ProfileButtonRepository,
    ProfileNavigationItemRepository,
    ProfileObjectPermissionRepository,
    ProfileRepository,
)

__all__ = [
    "LookupFailure",
    "Repository",
    "OrganizationRepository",
    "UserRepository",
    "SubscriptionRepository",
    "PlanRepository",
    "FeatureRepository",
    "ProfileRepository",
    "ProfileObjectPermissionRepository",
    "ProfileButtonRepository",
    "ProfileNavigationItemRepository",
    "ButtonRepository",
    "NavigationItemRepository",
]
