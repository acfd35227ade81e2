from estategate.schemas.access import (
    AffordanceResponse,
    NavigationEntryResponse,
    ObjectActionResponse,
    RouteDecisionResponse,
    SubscriptionStateResponse,
)
from estategate.schemas.admin import (
    ButtonUpdateRequest,
    CatalogEntryResponse,
    NavigationItemUpdateRequest,
    OverrideSyncRequest,
    OverrideSyncResponse,
    PlanFeaturesResponse,
    PlanFeaturesUpdateRequest,
    SweepResponse,
)
from estategate.schemas.billing import BillingWebhookResponse

__all__ = [
    "RouteDecisionResponse",
    "ObjectActionResponse",
    "AffordanceResponse",
    "NavigationEntryResponse",
    "SubscriptionStateResponse",
    "OverrideSyncRequest",
    "OverrideSyncResponse",
    "SweepResponse",
    "PlanFeaturesUpdateRequest",
    "PlanFeaturesResponse",
    "ButtonUpdateRequest",
    "NavigationItemUpdateRequest",
    "CatalogEntryResponse",
    "BillingWebhookResponse",
]
