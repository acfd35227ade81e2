from estategate.core.access.admins import AdminClassification, AdminRegistry, SuperAdminClassifier
from estategate.core.access.engine import (
    AccessDecisionEngine,
    AccessSubject,
    AffordanceState,
    NavigationEntry,
    RouteDecision,
)
from estategate.core.access.overrides import OverrideSynchronizer, SyncReport
from estategate.core.access.subscriptions import SubscriptionState, SubscriptionStatus

__all__ = [
    "AccessDecisionEngine",
    "AccessSubject",
    "AdminClassification",
    "AdminRegistry",
    "AffordanceState",
    "NavigationEntry",
    "OverrideSynchronizer",
    "RouteDecision",
    "SubscriptionState",
    "SubscriptionStatus",
    "SuperAdminClassifier",
    "SyncReport",
]
