from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from estategate.core.context import request_cached
from estategate.core.repositories.billing import SubscriptionRepository
from estategate.core.repositories.organizations import OrganizationRepository
from estategate.models.subscription import Subscription


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    EXPIRED = "expired"

    @classmethod
    def parse(cls, value: str | None) -> SubscriptionStatus | None:
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class SubscriptionEvent(str, Enum):
    CHARGE_SUCCEEDED = "charge_succeeded"
    CHARGE_FAILED = "charge_failed"
    CANCELED = "canceled"
    GRACE_EXPIRED = "grace_expired"


ACTIVE_ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})
SWEEPABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)

_TRANSITIONS: dict[tuple[SubscriptionStatus, SubscriptionEvent], SubscriptionStatus] = {
    (SubscriptionStatus.TRIALING, SubscriptionEvent.CHARGE_SUCCEEDED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.TRIALING, SubscriptionEvent.CHARGE_FAILED): SubscriptionStatus.PAST_DUE,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.CHARGE_SUCCEEDED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.ACTIVE, SubscriptionEvent.CHARGE_FAILED): SubscriptionStatus.PAST_DUE,
    (SubscriptionStatus.PAST_DUE, SubscriptionEvent.CHARGE_SUCCEEDED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.PAST_DUE, SubscriptionEvent.CHARGE_FAILED): SubscriptionStatus.PAST_DUE,
    (SubscriptionStatus.UNPAID, SubscriptionEvent.CHARGE_SUCCEEDED): SubscriptionStatus.ACTIVE,
    (SubscriptionStatus.UNPAID, SubscriptionEvent.CHARGE_FAILED): SubscriptionStatus.UNPAID,
}
for _status in (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNPAID,
):
    _TRANSITIONS[(_status, SubscriptionEvent.CANCELED)] = SubscriptionStatus.CANCELED
    _TRANSITIONS[(_status, SubscriptionEvent.GRACE_EXPIRED)] = SubscriptionStatus.EXPIRED


class InvalidTransitionError(ValueError):
    def __init__(self, current: SubscriptionStatus | str | None, event: SubscriptionEvent) -> None:
        current_value = current.value if isinstance(current, SubscriptionStatus) else current
        super().__init__(f"No transition from {current_value} on {event.value}")
        self.current = current
        self.event = event


def next_status(current: SubscriptionStatus, event: SubscriptionEvent) -> SubscriptionStatus:
    """Apply a billing event to a subscription status.

    ``canceled`` and ``expired`` are terminal: reactivation creates a new
    subscription row instead of mutating the old one.
    """
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current, event) from None


def is_explicitly_true(value: Any) -> bool:
    return value is True


def effective_expiration(subscription: Subscription) -> datetime:
    if subscription.cancel_at_period_end:
        return subscription.current_period_end
    if subscription.end_date is not None:
        return subscription.end_date
    return subscription.current_period_end


def lapsed_status_for(subscription: Subscription) -> SubscriptionStatus:
    """Terminal status for a subscription whose grace window has passed."""
    if subscription.cancel_at_period_end or subscription.canceled_at is not None:
        return SubscriptionStatus.CANCELED
    return SubscriptionStatus.EXPIRED


@dataclass(slots=True)
class SubscriptionState:
    is_configured: bool
    subscription_status: SubscriptionStatus | None
    has_active_access: bool
    effective_plan_id: UUID | None
    subscription: Subscription | None = None


UNCONFIGURED = SubscriptionState(
    is_configured=False,
    subscription_status=None,
    has_active_access=False,
    effective_plan_id=None,
)


class SubscriptionStateResolver:
    def __init__(
        self,
        organizations: OrganizationRepository,
        subscriptions: SubscriptionRepository,
    ) -> None:
        self.organizations = organizations
        self.subscriptions = subscriptions

    async def resolve(self, organization_id: UUID | None) -> SubscriptionState:
        if organization_id is None:
            return UNCONFIGURED
        return await request_cached(
            ("subscription_state", organization_id),
            lambda: self._resolve(organization_id),
        )

    async def _resolve(self, organization_id: UUID) -> SubscriptionState:
        organization = await self.organizations.get(organization_id)
        if organization is None:
            return UNCONFIGURED

        is_configured = is_explicitly_true(organization.is_configured)
        subscription = await self.subscriptions.latest_for_organization(organization_id)
        if subscription is None:
            return SubscriptionState(
                is_configured=is_configured,
                subscription_status=None,
                has_active_access=False,
                effective_plan_id=None,
            )

        status_value = SubscriptionStatus.parse(subscription.status)
        return SubscriptionState(
            is_configured=is_configured,
            subscription_status=status_value,
            has_active_access=status_value in ACTIVE_ACCESS_STATUSES,
            effective_plan_id=subscription.plan_id,
            subscription=subscription,
        )
