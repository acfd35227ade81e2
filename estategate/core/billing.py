from __future__ import annotations

import logging
from uuid import UUID

import redis.asyncio as redis

from estategate.core.access.subscriptions import (
    ACTIVE_ACCESS_STATUSES,
    InvalidTransitionError,
    SubscriptionEvent,
    SubscriptionStatus,
    next_status,
)
from estategate.core.config import settings
from estategate.models.subscription import Subscription

logger = logging.getLogger(__name__)

PROVIDER_EVENTS: dict[str, SubscriptionEvent] = {
    "invoice.paid": SubscriptionEvent.CHARGE_SUCCEEDED,
    "invoice.payment_failed": SubscriptionEvent.CHARGE_FAILED,
    "customer.subscription.deleted": SubscriptionEvent.CANCELED,
}


def organization_status_channel(organization_id: UUID | str) -> str:
    return f"billing:organization_status:{organization_id}"


async def publish_organization_status(organization_id: UUID | str, active: bool) -> None:
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await redis_client.set(f"organization:active:{organization_id}", "1" if active else "0")
        await redis_client.publish(
            organization_status_channel(organization_id), "active" if active else "inactive"
        )
    finally:
        await redis_client.aclose()


def apply_subscription_event(subscription: Subscription, event: SubscriptionEvent) -> SubscriptionStatus:
    """Move ``subscription`` through the status state machine in place.

    Unknown stored statuses and terminal statuses raise
    :class:`InvalidTransitionError`; the row is left untouched.
    """
    current = SubscriptionStatus.parse(subscription.status)
    if current is None:
        raise InvalidTransitionError(subscription.status, event)
    new_status = next_status(current, event)
    if new_status != current:
        logger.info(
            "Subscription status change subscription_id=%s %s -> %s",
            subscription.id,
            current.value,
            new_status.value,
        )
    subscription.status = new_status.value
    return new_status


def grants_access(status_value: SubscriptionStatus) -> bool:
    return status_value in ACTIVE_ACCESS_STATUSES
