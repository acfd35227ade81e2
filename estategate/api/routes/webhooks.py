from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.access.subscriptions import InvalidTransitionError, SubscriptionEvent
from estategate.core.billing import (
    PROVIDER_EVENTS,
    apply_subscription_event,
    grants_access,
    publish_organization_status,
)
from estategate.core.config import settings
from estategate.core.db import get_db_session
from estategate.core.repositories.base import LookupFailure
from estategate.core.repositories.billing import SubscriptionRepository
from estategate.models.subscription import Subscription
from estategate.schemas.billing import BillingWebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _extract_provider_subscription_id(payload: dict) -> str | None:
    data = (payload.get("data") or {}).get("object") or {}
    if data.get("object") == "subscription":
        return data.get("id")
    subscription = data.get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("id")
    return subscription


def _extract_organization_id(payload: dict) -> UUID | None:
    data = (payload.get("data") or {}).get("object") or {}
    metadata = data.get("metadata") or {}
    raw = metadata.get("organization_id") or data.get("organization_id")
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def _verify_and_parse_event(raw_body: bytes, stripe_signature: str | None) -> dict:
    if settings.stripe_webhook_secret and not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Stripe signature",
        )

    if stripe_signature and settings.stripe_webhook_secret:
        try:
            stripe.Webhook.construct_event(
                payload=raw_body,
                sig_header=stripe_signature,
                secret=settings.stripe_webhook_secret,
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid Stripe signature: {exc}",
            ) from exc

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )
    return payload


async def _find_subscription(payload: dict, repository: SubscriptionRepository) -> Subscription | None:
    provider_id = _extract_provider_subscription_id(payload)
    if provider_id:
        subscription = await repository.get_by_provider_id(provider_id)
        if subscription is not None:
            return subscription

    organization_id = _extract_organization_id(payload)
    if organization_id is None:
        return None
    return await repository.latest_for_organization(organization_id)


@router.post("/billing", response_model=BillingWebhookResponse)
async def billing_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
) -> BillingWebhookResponse:
    raw_body = await request.body()
    payload = _verify_and_parse_event(raw_body, stripe_signature)
    event_type = payload.get("type", "unknown")

    event = PROVIDER_EVENTS.get(event_type)
    if event is None:
        return BillingWebhookResponse(received=True, event_type=event_type, updated=False)

    repository = SubscriptionRepository(session)
    subscription = await _find_subscription(payload, repository)
    if subscription is None:
        logger.info("Billing event for unknown subscription event_type=%s", event_type)
        return BillingWebhookResponse(received=True, event_type=event_type, updated=False)

    organization_id = str(subscription.organization_id)
    try:
        new_status = apply_subscription_event(subscription, event)
    except InvalidTransitionError:
        logger.warning(
            "Ignoring billing event for terminal subscription subscription_id=%s status=%s event_type=%s",
            subscription.id,
            subscription.status,
            event_type,
        )
        return BillingWebhookResponse(
            received=True,
            event_type=event_type,
            organization_id=organization_id,
            status=subscription.status,
            updated=False,
        )

    if event == SubscriptionEvent.CANCELED and subscription.canceled_at is None:
        subscription.canceled_at = datetime.now(timezone.utc)
    await session.commit()

    try:
        latest = await repository.latest_for_organization(subscription.organization_id)
    except LookupFailure:
        logger.exception("Latest subscription lookup failed organization_id=%s", organization_id)
    else:
        if latest is None or latest.id == subscription.id:
            await publish_organization_status(organization_id, active=grants_access(new_status))
        else:
            logger.info(
                "Skipping status publish for superseded subscription subscription_id=%s latest_id=%s",
                subscription.id,
                latest.id,
            )

    return BillingWebhookResponse(
        received=True,
        event_type=event_type,
        organization_id=organization_id,
        status=new_status.value,
        updated=True,
    )
