from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

import requests
from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.access.permissions import BILLING_ADMIN_OBJECT_TYPE, ObjectPermissionResolver
from estategate.core.access.subscriptions import SubscriptionStatus
from estategate.core.config import settings
from estategate.core.repositories.billing import PlanRepository
from estategate.core.repositories.organizations import OrganizationRepository, UserRepository
from estategate.core.repositories.profiles import ProfileObjectPermissionRepository
from estategate.models.subscription import Subscription

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExpiryNotice:
    subscription_id: UUID
    organization_id: UUID
    organization_name: str
    plan_name: str
    expiration: datetime
    status: SubscriptionStatus
    recipients: list[str] = field(default_factory=list)

    def payload(self) -> dict[str, object]:
        return {
            "event_type": "subscription_lapsed",
            "subscription_id": str(self.subscription_id),
            "organization_id": str(self.organization_id),
            "organization_name": self.organization_name,
            "plan_name": self.plan_name,
            "expiration_date": self.expiration.date().isoformat(),
            "status": self.status.value,
            "recipients": self.recipients,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class NotificationDispatcher:
    """Hands messages to the mail relay webhook; delivery happens downstream."""

    def __init__(self, webhook_url: str | None = None) -> None:
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url

    async def dispatch(self, payload: dict[str, object]) -> None:
        if not self.webhook_url:
            raise ValueError("Notification webhook is not configured")

        def _post() -> None:
            response = requests.post(self.webhook_url, json=payload, timeout=10)
            response.raise_for_status()

        await asyncio.to_thread(_post)


class ExpiryNotifier:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher or NotificationDispatcher()

    async def notify(
        self,
        subscription: Subscription,
        expiration: datetime,
        status_value: SubscriptionStatus,
    ) -> int:
        """Tell the organization's billing admins that the subscription lapsed.

        Returns the number of recipients the message was addressed to.
        """
        notice = await self._build_notice(subscription, expiration, status_value)
        if notice is None or not notice.recipients:
            logger.info(
                "No billing admin to notify organization_id=%s subscription_id=%s",
                subscription.organization_id,
                subscription.id,
            )
            return 0
        await self.dispatcher.dispatch(notice.payload())
        return len(notice.recipients)

    async def _build_notice(
        self,
        subscription: Subscription,
        expiration: datetime,
        status_value: SubscriptionStatus,
    ) -> ExpiryNotice | None:
        async with self.session_factory() as session:
            organization = await OrganizationRepository(session).get(subscription.organization_id)
            plan = await PlanRepository(session).get(subscription.plan_id)
            if organization is None or plan is None:
                return None

            permissions = ObjectPermissionResolver(ProfileObjectPermissionRepository(session))
            recipients: list[str] = []
            members = await UserRepository(session).list_organization_members(subscription.organization_id)
            for member in members:
                if not member.email or not member.email.strip():
                    continue
                permission = await permissions.permission_for(member.profile_id, BILLING_ADMIN_OBJECT_TYPE)
                if permission.can_edit:
                    recipients.append(member.email.strip())

        return ExpiryNotice(
            subscription_id=subscription.id,
            organization_id=subscription.organization_id,
            organization_name=organization.name or "Your organization",
            plan_name=plan.display_name or plan.name,
            expiration=expiration,
            status=status_value,
            recipients=recipients,
        )
