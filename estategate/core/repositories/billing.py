from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.repositories.base import Repository
from estategate.models.plan import Feature, Plan
from estategate.models.subscription import Subscription


class SubscriptionRepository(Repository[Subscription]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Subscription)

    async def latest_for_organization(self, organization_id: UUID) -> Subscription | None:
        rows = await self.list_by(
            organization_id=organization_id,
            order_by=(Subscription.created_at.desc(), Subscription.id.desc()),
            limit=1,
        )
        return rows[0] if rows else None

    async def list_with_status(self, statuses: Iterable[str]) -> list[Subscription]:
        return await self.list_by(
            status=frozenset(statuses),
            order_by=(Subscription.created_at,),
        )

    async def get_by_provider_id(self, provider_subscription_id: str) -> Subscription | None:
        return await self.get_one_by(provider_subscription_id=provider_subscription_id)


class PlanRepository(Repository[Plan]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Plan)


class FeatureRepository(Repository[Feature]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Feature)

    async def get_active_by_key(self, key: str) -> Feature | None:
        return await self.get_one_by(key=key, is_active=True)

    async def active_keys(self) -> set[str]:
        return {feature.key for feature in await self.list_by(is_active=True)}
