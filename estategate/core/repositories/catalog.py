from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.repositories.base import Repository
from estategate.models.catalog import Button, NavigationItem


class ButtonRepository(Repository[Button]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Button)

    async def get_active_by_key(self, key: str) -> Button | None:
        return await self.get_one_by(key=key, is_active=True)

    async def list_active(self) -> list[Button]:
        return await self.list_by(is_active=True, order_by=(Button.sort_order,))


class NavigationItemRepository(Repository[NavigationItem]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=NavigationItem)

    async def get_active_by_key(self, key: str) -> NavigationItem | None:
        return await self.get_one_by(key=key, is_active=True)

    async def list_active(self) -> list[NavigationItem]:
        return await self.list_by(is_active=True, order_by=(NavigationItem.sort_order,))
