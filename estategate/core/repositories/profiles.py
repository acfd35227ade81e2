from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.repositories.base import Repository
from estategate.models.catalog import ProfileButton, ProfileNavigationItem
from estategate.models.profile import Profile, ProfileObjectPermission


class ProfileRepository(Repository[Profile]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=Profile)

    async def list_active(self) -> list[Profile]:
        return await self.list_by(is_active=True)


class ProfileObjectPermissionRepository(Repository[ProfileObjectPermission]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=ProfileObjectPermission)

    async def list_for_profile(self, profile_id: UUID) -> list[ProfileObjectPermission]:
        return await self.list_by(profile_id=profile_id)


class ProfileButtonRepository(Repository[ProfileButton]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=ProfileButton)

    async def list_for_profile(self, profile_id: UUID) -> list[ProfileButton]:
        return await self.list_by(profile_id=profile_id)

    async def set_state(self, profile_id: UUID, button_id: UUID, *, enabled: bool) -> None:
        await self.upsert(
            {
                "profile_id": profile_id,
                "button_id": button_id,
                "is_enabled": enabled,
                "is_visible": enabled,
            },
            conflict_columns=("profile_id", "button_id"),
            update_columns=("is_enabled", "is_visible", "updated_at"),
        )


class ProfileNavigationItemRepository(Repository[ProfileNavigationItem]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=ProfileNavigationItem)

    async def list_for_profile(self, profile_id: UUID) -> list[ProfileNavigationItem]:
        return await self.list_by(profile_id=profile_id)

    async def set_state(self, profile_id: UUID, navigation_item_id: UUID, *, enabled: bool) -> None:
        await self.upsert(
            {
                "profile_id": profile_id,
                "navigation_item_id": navigation_item_id,
                "is_enabled": enabled,
                "is_visible": enabled,
            },
            conflict_columns=("profile_id", "navigation_item_id"),
            update_columns=("is_enabled", "is_visible", "updated_at"),
        )
