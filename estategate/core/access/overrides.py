from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from estategate.core.access.permissions import (
    ObjectPermission,
    ObjectPermissionResolver,
    permission_field_for_action,
)
from estategate.core.context import request_cached
from estategate.core.repositories.catalog import ButtonRepository, NavigationItemRepository
from estategate.core.repositories.profiles import (
    ProfileButtonRepository,
    ProfileNavigationItemRepository,
    ProfileObjectPermissionRepository,
    ProfileRepository,
)

logger = logging.getLogger(__name__)

OverrideKind = Literal["button", "navigation"]


@dataclass(slots=True, frozen=True)
class ButtonOverride:
    is_enabled: bool = False
    is_visible: bool = False
    custom_label: str | None = None
    custom_icon: str | None = None


@dataclass(slots=True, frozen=True)
class NavigationOverride:
    is_enabled: bool = False
    is_visible: bool = False
    custom_sort_order: int | None = None


CLOSED_BUTTON = ButtonOverride()
CLOSED_NAVIGATION = NavigationOverride()


@dataclass(slots=True)
class ProfileOverrides:
    buttons: dict[UUID, ButtonOverride] = field(default_factory=dict)
    navigation_items: dict[UUID, NavigationOverride] = field(default_factory=dict)

    def button(self, button_id: UUID) -> ButtonOverride:
        return self.buttons.get(button_id, CLOSED_BUTTON)

    def navigation_item(self, navigation_item_id: UUID) -> NavigationOverride:
        return self.navigation_items.get(navigation_item_id, CLOSED_NAVIGATION)


class OverrideResolver:
    def __init__(
        self,
        buttons: ProfileButtonRepository,
        navigation_items: ProfileNavigationItemRepository,
    ) -> None:
        self.buttons = buttons
        self.navigation_items = navigation_items

    async def overrides_for(self, profile_id: UUID | None) -> ProfileOverrides:
        if profile_id is None:
            return ProfileOverrides()
        return await request_cached(("profile_overrides", profile_id), lambda: self._overrides_for(profile_id))

    async def _overrides_for(self, profile_id: UUID) -> ProfileOverrides:
        button_rows = await self.buttons.list_for_profile(profile_id)
        navigation_rows = await self.navigation_items.list_for_profile(profile_id)
        return ProfileOverrides(
            buttons={
                row.button_id: ButtonOverride(
                    is_enabled=row.is_enabled is True,
                    is_visible=row.is_visible is True,
                    custom_label=row.custom_label,
                    custom_icon=row.custom_icon,
                )
                for row in button_rows
            },
            navigation_items={
                row.navigation_item_id: NavigationOverride(
                    is_enabled=row.is_enabled is True,
                    is_visible=row.is_visible is True,
                    custom_sort_order=row.custom_sort_order,
                )
                for row in navigation_rows
            },
        )


@dataclass(slots=True)
class SyncFailure:
    kind: OverrideKind
    profile_id: UUID
    target_id: UUID
    error: str


@dataclass(slots=True)
class SyncReport:
    profiles: int = 0
    upserted: int = 0
    skipped: int = 0
    failures: list[SyncFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


@dataclass(slots=True, frozen=True)
class _Upsert:
    kind: OverrideKind
    profile_id: UUID
    target_id: UUID
    enabled: bool


def should_enable(permission: ObjectPermission, action: str) -> bool:
    field_name = permission_field_for_action(action)
    return getattr(permission, field_name) is True


class OverrideSynchronizer:
    """Recompute button and navigation overrides from the permission matrix.

    Every (profile, target) pair whose object type has a permission row is
    written with ``is_enabled = is_visible = should_enable``. Manual changes to
    those two flags are overwritten; custom labels, icons and sort orders are
    left alone. Each upsert runs in its own session so a failure only leaves
    that one row stale.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        max_concurrency: int = 16,
    ) -> None:
        self.session_factory = session_factory
        self.max_concurrency = max(1, max_concurrency)

    async def synchronize(self, profile_id: UUID | None = None) -> SyncReport:
        report = SyncReport()
        upserts = await self._plan(profile_id, report)
        if not upserts:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run(item: _Upsert) -> None:
            async with semaphore:
                try:
                    await self._apply(item)
                except Exception as exc:
                    logger.warning(
                        "Override upsert failed kind=%s profile_id=%s target_id=%s error=%s",
                        item.kind,
                        item.profile_id,
                        item.target_id,
                        exc,
                    )
                    report.failures.append(
                        SyncFailure(
                            kind=item.kind,
                            profile_id=item.profile_id,
                            target_id=item.target_id,
                            error=str(exc),
                        )
                    )
                    return
                report.upserted += 1

        await asyncio.gather(*(_run(item) for item in upserts))
        logger.info(
            "Override sync finished profiles=%s upserted=%s skipped=%s failed=%s",
            report.profiles,
            report.upserted,
            report.skipped,
            len(report.failures),
        )
        return report

    async def _plan(self, profile_id: UUID | None, report: SyncReport) -> list[_Upsert]:
        async with self.session_factory() as session:
            profiles = ProfileRepository(session)
            if profile_id is None:
                profile_ids = [profile.id for profile in await profiles.list_active()]
            else:
                profile_ids = [profile_id]

            buttons = await ButtonRepository(session).list_active()
            navigation_items = await NavigationItemRepository(session).list_active()
            permission_resolver = ObjectPermissionResolver(ProfileObjectPermissionRepository(session))

            upserts: list[_Upsert] = []
            for current_profile_id in profile_ids:
                report.profiles += 1
                matrix = await permission_resolver.permissions_for(current_profile_id)

                for button in buttons:
                    permission = matrix.get(button.object_type)
                    if permission is None:
                        report.skipped += 1
                        continue
                    upserts.append(
                        _Upsert("button", current_profile_id, button.id, should_enable(permission, button.action))
                    )

                for item in navigation_items:
                    permission = matrix.get(item.object_type) if item.object_type else None
                    if permission is None:
                        report.skipped += 1
                        continue
                    upserts.append(
                        _Upsert("navigation", current_profile_id, item.id, should_enable(permission, item.action))
                    )

        return upserts

    async def _apply(self, item: _Upsert) -> None:
        async with self.session_factory() as session:
            if item.kind == "button":
                await ProfileButtonRepository(session).set_state(
                    item.profile_id, item.target_id, enabled=item.enabled
                )
            else:
                await ProfileNavigationItemRepository(session).set_state(
                    item.profile_id, item.target_id, enabled=item.enabled
                )
            await session.commit()
