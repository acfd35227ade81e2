from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from estategate.core.context import request_cached
from estategate.core.repositories.organizations import UserRepository
from estategate.core.repositories.profiles import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AdminClassification:
    is_super_admin: bool = False
    is_global_admin: bool = False


NOT_ADMIN = AdminClassification()


class AdminRegistry(Protocol):
    async def is_super_admin(self, user_id: UUID) -> bool: ...

    async def is_global_admin(self, user_id: UUID) -> bool: ...


class DatabaseAdminRegistry:
    """Platform-admin registry backed by the ``users`` and ``profiles`` tables.

    A super admin carries ``users.is_super_admin`` or has an identity-provider
    subject listed in ``SUPER_ADMIN_SUBJECTS_CSV``. A global admin is assigned
    the organization-less profile named ``global_profile_name``.
    """

    def __init__(
        self,
        users: UserRepository,
        profiles: ProfileRepository,
        *,
        super_admin_subjects: Iterable[str] = (),
        global_profile_name: str = "Global Administrator",
    ) -> None:
        self.users = users
        self.profiles = profiles
        self.super_admin_subjects = frozenset(super_admin_subjects)
        self.global_profile_name = global_profile_name

    async def is_super_admin(self, user_id: UUID) -> bool:
        user = await self.users.get(user_id)
        if user is None:
            return False
        return user.is_super_admin is True or user.subject in self.super_admin_subjects

    async def is_global_admin(self, user_id: UUID) -> bool:
        user = await self.users.get(user_id)
        if user is None or user.profile_id is None:
            return False
        profile = await self.profiles.get(user.profile_id)
        if profile is None:
            return False
        return profile.name == self.global_profile_name and profile.organization_id is None


class SuperAdminClassifier:
    def __init__(self, registry: AdminRegistry) -> None:
        self.registry = registry

    async def classify(self, user_id: UUID | None) -> AdminClassification:
        if user_id is None:
            return NOT_ADMIN
        return await request_cached(("admin_classification", user_id), lambda: self._classify(user_id))

    async def _classify(self, user_id: UUID) -> AdminClassification:
        # Elevated privilege is never granted on a failed lookup.
        try:
            is_super_admin = await self.registry.is_super_admin(user_id)
        except Exception:
            logger.exception("Super-admin lookup failed user_id=%s", user_id)
            is_super_admin = False

        try:
            is_global_admin = await self.registry.is_global_admin(user_id)
        except Exception:
            logger.exception("Global-admin lookup failed user_id=%s", user_id)
            is_global_admin = False

        return AdminClassification(
            is_super_admin=is_super_admin is True,
            is_global_admin=is_global_admin is True,
        )
