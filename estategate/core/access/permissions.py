from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from estategate.core.context import request_cached
from estategate.core.repositories.profiles import ProfileObjectPermissionRepository

PermissionField = Literal["can_create", "can_read", "can_edit", "can_delete"]

ACTION_PERMISSION_FIELDS: dict[str, PermissionField] = {
    "create": "can_create",
    "read": "can_read",
    "view": "can_read",
    "update": "can_edit",
    "edit": "can_edit",
    "delete": "can_delete",
    "export": "can_read",
    "import": "can_read",
    "print": "can_read",
    "custom": "can_read",
}

# Holding edit on this object type makes a user the organization's billing admin.
BILLING_ADMIN_OBJECT_TYPE = "Organization"


@dataclass(slots=True, frozen=True)
class ObjectPermission:
    can_create: bool = False
    can_read: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def allows(self, action: str) -> bool:
        field_name = permission_field_for_action(action, strict=True)
        if field_name is None:
            return False
        return getattr(self, field_name) is True


NO_PERMISSION = ObjectPermission()


def permission_field_for_action(action: str, *, strict: bool = False) -> PermissionField | None:
    """Map a catalog action onto the permission flag it is gated by.

    With ``strict`` an unknown action maps to ``None``; otherwise it falls back
    to ``can_read``, which is what button synchronization expects.
    """
    field_name = ACTION_PERMISSION_FIELDS.get((action or "").strip().lower())
    if field_name is None and not strict:
        return "can_read"
    return field_name


class ObjectPermissionResolver:
    def __init__(self, permissions: ProfileObjectPermissionRepository) -> None:
        self.permissions = permissions

    async def permissions_for(self, profile_id: UUID | None) -> dict[str, ObjectPermission]:
        if profile_id is None:
            return {}
        return await request_cached(
            ("object_permissions", profile_id),
            lambda: self._permissions_for(profile_id),
        )

    async def _permissions_for(self, profile_id: UUID) -> dict[str, ObjectPermission]:
        rows = await self.permissions.list_for_profile(profile_id)
        return {
            row.object_type: ObjectPermission(
                can_create=row.can_create is True,
                can_read=row.can_read is True,
                can_edit=row.can_edit is True,
                can_delete=row.can_delete is True,
            )
            for row in rows
        }

    async def permission_for(self, profile_id: UUID | None, object_type: str) -> ObjectPermission:
        return (await self.permissions_for(profile_id)).get(object_type, NO_PERMISSION)
