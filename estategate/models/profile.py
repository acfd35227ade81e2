from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from estategate.models.base import EntityBase


class Profile(EntityBase):
    __tablename__ = "profiles"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    organization_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_system_profile: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_global: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


class ProfileObjectPermission(EntityBase):
    __tablename__ = "profile_object_permissions"
    __table_args__ = (
        UniqueConstraint("profile_id", "object_type", name="uq_profile_object_permissions_profile_object"),
    )

    profile_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    object_type: Mapped[str] = mapped_column(String(80), nullable=False)
    can_create: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_read: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_edit: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(nullable=False, default=False)
