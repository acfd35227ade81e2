from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from estategate.models.base import EntityBase, TimestampedBase


class Button(EntityBase):
    __tablename__ = "buttons"

    key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    object_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False, default="create")
    icon: Mapped[str | None] = mapped_column(String(80), nullable=True)
    feature_key: Mapped[str | None] = mapped_column(String(120), nullable=True)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(nullable=False, default=False)


class NavigationItem(EntityBase):
    __tablename__ = "navigation_items"

    key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    href: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(80), nullable=True)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)
    object_type: Mapped[str | None] = mapped_column(String(80), nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False, default="read")
    feature_key: Mapped[str | None] = mapped_column(String(120), nullable=True)
    parent_key: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(nullable=False, default=False)


class ProfileButton(TimestampedBase):
    __tablename__ = "profile_buttons"

    profile_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    button_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("buttons.id", ondelete="CASCADE"),
        primary_key=True,
    )
    is_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_visible: Mapped[bool] = mapped_column(nullable=False, default=False)
    custom_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    custom_icon: Mapped[str | None] = mapped_column(String(80), nullable=True)


class ProfileNavigationItem(TimestampedBase):
    __tablename__ = "profile_navigation_items"

    profile_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    navigation_item_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("navigation_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    is_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_visible: Mapped[bool] = mapped_column(nullable=False, default=False)
    custom_sort_order: Mapped[int | None] = mapped_column(nullable=True)
