from __future__ import annotations

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from estategate.models.base import EntityBase


class Plan(EntityBase):
    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # -1 or NULL means unlimited.
    max_lots: Mapped[int | None] = mapped_column(nullable=True)
    max_users: Mapped[int | None] = mapped_column(nullable=True)
    max_extranet_tenants: Mapped[int | None] = mapped_column(nullable=True)
    features: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class Feature(EntityBase):
    __tablename__ = "features"

    key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False, default="general")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
