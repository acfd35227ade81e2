from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from estategate.models.base import EntityBase


class Organization(EntityBase):
    __tablename__ = "organizations"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # NULL means setup never started; only TRUE counts as configured.
    is_configured: Mapped[bool | None] = mapped_column(nullable=True)
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)
    subdomain: Mapped[str | None] = mapped_column(String(63), unique=True, nullable=True)
    custom_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    extranet_tenant_count: Mapped[int] = mapped_column(nullable=False, default=0)
