from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar
from uuid import UUID

import asyncpg
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from estategate.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)

# Connection failures from asyncpg reach callers unwrapped by SQLAlchemy.
STORE_ERRORS = (SQLAlchemyError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError)


class LookupFailure(RuntimeError):
    """The backing store could not answer a lookup (unreachable or malformed data)."""


class Repository(Generic[ModelT]):
    """Store capabilities consumed by the access engine.

    Keyword filters are equality filters, except that a list, tuple, set or
    frozenset value becomes an ``IN`` filter. Every driver or connection error is re-raised as
    :class:`LookupFailure` so callers only need to handle one failure type.
    """

    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def _filtered_select(self, filters: dict[str, Any]) -> Select[tuple[ModelT]]:
        stmt = select(self.model)
        for field, value in filters.items():
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        return stmt

    async def get(self, entity_id: UUID) -> ModelT | None:
        try:
            return await self.session.get(self.model, entity_id)
        except STORE_ERRORS as exc:
            raise LookupFailure(f"{self.model.__tablename__} lookup failed") from exc

    async def get_one_by(self, **filters: Any) -> ModelT | None:
        try:
            result = await self.session.execute(self._filtered_select(filters).limit(1))
        except STORE_ERRORS as exc:
            raise LookupFailure(f"{self.model.__tablename__} lookup failed") from exc
        return result.scalar_one_or_none()

    async def list_by(
        self,
        *,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        **filters: Any,
    ) -> list[ModelT]:
        stmt = self._filtered_select(filters)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            result = await self.session.execute(stmt)
        except STORE_ERRORS as exc:
            raise LookupFailure(f"{self.model.__tablename__} scan failed") from exc
        return list(result.scalars().all())

    async def upsert(
        self,
        values: dict[str, Any],
        *,
        conflict_columns: Iterable[str],
        update_columns: Iterable[str],
    ) -> None:
        stmt = insert(self.model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={column: stmt.excluded[column] for column in update_columns},
        )
        try:
            await self.session.execute(stmt)
        except STORE_ERRORS as exc:
            raise LookupFailure(f"{self.model.__tablename__} upsert failed") from exc

    async def update_where(self, values: dict[str, Any], **filters: Any) -> int:
        stmt = update(self.model)
        for field, value in filters.items():
            column = getattr(self.model, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        try:
            result = await self.session.execute(stmt.values(**values))
        except STORE_ERRORS as exc:
            raise LookupFailure(f"{self.model.__tablename__} update failed") from exc
        return result.rowcount or 0
