"""
Core record repository -- the relational half of each entity.

One short-lived AsyncSession per operation, taken from the session factory
built once at startup. The relational store is the system of record for
identity and referential integrity, so every failure here propagates:

  IntegrityError (unique / FK violation)  -> Conflict
  any other SQLAlchemyError / OSError     -> CoreStoreError
  missing row on read / update            -> RecordNotFound

find_by_filter() returns a RecordQuery: nothing runs until it is iterated,
and every iteration re-executes the SELECT. No cursor outlives a single
iteration.
"""

from __future__ import annotations

import logging
import math
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.transit.sync.entities import DependentGuard, EntityType
from services.transit.sync.errors import Conflict, CoreStoreError, RecordNotFound

logger = logging.getLogger(__name__)

_COLLECTION_TYPES = (list, tuple, set, frozenset)


@dataclass
class FilterCriteria:
    """
    Declarative filter for core record searches.

    equals:       column -> value. None means IS NULL, a list/tuple/set means IN.
    at_least:     column -> lower bound (inclusive).
    is_not_null:  columns that must be non-NULL.
    search:       case-insensitive substring over the entity's search columns.
    order_by:     column names; "-name" sorts descending. Ties fall back to id.
    """

    equals: dict[str, Any] = field(default_factory=dict)
    at_least: dict[str, Any] = field(default_factory=dict)
    is_not_null: tuple[str, ...] = ()
    search: str | None = None
    order_by: tuple[str, ...] = ()
    limit: int | None = None
    offset: int = 0


@dataclass
class Page:
    items: list[Any]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class CoreRepository(Protocol):
    """Contract every core-record backend satisfies."""

    entity: EntityType

    async def create(self, fields: dict[str, Any]) -> int: ...

    async def read(self, core_id: int) -> Any: ...

    async def update(self, core_id: int, partial: dict[str, Any]) -> None: ...

    async def delete(self, core_id: int) -> None: ...

    def find_by_filter(self, criteria: FilterCriteria | None = None) -> RecordQuery: ...

    async def count(self, criteria: FilterCriteria | None = None) -> int: ...

    async def find_page(
        self,
        criteria: FilterCriteria | None = None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> Page: ...

    async def count_dependents(self, core_id: int, guard: DependentGuard) -> int: ...


class RecordQuery:
    """
    Lazy, finite, restartable sequence of core records.

        async for station in repo.find_by_filter(criteria): ...
        stations = await repo.find_by_filter(criteria).all()

    Each `async for` (or all()) runs the query again from scratch.
    """

    def __init__(self, fetch) -> None:
        self._fetch = fetch

    async def all(self) -> list[Any]:
        return list(await self._fetch())

    async def __aiter__(self) -> AsyncIterator[Any]:
        for record in await self._fetch():
            yield record


class SQLCoreRepository:
    """Core records of one entity type in the relational store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], entity: EntityType) -> None:
        self._session_factory = session_factory
        self.entity = entity
        self._model = entity.model

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _column(self, name: str):
        if name not in self._model.__table__.columns:
            raise ValueError(f"{self.entity.name} has no column {name!r}")
        return getattr(self._model, name)

    def _where(self, criteria: FilterCriteria) -> list:
        clauses = []
        for name, value in criteria.equals.items():
            column = self._column(name)
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, _COLLECTION_TYPES):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        for name, bound in criteria.at_least.items():
            clauses.append(self._column(name) >= bound)
        for name in criteria.is_not_null:
            clauses.append(self._column(name).is_not(None))
        if criteria.search and self.entity.search_columns:
            pattern = f"%{criteria.search}%"
            clauses.append(
                or_(*(self._column(name).ilike(pattern) for name in self.entity.search_columns))
            )
        return clauses

    def _select(self, criteria: FilterCriteria):
        stmt = select(self._model).where(*self._where(criteria))
        ordering = []
        for name in criteria.order_by:
            if name.startswith("-"):
                ordering.append(self._column(name[1:]).desc())
            else:
                ordering.append(self._column(name).asc())
        ordering.append(self._model.id.asc())
        stmt = stmt.order_by(*ordering)
        if criteria.offset:
            stmt = stmt.offset(criteria.offset)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)
        return stmt

    def _store_error(self, action: str, exc: Exception) -> CoreStoreError:
        logger.error("core_repository %s failed: entity=%s error=%s", action, self.entity.name, exc)
        if isinstance(exc, IntegrityError):
            return Conflict(f"{self.entity.name} {action} violates a constraint: {exc.orig}")
        return CoreStoreError(f"{self.entity.name} {action} failed: {exc}")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create(self, fields: dict[str, Any]) -> int:
        """Insert a core record (detail_ref included, may be None). Returns its id."""
        try:
            async with self._session_factory() as session:
                record = self._model(**fields)
                session.add(record)
                await session.flush()
                core_id = record.id
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("create", exc) from exc
        return core_id

    async def read(self, core_id: int) -> Any:
        try:
            async with self._session_factory() as session:
                record = await session.get(self._model, core_id)
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("read", exc) from exc
        if record is None:
            raise RecordNotFound(self.entity.name, core_id)
        return record

    async def update(self, core_id: int, partial: dict[str, Any]) -> None:
        if not partial:
            await self.read(core_id)
            return
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(self._model)
                    .where(self._model.id == core_id)
                    .values(**partial)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("update", exc) from exc
        if result.rowcount == 0:
            raise RecordNotFound(self.entity.name, core_id)

    async def delete(self, core_id: int) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(self._model).where(self._model.id == core_id)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("delete", exc) from exc
        if result.rowcount == 0:
            logger.debug("core_repository delete: entity=%s id=%s already absent", self.entity.name, core_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_filter(self, criteria: FilterCriteria | None = None) -> RecordQuery:
        criteria = criteria or FilterCriteria()
        stmt = self._select(criteria)

        async def _fetch() -> Sequence[Any]:
            try:
                async with self._session_factory() as session:
                    result = await session.execute(stmt)
                    return result.scalars().all()
            except (SQLAlchemyError, OSError) as exc:
                raise self._store_error("query", exc) from exc

        return RecordQuery(_fetch)

    async def count(self, criteria: FilterCriteria | None = None) -> int:
        criteria = criteria or FilterCriteria()
        stmt = select(func.count()).select_from(self._model).where(*self._where(criteria))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar() or 0)
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("count", exc) from exc

    async def find_page(
        self,
        criteria: FilterCriteria | None = None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Paginated search; page is 1-based."""
        criteria = criteria or FilterCriteria()
        page = max(page, 1)
        total = await self.count(criteria)
        paged = FilterCriteria(
            equals=criteria.equals,
            at_least=criteria.at_least,
            is_not_null=criteria.is_not_null,
            search=criteria.search,
            order_by=criteria.order_by,
            limit=limit,
            offset=(page - 1) * limit,
        )
        items = await self.find_by_filter(paged).all()
        return Page(items=items, page=page, limit=limit, total=total)

    async def count_dependents(self, core_id: int, guard: DependentGuard) -> int:
        """Rows in guard.model whose guard.column references core_id."""
        column = getattr(guard.model, guard.column)
        stmt = select(func.count()).select_from(guard.model).where(column == core_id)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar() or 0)
        except (SQLAlchemyError, OSError) as exc:
            raise self._store_error("dependent check", exc) from exc
