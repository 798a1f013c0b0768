"""
MockSASession -- test helper that wraps an AsyncMock session with a call
queue dispatcher, plus a session factory that hands it out.

Usage:
    session = MockSASession()
    session.returns_many([station1, station2])   # next execute -> scalars().all()
    session.returns_rowcount(1)                   # next execute -> .rowcount
    session.returns_scalar(3)                     # next execute -> .scalar()
    session.returns_get(station)                  # next get()   -> station
    session.raises(IntegrityError(...))           # next execute raises

    repo = SQLCoreRepository(session.factory, STATION)

Assert via:
    session.mock.execute.assert_called_once()
    session.mock.commit.assert_called_once()
"""

from __future__ import annotations

from collections import deque
from typing import Any
from unittest.mock import AsyncMock, MagicMock

_UNSET = object()  # sentinel for distinguishing None from unset


class _ScalarsResult:
    """Mock for result.scalars() return value."""

    def __init__(self, items: list[Any] | None):
        self._items = items

    def all(self) -> list[Any]:
        return list(self._items) if self._items is not None else []


class _ExecuteResult:
    """Mock for session.execute() return value."""

    def __init__(
        self,
        *,
        scalars_items: list[Any] | None = None,
        rowcount: int | None = None,
        scalar_value: Any = _UNSET,
    ):
        self._scalars_items = scalars_items
        self._rowcount = rowcount
        self._scalar_value = scalar_value

    def scalars(self) -> _ScalarsResult:
        return _ScalarsResult(self._scalars_items)

    @property
    def rowcount(self) -> int:
        return self._rowcount if self._rowcount is not None else 0

    def scalar(self) -> Any:
        """Return a single scalar value (e.g. from SELECT COUNT(*))."""
        if self._scalar_value is not _UNSET:
            return self._scalar_value
        return None


class _SessionContext:
    def __init__(self, session: AsyncMock) -> None:
        self._session = session

    async def __aenter__(self) -> AsyncMock:
        return self._session

    async def __aexit__(self, *exc_info) -> bool:
        return False


class MockSASession:
    """
    Test helper wrapping an AsyncMock session with a call queue
    dispatcher for sequential return values.
    """

    def __init__(self) -> None:
        self._queue: deque[_ExecuteResult | BaseException] = deque()
        self._get_queue: deque[Any] = deque()
        self.opened = 0
        self.mock = AsyncMock()
        self.mock.commit = AsyncMock()
        self.mock.rollback = AsyncMock()
        self.mock.close = AsyncMock()
        self.mock.flush = AsyncMock()
        self.mock.add = MagicMock()

        async def _execute_side_effect(*args, **kwargs):
            if self._queue:
                item = self._queue.popleft()
                if isinstance(item, BaseException):
                    raise item
                return item
            # Default: empty result
            return _ExecuteResult()

        async def _get_side_effect(*args, **kwargs):
            if self._get_queue:
                item = self._get_queue.popleft()
                if isinstance(item, BaseException):
                    raise item
                return item
            return None

        self.mock.execute = AsyncMock(side_effect=_execute_side_effect)
        self.mock.get = AsyncMock(side_effect=_get_side_effect)

    def factory(self) -> _SessionContext:
        """Stand-in for async_sessionmaker: each call opens 'a session'."""
        self.opened += 1
        return _SessionContext(self.mock)

    def returns_many(self, items: list[Any]) -> MockSASession:
        """Next execute() call returns these items via scalars().all()."""
        self._queue.append(_ExecuteResult(scalars_items=items))
        return self

    def returns_rowcount(self, count: int) -> MockSASession:
        """Next execute() call returns this rowcount."""
        self._queue.append(_ExecuteResult(rowcount=count))
        return self

    def returns_scalar(self, value: Any) -> MockSASession:
        """Next execute() call returns a scalar value via .scalar()."""
        self._queue.append(_ExecuteResult(scalar_value=value))
        return self

    def returns_get(self, obj: Any) -> MockSASession:
        """Next db.get() call returns this object."""
        self._get_queue.append(obj)
        return self

    def raises(self, exc: BaseException) -> MockSASession:
        """Next execute() call raises exc."""
        self._queue.append(exc)
        return self
