"""
AsyncEngine and session factory construction.

NullPool because PgBouncer owns connection pooling; SA should not
maintain its own pool on top.

Timeouts are fixed per process (Settings), never per call:
  - connect timeout: asyncpg `timeout`
  - operation timeout: asyncpg `command_timeout`
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from services.transit.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create async engine for use with PgBouncer transaction-mode pooling.
    """
    url = (database_url or settings.database_url).replace(
        "postgresql://", "postgresql+asyncpg://", 1
    )
    return create_async_engine(
        url,
        poolclass=NullPool,
        echo=settings.debug and settings.environment == "development",
        connect_args={
            "timeout": settings.db_connect_timeout_s,
            "command_timeout": settings.db_command_timeout_s,
        },
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    expire_on_commit=False because NullPool returns the connection after
    commit; touching a model attribute afterwards would lazy load on a
    closed connection.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def standalone_session_factory():
    """
    For standalone jobs (reconcile.py) that run outside FastAPI.
    Handles engine lifecycle to prevent connection leaks with NullPool.
    """
    engine = create_engine()
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()
