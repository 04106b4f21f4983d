"""Async SQLAlchemy engine and session factory.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for development and
tests.

Usage:
    engine = create_engine(settings.database_url)
    await init_schema(engine)
    async with get_session(engine) as session:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kirabot.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    SQLite connections get WAL journal mode and a busy timeout so the bot's
    interleaved sessions don't immediately fail with "database is locked".
    PostgreSQL connections are pre-pinged because hosted databases drop idle
    connections.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=echo, connect_args={"timeout": 15})

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn: object, connection_record: object) -> None:
            cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=15000")
            cursor.close()

        return engine

    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


# One session factory per engine instance, keyed by the sync engine's identity
# so test engines stay isolated.
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to *engine*."""
    key = id(engine.sync_engine)
    if key not in _session_factories:
        _session_factories[key] = async_sessionmaker(engine, expire_on_commit=False)
    return _session_factories[key]


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session that auto-commits on success, rolls back on error."""
    factory = create_session_factory(engine)
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Roll back on any error, then re-raise
            await session.rollback()
            raise


async def init_schema(engine: AsyncEngine) -> list[str]:
    """Create missing tables and return the table names the bot relies on."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tables = sorted(Base.metadata.tables)
    logger.info("db_schema_ready tables=%s", ",".join(tables))
    return tables


async def dispose_engine(engine: AsyncEngine) -> None:
    """Dispose the engine and forget its cached session factory."""
    _session_factories.pop(id(engine.sync_engine), None)
    await engine.dispose()
