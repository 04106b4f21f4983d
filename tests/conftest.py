"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from kirabot.config import Settings
from kirabot.db.engine import create_engine, dispose_engine, init_schema
from kirabot.db.store import StateStore


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults and a token so startup checks pass."""
    return Settings(
        token="test-token-not-real",
        kira_env="development",
        database_url="sqlite+aiosqlite:///:memory:",
        render_external_url="",
        discord_guild_id="",
        kira_prefix=".",
    )


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """In-memory SQLite engine with the schema created."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await init_schema(eng)
    yield eng
    await dispose_engine(eng)


@pytest.fixture
def store(engine: AsyncEngine) -> StateStore:
    return StateStore(engine)
