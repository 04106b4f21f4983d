"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from kirabot.config import JOKE_API_URL, Settings
from kirabot.errors import ConfigurationError


class TestDatabaseUrl:
    def test_postgres_scheme_rewritten_to_asyncpg(self) -> None:
        settings = Settings(database_url="postgres://user:pw@db.example.com:5432/kira")
        assert settings.database_url == "postgresql+asyncpg://user:pw@db.example.com:5432/kira"
        assert settings.is_postgres

    def test_postgresql_scheme_rewritten_to_asyncpg(self) -> None:
        settings = Settings(database_url="postgresql://user:pw@db/kira?ssl=require")
        assert settings.database_url == "postgresql+asyncpg://user:pw@db/kira?ssl=require"

    def test_sqlite_left_alone(self) -> None:
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:")
        assert settings.database_url == "sqlite+aiosqlite:///:memory:"
        assert not settings.is_postgres


class TestDefaults:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None, token="", database_url="sqlite+aiosqlite:///kirabot.db")
        assert settings.port == 3000
        assert settings.kira_prefix == "."
        assert settings.joke_api_url == JOKE_API_URL
        assert settings.self_ping_interval_seconds == 180

    def test_self_ping_url_prefers_external(self) -> None:
        settings = Settings(render_external_url="https://kira.onrender.com", port=3000)
        assert settings.self_ping_url == "https://kira.onrender.com"

    def test_self_ping_url_falls_back_to_localhost(self) -> None:
        settings = Settings(render_external_url="", port=8080)
        assert settings.self_ping_url == "http://localhost:8080"

    def test_blank_prefix_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(kira_prefix="   ")


class TestRequireStartup:
    def test_valid_development_settings(self, settings: Settings) -> None:
        settings.require_startup()

    def test_missing_token(self, settings: Settings) -> None:
        settings.token = ""
        with pytest.raises(ConfigurationError, match="TOKEN"):
            settings.require_startup()

    def test_missing_database_url(self, settings: Settings) -> None:
        settings.database_url = ""
        with pytest.raises(ConfigurationError, match="DATABASE_URL"):
            settings.require_startup()

    def test_production_refuses_sqlite(self) -> None:
        settings = Settings(
            token="t",
            kira_env="production",
            database_url="sqlite+aiosqlite:///kirabot.db",
        )
        with pytest.raises(ConfigurationError, match="PostgreSQL"):
            settings.require_startup()

    def test_production_accepts_postgres(self) -> None:
        settings = Settings(
            token="t",
            kira_env="production",
            database_url="postgres://u:p@db/kira",
        )
        settings.require_startup()

    def test_ping_interval_floor(self, settings: Settings) -> None:
        settings.self_ping_interval_seconds = 5
        with pytest.raises(ConfigurationError, match="SELF_PING_INTERVAL_SECONDS"):
            settings.require_startup()
