"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings

from kirabot.errors import ConfigurationError

JOKE_API_URL = "https://v2.jokeapi.dev/joke/Any?blacklistFlags=racist,sexist,explicit&type=single"

# Hosting platforms hand out bare postgres URLs; SQLAlchemy needs the async driver spelled out.
_POSTGRES_SCHEMES = ("postgres://", "postgresql://")


class Settings(BaseSettings):
    """Kira Bot configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Gateway
    token: str = ""
    discord_guild_id: str = ""

    # Database
    database_url: str = "sqlite+aiosqlite:///kirabot.db"

    # Keep-alive web server
    port: int = 3000
    render_external_url: str = ""
    self_ping_interval_seconds: int = 180

    # Outbound
    joke_api_url: str = JOKE_API_URL

    # Environment
    kira_env: str = "development"
    kira_prefix: str = "."

    # Logging
    kira_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @field_validator("database_url")
    @classmethod
    def _normalize_database_url(cls, value: str) -> str:
        """Rewrite ``postgres://`` style URLs to the asyncpg dialect."""
        for scheme in _POSTGRES_SCHEMES:
            if value.startswith(scheme):
                return "postgresql+asyncpg://" + value[len(scheme) :]
        return value

    @field_validator("kira_prefix")
    @classmethod
    def _non_empty_prefix(cls, value: str) -> str:
        if not value.strip():
            msg = "KIRA_PREFIX must not be blank"
            raise ValueError(msg)
        return value.strip()

    @property
    def self_ping_url(self) -> str:
        """Externally reachable URL to ping, falling back to the local server."""
        return self.render_external_url or f"http://localhost:{self.port}"

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql+asyncpg://")

    def require_startup(self) -> None:
        """Fail fast on configuration the bot cannot start without.

        Raises ConfigurationError; there is no automatic retry.
        """
        if not self.token:
            raise ConfigurationError("TOKEN must be set to connect to Discord.")
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL must be set.")
        if self.kira_env == "production" and not self.is_postgres:
            raise ConfigurationError(
                "Production requires a PostgreSQL DATABASE_URL; refusing to run on SQLite."
            )
        if self.self_ping_interval_seconds < 30:
            raise ConfigurationError("SELF_PING_INTERVAL_SECONDS must be >= 30.")
