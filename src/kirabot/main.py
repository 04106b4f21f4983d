"""FastAPI application factory and process entry point.

The keep-alive HTTP server and the Discord gateway client share one event
loop: the lifespan starts the bot as a background task and the self-ping job
on APScheduler.
"""

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from types import TracebackType
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from kirabot.config import Settings
from kirabot.db.engine import create_engine, dispose_engine, init_schema
from kirabot.db.store import StateStore
from kirabot.discord.bot import KiraBot, start_discord_bot
from kirabot.errors import ConfigurationError
from kirabot.keepalive import ALIVE_TEXT, start_self_ping

logger = logging.getLogger(__name__)


class InitGuard:
    """One-shot guard so a process initializes the bot at most once.

    Released again when startup fails, or on clean shutdown, so a later
    attempt in the same process may proceed.
    """

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


init_guard = InitGuard()


def _log_async_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    logger.error(
        "critical_unhandled_async_error message=%s",
        context.get("message", "unknown"),
        exc_info=context.get("exception"),
    )


def install_crash_handlers(bot: KiraBot) -> None:
    """Log unhandled async errors; on a fatal uncaught exception close the gateway first.

    The interpreter exits with status 1 once ``sys.excepthook`` returns.
    """
    asyncio.get_running_loop().set_exception_handler(_log_async_exception)

    def _fatal_excepthook(
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        logger.critical("critical_uncaught_exception", exc_info=(exc_type, exc, tb))
        if bot.is_closed():
            return
        try:
            asyncio.run(bot.close())
        except RuntimeError:
            logger.exception("discord_close_on_crash_failed")

    sys.excepthook = _fatal_excepthook


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: validate config, open the database, start the bot and self-ping."""
    settings: Settings = app.state.settings
    app.state.bot = None

    if not init_guard.try_acquire():
        logger.warning("bot_init_skipped already initialized in this process")
        yield
        return

    engine = None
    try:
        settings.require_startup()
        engine = create_engine(settings.database_url)
        await init_schema(engine)
        store = StateStore(engine)
        bot = KiraBot(settings, store)
        await bot.counting.load()
    except (ConfigurationError, SQLAlchemyError, OSError):
        logger.exception("bot_init_failed")
        init_guard.release()
        if engine is not None:
            await dispose_engine(engine)
        raise

    app.state.engine = engine
    app.state.bot = bot
    install_crash_handlers(bot)

    bot_task = await start_discord_bot(bot, settings.token)
    app.state.bot_task = bot_task
    scheduler = start_self_ping(settings.self_ping_url, settings.self_ping_interval_seconds)
    logger.info("kirabot_started env=%s port=%d", settings.kira_env, settings.port)

    yield

    scheduler.shutdown(wait=False)
    logger.info("self_ping_stopped")

    await bot.close()
    bot_task.cancel()
    with suppress(asyncio.CancelledError):
        await bot_task
    logger.info("discord_bot_stopped")

    await dispose_engine(engine)
    init_guard.release()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the Kira Bot keep-alive application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.kira_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Kira Bot",
        version="0.1.0",
        description="Discord community bot with a keep-alive endpoint",
        docs_url="/docs" if settings.kira_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.get("/", response_class=PlainTextResponse)
    async def alive() -> str:
        return ALIVE_TEXT

    @app.get("/health")
    async def health(request: Request) -> dict[str, str | bool]:
        bot: KiraBot | None = getattr(request.app.state, "bot", None)
        return {
            "status": "ok",
            "env": settings.kira_env,
            "discord_ready": bool(bot is not None and bot.is_ready()),
        }

    return app


def run() -> None:
    """Console entry point: serve the keep-alive app on ``PORT``."""
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.kira_log_level.lower(),
    )


app = create_app()
