"""Tests for the keep-alive app, startup lifespan, and process crash handlers."""

from __future__ import annotations

import asyncio
import logging
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from discord.ext import commands

from kirabot.config import Settings
from kirabot.db.engine import dispose_engine
from kirabot.discord.bot import KiraBot
from kirabot.errors import ConfigurationError
from kirabot.keepalive import ALIVE_TEXT
from kirabot.main import InitGuard, create_app, init_guard, install_crash_handlers, lifespan


@pytest.fixture(autouse=True)
def _release_guard():
    init_guard.release()
    yield
    init_guard.release()


@pytest.fixture
def restore_excepthook(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)


class TestRoutes:
    async def test_root_is_plain_text(self, settings: Settings):
        app = create_app(settings)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.text == ALIVE_TEXT
        assert resp.headers["content-type"].startswith("text/plain")

    async def test_health(self, settings: Settings):
        app = create_app(settings)
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "env": "development", "discord_ready": False}

    def test_docs_hidden_in_production(self):
        settings = Settings(kira_env="production", database_url="postgres://u:p@db/kira")
        assert create_app(settings).docs_url is None


class TestInitGuard:
    def test_one_shot(self):
        guard = InitGuard()
        assert guard.try_acquire()
        assert not guard.try_acquire()
        assert guard.held

    def test_release_allows_retry(self):
        guard = InitGuard()
        guard.try_acquire()
        guard.release()
        assert guard.try_acquire()


class TestLifespan:
    async def test_missing_token_fails_fast_and_releases_guard(self, settings: Settings):
        settings.token = ""
        app = create_app(settings)
        with pytest.raises(ConfigurationError):
            async with lifespan(app):
                pass
        assert not init_guard.held

    async def test_starts_and_stops_bot(self, settings: Settings, restore_excepthook: None):
        app = create_app(settings)
        scheduler = MagicMock()
        with (
            patch.object(KiraBot, "start", new_callable=AsyncMock) as mock_start,
            patch.object(commands.Bot, "close", new_callable=AsyncMock) as mock_close,
            patch("kirabot.main.start_self_ping", return_value=scheduler) as mock_ping,
        ):
            async with lifespan(app):
                await asyncio.sleep(0)
                assert isinstance(app.state.bot, KiraBot)
                assert not app.state.bot.counting.state.is_configured
                assert init_guard.held
            asyncio.get_running_loop().set_exception_handler(None)

        mock_start.assert_awaited_once_with(settings.token)
        mock_ping.assert_called_once_with("http://localhost:3000", 180)
        scheduler.shutdown.assert_called_once_with(wait=False)
        assert mock_close.await_count >= 1
        assert app.state.bot_task.done()
        assert not init_guard.held

    async def test_shutdown_waits_for_gateway_task(self, settings: Settings, restore_excepthook: None):
        app = create_app(settings)
        finished: list[bool] = []

        async def run_forever(token: str) -> None:
            try:
                await asyncio.Event().wait()
            finally:
                finished.append(True)

        with (
            patch.object(KiraBot, "start", side_effect=run_forever, new_callable=AsyncMock),
            patch.object(commands.Bot, "close", new_callable=AsyncMock),
            patch("kirabot.main.start_self_ping", return_value=MagicMock()),
            patch("kirabot.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            async def dispose_after_gateway(engine) -> None:
                finished.append(False)
                await dispose_engine(engine)

            mock_dispose.side_effect = dispose_after_gateway
            async with lifespan(app):
                await asyncio.sleep(0)
                assert not app.state.bot_task.done()
            asyncio.get_running_loop().set_exception_handler(None)

        assert app.state.bot_task.done()
        assert finished == [True, False]

    async def test_second_initialization_skipped(self, settings: Settings):
        init_guard.try_acquire()
        app = create_app(settings)
        async with lifespan(app):
            assert app.state.bot is None
        assert init_guard.held


class TestCrashHandlers:
    async def test_async_errors_logged(self, restore_excepthook: None, caplog: pytest.LogCaptureFixture):
        bot = MagicMock()
        loop = asyncio.get_running_loop()
        install_crash_handlers(bot)
        try:
            with caplog.at_level(logging.ERROR):
                loop.call_exception_handler({"message": "task exploded"})
        finally:
            loop.set_exception_handler(None)
        assert "critical_unhandled_async_error" in caplog.text

    async def test_fatal_hook_logs(self, restore_excepthook: None, caplog: pytest.LogCaptureFixture):
        bot = MagicMock()
        bot.is_closed.return_value = True
        install_crash_handlers(bot)
        asyncio.get_running_loop().set_exception_handler(None)
        with caplog.at_level(logging.CRITICAL):
            sys.excepthook(RuntimeError, RuntimeError("boom"), None)
        assert "critical_uncaught_exception" in caplog.text
