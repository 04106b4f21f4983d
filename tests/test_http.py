"""Tests for outbound HTTP: joke fetching and the keep-alive self-ping."""

from __future__ import annotations

import httpx
import pytest

from kirabot.errors import TransientExternalError
from kirabot.jokes import fetch_joke
from kirabot.keepalive import SELF_PING_JOB_ID, self_ping, start_self_ping

JOKE_URL = "https://jokes.example.com/joke"


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetchJoke:
    async def test_returns_joke(self):
        async with client_for(
            lambda request: httpx.Response(200, json={"type": "single", "joke": "  A pun.  "})
        ) as client:
            assert await fetch_joke(JOKE_URL, client=client) == "A pun."

    async def test_missing_joke_field(self):
        async with client_for(lambda request: httpx.Response(200, json={"type": "twopart"})) as client:
            assert await fetch_joke(JOKE_URL, client=client) is None

    async def test_http_error_status(self):
        async with client_for(lambda request: httpx.Response(503)) as client:
            with pytest.raises(TransientExternalError, match="taking a nap"):
                await fetch_joke(JOKE_URL, client=client)

    async def test_invalid_json(self):
        async with client_for(lambda request: httpx.Response(200, text="not json")) as client:
            with pytest.raises(TransientExternalError):
                await fetch_joke(JOKE_URL, client=client)

    async def test_transport_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with client_for(refuse) as client:
            with pytest.raises(TransientExternalError):
                await fetch_joke(JOKE_URL, client=client)


class TestSelfPing:
    async def test_ping_ok(self):
        seen: list[tuple[str, int | None]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.host, request.url.port))
            return httpx.Response(200, text="Bot is Alive!")

        async with client_for(handler) as client:
            assert await self_ping("http://localhost:3000", client=client) == 200
        assert seen == [("localhost", 3000)]

    async def test_ping_failure_is_logged_not_raised(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with client_for(refuse) as client:
            assert await self_ping("http://localhost:3000", client=client) is None

    async def test_scheduler_registers_job(self):
        scheduler = start_self_ping("http://localhost:3000", 180)
        try:
            job = scheduler.get_job(SELF_PING_JOB_ID)
            assert job is not None
            assert job.args == ("http://localhost:3000",)
            assert job.trigger.interval.total_seconds() == 180
        finally:
            scheduler.shutdown(wait=False)
