"""Keep-alive: periodic self-ping so the host doesn't idle the process.

The health endpoint itself lives on the FastAPI app in ``kirabot.main``.
"""

from __future__ import annotations

import logging

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

ALIVE_TEXT = "Bot is Alive!"
SELF_PING_JOB_ID = "self_ping"
_PING_TIMEOUT = httpx.Timeout(15.0, connect=5.0)


async def self_ping(url: str, *, client: httpx.AsyncClient | None = None) -> int | None:
    """GET *url* once. Returns the status code, or None on failure (logged)."""
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=_PING_TIMEOUT) as owned:
                resp = await owned.get(url)
        else:
            resp = await client.get(url)
    except httpx.HTTPError as exc:
        logger.error("self_ping_failed url=%s err=%s", url, exc)
        return None
    logger.info("self_ping_ok url=%s status=%d", url, resp.status_code)
    return resp.status_code


def start_self_ping(url: str, interval_seconds: int) -> AsyncIOScheduler:
    """Start an APScheduler job that pings *url* every *interval_seconds*.

    Must be called from inside the running event loop. The caller owns
    shutdown.
    """
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        self_ping,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[url],
        id=SELF_PING_JOB_ID,
        name="Self-ping keep-alive",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("self_ping_scheduled url=%s interval=%ds", url, interval_seconds)
    return scheduler
