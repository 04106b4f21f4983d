"""Joke fetching from JokeAPI over httpx."""

from __future__ import annotations

import logging

import httpx

from kirabot.config import JOKE_API_URL
from kirabot.errors import TransientExternalError

logger = logging.getLogger(__name__)

_JOKE_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


async def fetch_joke(
    url: str = JOKE_API_URL,
    *,
    client: httpx.AsyncClient | None = None,
) -> str | None:
    """Fetch a single-line joke.

    Returns None when the API answers without a ``joke`` field. Raises
    TransientExternalError on any transport or HTTP status failure.
    """
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=_JOKE_TIMEOUT) as owned:
                resp = await owned.get(url)
        else:
            resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("joke_fetch_failed err=%s", exc)
        raise TransientExternalError(
            "My joke generator seems to be taking a nap. Try again later!"
        ) from exc

    joke = data.get("joke") if isinstance(data, dict) else None
    if not isinstance(joke, str) or not joke.strip():
        return None
    return joke.strip()
