"""Per-key command cooldowns.

Used to let only one ``.status`` run per channel every two seconds, which
also swallows the duplicate reply when two bot processes share a token.
"""

from __future__ import annotations

import time
from collections.abc import Callable

STATUS_COOLDOWN_SECONDS = 2.0


class CooldownStore:
    """In-memory key -> last-run timestamp (monotonic)."""

    def __init__(
        self,
        window_seconds: float = STATUS_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_run: dict[int, float] = {}

    def try_acquire(self, key: int) -> bool:
        """Claim *key* for one window. False if it is still cooling down."""
        now = self._clock()
        last = self._last_run.get(key)
        if last is not None and now - last < self.window_seconds:
            return False
        self._last_run[key] = now
        self._prune(now)
        return True

    def _prune(self, now: float) -> None:
        expired = [k for k, t in self._last_run.items() if now - t >= self.window_seconds]
        for key in expired:
            del self._last_run[key]

    def clear(self) -> None:
        self._last_run.clear()
