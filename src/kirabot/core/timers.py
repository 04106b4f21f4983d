"""Injectable one-shot timers.

The conversation engine arms its inactivity timers through a TimerScheduler
instead of sleeping itself. Production uses the running asyncio loop; tests
use ManualTimerScheduler and advance virtual time explicitly.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Awaitable, Callable
from typing import Protocol

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerScheduler(Protocol):
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle: ...


class AsyncioTimerScheduler:
    """Schedules callbacks on the running event loop.

    The callback runs as its own task, so cancelling a handle after it has
    fired never interrupts a callback that is already running.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: TimerCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


class ManualTimerHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerScheduler:
    """Virtual-time scheduler for deterministic tests.

    Usage:
        timers = ManualTimerScheduler()
        builder = EmbedBuilder(DraftStore(), scheduler=timers)
        ...
        await timers.advance(300)
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, ManualTimerHandle, TimerCallback]] = []

    def call_later(self, delay: float, callback: TimerCallback) -> ManualTimerHandle:
        handle = ManualTimerHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    async def advance(self, seconds: float) -> int:
        """Move virtual time forward, running every due callback in order.

        Returns how many callbacks ran.
        """
        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = due
            if handle.cancelled:
                continue
            handle.cancelled = True
            await callback()
            fired += 1
        self.now = target
        return fired
