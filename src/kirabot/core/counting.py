"""Counting game engine.

A tiny deterministic state machine over (active channel, next expected
number). Every mutation goes through the state store. The
read-modify-write of a guess is serialized by a lock, so two near-simultaneous
correct guesses advance the counter exactly once.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from kirabot.errors import CountingNotConfiguredError
from kirabot.models.state import CountingState

if TYPE_CHECKING:
    from kirabot.db.store import StateStore

logger = logging.getLogger(__name__)

NOT_CONFIGURED_TEXT = "The counting game has not been set up yet! Use /countinggame first."

_INTEGER_RE = re.compile(r"[+-]?\d+")


class CountVerdict(enum.Enum):
    IGNORED = "ignored"
    CORRECT = "correct"
    WRONG = "wrong"


@dataclass(frozen=True)
class CountResult:
    """Disposition of one message in the counting channel.

    ``expected`` is the number that was expected when the message was judged.
    ``persisted`` is False when a correct count advanced in memory but the
    database write failed.
    """

    verdict: CountVerdict
    expected: int
    number: int | None = None
    persisted: bool = True


def parse_count(content: str) -> int | None:
    """Parse a message as a base-10 integer, or None if it is not one."""
    text = content.strip()
    if not _INTEGER_RE.fullmatch(text):
        return None
    return int(text)


class CountingGame:
    """Owns the in-memory CountingState and keeps it in step with the store."""

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self.state = CountingState()
        self._lock = asyncio.Lock()

    async def load(self) -> CountingState:
        """Replace the in-memory state with the persisted one."""
        async with self._lock:
            self.state = await self.store.load_counting_state()
            return self.state

    def is_counting_channel(self, channel_id: int) -> bool:
        return self.state.active_channel_id is not None and self.state.active_channel_id == channel_id

    async def submit(self, channel_id: int, content: str) -> CountResult:
        """Judge a message posted in *channel_id*.

        Messages outside the counting channel, or that are not integers, are
        IGNORED. A correct number advances and persists the state; a wrong one
        leaves it untouched.
        """
        number = parse_count(content)
        async with self._lock:
            expected = self.state.next_expected
            if not self.is_counting_channel(channel_id) or number is None:
                return CountResult(CountVerdict.IGNORED, expected=expected, number=number)

            if number != expected:
                return CountResult(CountVerdict.WRONG, expected=expected, number=number)

            self.state = self.state.model_copy(update={"next_expected": expected + 1})
            persisted = await self._persist()
            return CountResult(
                CountVerdict.CORRECT,
                expected=expected,
                number=number,
                persisted=persisted,
            )

    async def setup(self, channel_id: int) -> CountingState:
        """Start (or move) the game to *channel_id*, counting from 1."""
        async with self._lock:
            self.state = CountingState(active_channel_id=channel_id, next_expected=1)
            await self.store.save_counting_state(self.state)
            logger.info("counting_setup channel=%s", channel_id)
            return self.state

    async def reset(self) -> int:
        """Restart the count at 1 in the configured channel.

        Returns the channel id. Raises CountingNotConfiguredError when the
        game was never set up.
        """
        async with self._lock:
            channel_id = self.state.active_channel_id
            if channel_id is None:
                raise CountingNotConfiguredError(NOT_CONFIGURED_TEXT)
            self.state = CountingState(active_channel_id=channel_id, next_expected=1)
            await self.store.save_counting_state(self.state)
            logger.info("counting_reset channel=%s", channel_id)
            return channel_id

    async def _persist(self) -> bool:
        # A failed write keeps the in-memory advance; the next successful save reconciles.
        try:
            await self.store.save_counting_state(self.state)
        except SQLAlchemyError:
            logger.exception("counting_persist_failed next=%d", self.state.next_expected)
            return False
        return True
