"""Tests for the counting game engine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from kirabot.core.counting import (
    NOT_CONFIGURED_TEXT,
    CountingGame,
    CountVerdict,
    parse_count,
)
from kirabot.db.store import StateStore
from kirabot.errors import CountingNotConfiguredError
from kirabot.models.state import CountingState

CHANNEL = 100


@pytest.fixture
async def game(store: StateStore) -> CountingGame:
    game = CountingGame(store)
    await game.setup(CHANNEL)
    return game


class TestParseCount:
    @pytest.mark.parametrize(
        ("content", "expected"),
        [("1", 1), (" 42 ", 42), ("007", 7), ("-3", -3), ("+5", 5)],
    )
    def test_integers(self, content: str, expected: int) -> None:
        assert parse_count(content) == expected

    @pytest.mark.parametrize("content", ["", "abc", "12abc", "1.5", "one", "1 2"])
    def test_non_integers(self, content: str) -> None:
        assert parse_count(content) is None


class TestSubmit:
    async def test_correct_number_advances(self, game: CountingGame, store: StateStore):
        result = await game.submit(CHANNEL, "1")
        assert result.verdict is CountVerdict.CORRECT
        assert result.number == 1
        assert game.state.next_expected == 2
        assert (await store.load_counting_state()).next_expected == 2

    async def test_wrong_number_leaves_state(self, game: CountingGame, store: StateStore):
        await game.submit(CHANNEL, "1")
        result = await game.submit(CHANNEL, "5")
        assert result.verdict is CountVerdict.WRONG
        assert result.expected == 2
        assert game.state.next_expected == 2
        assert (await store.load_counting_state()).next_expected == 2

    async def test_text_is_ignored(self, game: CountingGame):
        result = await game.submit(CHANNEL, "hello there")
        assert result.verdict is CountVerdict.IGNORED
        assert game.state.next_expected == 1

    async def test_other_channel_is_ignored(self, game: CountingGame):
        result = await game.submit(CHANNEL + 1, "1")
        assert result.verdict is CountVerdict.IGNORED
        assert game.state.next_expected == 1

    async def test_unconfigured_game_ignores_everything(self, store: StateStore):
        game = CountingGame(store)
        await game.load()
        result = await game.submit(CHANNEL, "1")
        assert result.verdict is CountVerdict.IGNORED

    async def test_sequence(self, game: CountingGame):
        for n in range(1, 6):
            assert (await game.submit(CHANNEL, str(n))).verdict is CountVerdict.CORRECT
        assert game.state.next_expected == 6

    async def test_simultaneous_correct_guesses_advance_once(self, game: CountingGame):
        first, second = await asyncio.gather(
            game.submit(CHANNEL, "1"),
            game.submit(CHANNEL, "1"),
        )
        verdicts = sorted([first.verdict.value, second.verdict.value])
        assert verdicts == ["correct", "wrong"]
        assert game.state.next_expected == 2

    async def test_persist_failure_keeps_memory_advance(self):
        store = MagicMock(spec=StateStore)
        store.save_counting_state = AsyncMock(side_effect=SQLAlchemyError("db down"))
        game = CountingGame(store)
        game.state = CountingState(active_channel_id=CHANNEL, next_expected=1)

        result = await game.submit(CHANNEL, "1")

        assert result.verdict is CountVerdict.CORRECT
        assert result.persisted is False
        assert game.state.next_expected == 2


class TestSetupAndReset:
    async def test_setup_moves_channel_and_restarts(self, game: CountingGame, store: StateStore):
        await game.submit(CHANNEL, "1")
        await game.setup(200)
        assert game.is_counting_channel(200)
        assert not game.is_counting_channel(CHANNEL)
        state = await store.load_counting_state()
        assert state.active_channel_id == 200
        assert state.next_expected == 1

    async def test_reset_restarts_at_one(self, game: CountingGame, store: StateStore):
        for n in ("1", "2", "3"):
            await game.submit(CHANNEL, n)
        channel_id = await game.reset()
        assert channel_id == CHANNEL
        assert game.state.next_expected == 1
        assert (await store.load_counting_state()).next_expected == 1

    async def test_reset_unconfigured_raises(self, store: StateStore):
        game = CountingGame(store)
        with pytest.raises(CountingNotConfiguredError) as exc_info:
            await game.reset()
        assert exc_info.value.message == NOT_CONFIGURED_TEXT

    async def test_load_restores_persisted_progress(self, game: CountingGame, store: StateStore):
        await game.submit(CHANNEL, "1")
        await game.submit(CHANNEL, "2")
        restarted = CountingGame(store)
        state = await restarted.load()
        assert state.active_channel_id == CHANNEL
        assert state.next_expected == 3
