"""Tests for the stateless fun/utility logic and the status cooldown."""

import random

import pytest

from kirabot.core.cooldown import STATUS_COOLDOWN_SECONDS, CooldownStore
from kirabot.core.fun import (
    EIGHT_BALL_RESPONSES,
    eight_ball_answer,
    flip_coin,
    format_uptime,
    memory_usage_mb,
    parse_purge_amount,
    ship_compatibility,
    ship_name,
    ship_tier,
)


class TestShip:
    def test_compatibility_is_deterministic(self) -> None:
        first = ship_compatibility(123456789012345678, 876543210987654321)
        second = ship_compatibility(123456789012345678, 876543210987654321)
        assert first == second

    def test_compatibility_short_ids(self) -> None:
        # seed "12": hash = 49 * 31 + 50 = 1569
        assert ship_compatibility(1, 2) == 1569 % 101

    @pytest.mark.parametrize(
        ("first", "second", "expected"),
        [
            (12345678901234, 98765432109876, 13),
            (99999888887777, 99999000001111, 20),
            (31415926535897, 27182818284590, 87),
        ],
    )
    def test_compatibility_matches_live_bot(self, first: int, second: int, expected: int) -> None:
        # the running hash grows past 32 bits; only the shifted term wraps
        assert ship_compatibility(first, second) == expected

    def test_compatibility_in_range(self) -> None:
        rng = random.Random(7)
        for _ in range(200):
            a = rng.randrange(10**17, 10**18)
            b = rng.randrange(10**17, 10**18)
            assert 0 <= ship_compatibility(a, b) <= 100

    def test_name_halves(self) -> None:
        assert ship_name("Alice", "Bob") == "Aliob"

    def test_name_strips_symbols(self) -> None:
        assert ship_name("x_X!", "k.i.r.a") == "Xra"

    @pytest.mark.parametrize(
        ("score", "color"),
        [(100, 0x00FF00), (90, 0x00FF00), (60, 0xFFA500), (30, 0xFFFF00), (29, 0xFF0000), (0, 0xFF0000)],
    )
    def test_tiers(self, score: int, color: int) -> None:
        assert ship_tier(score, "A", "B").color == color


class TestRandomAnswers:
    def test_eight_ball_answer_from_list(self) -> None:
        assert eight_ball_answer(random.Random(1)) in EIGHT_BALL_RESPONSES

    def test_flip_coin(self) -> None:
        rng = random.Random(3)
        results = {flip_coin(rng) for _ in range(50)}
        assert results == {"Heads", "Tails"}


class TestFormatting:
    def test_uptime(self) -> None:
        assert format_uptime(90061) == "1d, 1h, 1m, 1s"

    def test_uptime_zero(self) -> None:
        assert format_uptime(0) == "0d, 0h, 0m, 0s"

    def test_memory_usage_positive(self) -> None:
        assert memory_usage_mb() > 0


class TestPurgeAmount:
    @pytest.mark.parametrize(("raw", "expected"), [("1", 1), ("50", 50), ("100", 100)])
    def test_valid(self, raw: str, expected: int) -> None:
        assert parse_purge_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "0", "101", "-5", "ten", "2.5"])
    def test_invalid(self, raw: str | None) -> None:
        assert parse_purge_amount(raw) is None


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCooldownStore:
    def test_second_call_inside_window_refused(self) -> None:
        clock = FakeClock()
        cooldowns = CooldownStore(clock=clock)
        assert cooldowns.try_acquire(1)
        clock.now += STATUS_COOLDOWN_SECONDS - 0.1
        assert not cooldowns.try_acquire(1)

    def test_allowed_after_window(self) -> None:
        clock = FakeClock()
        cooldowns = CooldownStore(clock=clock)
        assert cooldowns.try_acquire(1)
        clock.now += STATUS_COOLDOWN_SECONDS
        assert cooldowns.try_acquire(1)

    def test_keys_are_independent(self) -> None:
        cooldowns = CooldownStore(clock=FakeClock())
        assert cooldowns.try_acquire(1)
        assert cooldowns.try_acquire(2)

    def test_clear(self) -> None:
        cooldowns = CooldownStore(clock=FakeClock())
        cooldowns.try_acquire(1)
        cooldowns.clear()
        assert cooldowns.try_acquire(1)
