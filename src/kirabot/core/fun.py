"""Stateless logic behind the fun and utility commands.

Pure functions only; the embeds that present these results live in
``kirabot.discord.embeds``.
"""

from __future__ import annotations

import random
import re
import resource
import sys
from dataclasses import dataclass

EIGHT_BALL_RESPONSES: tuple[str, ...] = (
    "It is certain.",
    "It is decidedly so.",
    "Without a doubt.",
    "Yes, definitely.",
    "You may rely on it.",
    "As I see it, yes.",
    "Most likely.",
    "Outlook good.",
    "Yes.",
    "Signs point to yes.",
    "Reply hazy, try again.",
    "Ask again later.",
    "Better not tell you now.",
    "Cannot predict now.",
    "Concentrate and ask again.",
    "Don't count on it.",
    "My reply is no.",
    "My sources say no.",
    "Outlook not so good.",
    "Very doubtful.",
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(frozen=True)
class ShipTier:
    color: int
    blurb: str


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 2**32 if value >= 2**31 else value


def _string_hash(seed: str) -> int:
    """``h * 31 + c`` string hash; only the shifted term wraps to 32 bits."""
    value = 0
    for ch in seed:
        value = ord(ch) + (_to_int32(_to_int32(value) << 5) - value)
    return value


def ship_compatibility(first_id: int, second_id: int) -> int:
    """Deterministic 0-100 compatibility for an ordered pair of user ids."""
    seed = str(first_id)[:5] + str(second_id)[:5]
    return abs(_string_hash(seed)) % 101


def ship_name(first: str, second: str) -> str:
    """Front half of the first name + back half of the second, capitalized."""
    first = _NON_ALNUM_RE.sub("", first)
    second = _NON_ALNUM_RE.sub("", second)
    front = first[: (len(first) + 1) // 2]
    back = second[len(second) - (len(second) + 1) // 2 :]
    name = front + back
    return name[:1].upper() + name[1:]


def ship_tier(compatibility: int, first: str, second: str) -> ShipTier:
    if compatibility >= 90:
        return ShipTier(0x00FF00, "A perfect match! Soulmates detected!")
    if compatibility >= 60:
        return ShipTier(0xFFA500, "A strong connection! This ship has smooth sailing ahead.")
    if compatibility >= 30:
        return ShipTier(0xFFFF00, "There's potential, but watch out for a few icebergs.")
    return ShipTier(0xFF0000, f"Compatibility between **{first}** and **{second}**.")


def eight_ball_answer(rng: random.Random | None = None) -> str:
    return (rng or random).choice(EIGHT_BALL_RESPONSES)


def flip_coin(rng: random.Random | None = None) -> str:
    return "Heads" if (rng or random).random() < 0.5 else "Tails"


def format_uptime(seconds: float) -> str:
    """Format a duration as ``Xd, Xh, Xm, Xs``."""
    total = int(max(seconds, 0))
    days, total = divmod(total, 86400)
    hours, total = divmod(total, 3600)
    minutes, secs = divmod(total, 60)
    return f"{days}d, {hours}h, {minutes}m, {secs}s"


def memory_usage_mb() -> float:
    """Peak resident set size of this process in MB."""
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, Linux reports kilobytes.
    if sys.platform == "darwin":
        return usage / 1024 / 1024
    return usage / 1024


def parse_purge_amount(raw: str | None) -> int | None:
    """Accept 1-100, anything else is None."""
    if raw is None or not raw.strip().isdigit():
        return None
    amount = int(raw)
    if not 1 <= amount <= 100:
        return None
    return amount
