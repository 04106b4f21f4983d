"""Discord embed builders for Kira Bot.

Each builder takes plain data and returns a styled ``discord.Embed`` ready to
send. No Discord API calls happen here.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import discord

if TYPE_CHECKING:
    from kirabot.core.embed_builder import EmbedDraft
    from kirabot.core.fun import ShipTier

COLOR_INFO = 0x3498DB  # Blue: help, userinfo fallback
COLOR_MAGIC = 0x9B59B6  # Purple: 8-ball
COLOR_STATUS = 0x00FF00  # Green: status report


def build_help_embed(prefix: str) -> discord.Embed:
    """Build the command overview shown by ``<prefix>help``."""
    embed = discord.Embed(
        title="Kira Bot Commands",
        description="Here is a list of commands you can use:",
        color=COLOR_INFO,
    )
    embed.add_field(
        name="Admin Commands (Slash)",
        value=(
            "`/countinggame` - Setup the counting channel.\n"
            "`/resetcounting` - Reset the count to 1.\n"
            "`/embed` - Starts an interactive conversation to build an embed.\n"
            "`/reactionrole` - Set up a reaction role on a message."
        ),
        inline=False,
    )
    embed.add_field(
        name="Moderation & Utility (Manage Messages Required)",
        value=f"`{prefix}purge [number]` - Delete messages.",
        inline=False,
    )
    embed.add_field(
        name="General Utility",
        value=(
            f"`{prefix}status` - Check the bot's ping and uptime.\n"
            f"`{prefix}userinfo [user]` - Get information about a user."
        ),
        inline=False,
    )
    embed.add_field(
        name="Counting Game",
        value="Just post the next number in the counting channel!",
        inline=False,
    )
    embed.add_field(
        name="Fun Commands",
        value=(
            f"`{prefix}joke` - Get a random joke.\n"
            f"`{prefix}8ball [question]` - Ask the magic 8-ball a question.\n"
            f"`{prefix}flip` - Flip a coin (Heads or Tails).\n"
            f"`{prefix}ship [user]` - Calculate compatibility."
        ),
        inline=False,
    )
    embed.set_footer(text=f"Prefix: {prefix}")
    return embed


def build_ship_embed(
    *,
    first_mention: str,
    second_mention: str,
    name: str,
    compatibility: int,
    tier: ShipTier,
    requested_by: str,
) -> discord.Embed:
    embed = discord.Embed(
        title="Compatibility Calculator",
        description=tier.blurb,
        color=tier.color,
    )
    embed.add_field(name="Pair", value=f"{first_mention} + {second_mention}", inline=False)
    embed.add_field(name="Ship Name", value=f"**{name}**", inline=False)
    embed.add_field(name="Compatibility", value=f"**{compatibility}%**", inline=False)
    embed.set_footer(text=f"Requested by {requested_by}")
    return embed


def build_eight_ball_embed(question: str, answer: str, asked_by: str) -> discord.Embed:
    embed = discord.Embed(title="Magic 8-Ball", color=COLOR_MAGIC)
    embed.add_field(name="Question", value=question[:1024], inline=False)
    embed.add_field(name="Answer", value=answer, inline=False)
    embed.set_footer(text=f"Asked by {asked_by}")
    return embed


def build_userinfo_embed(
    *,
    tag: str,
    user_id: int,
    nickname: str | None,
    avatar_url: str | None,
    created_at: datetime,
    joined_at: datetime | None,
    role_mentions: list[str],
    color: int,
    requested_by: str,
) -> discord.Embed:
    """Build the ``userinfo`` card.

    Dates are rendered as Discord relative timestamps so every reader sees
    them in their own timezone.
    """
    embed = discord.Embed(title=f"User Information: {tag}", color=color or COLOR_INFO)
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.add_field(name="User ID", value=str(user_id), inline=False)
    embed.add_field(name="Nickname", value=nickname or "None", inline=False)
    embed.add_field(
        name="Account Creation Date",
        value=discord.utils.format_dt(created_at, style="R"),
        inline=False,
    )
    embed.add_field(
        name="Joined Server Date",
        value=discord.utils.format_dt(joined_at, style="R") if joined_at else "Unknown",
        inline=False,
    )
    roles = ", ".join(role_mentions) or "None"
    embed.add_field(name="Roles", value=roles[:1024], inline=False)
    embed.set_footer(text=f"Requested by {requested_by}")
    return embed


def _ansi_green(value: str) -> str:
    return f"```ansi\n\x1b[0;32m{value}\x1b[0m\n```"


def build_status_embed(
    *,
    latency_ms: int,
    guild_count: int,
    memory_mb: float,
    uptime: str,
    timestamp: datetime | None = None,
) -> discord.Embed:
    embed = discord.Embed(title="Bot Status Report", color=COLOR_STATUS, timestamp=timestamp)
    embed.add_field(name="**Connection**", value=_ansi_green("Online"), inline=True)
    embed.add_field(name="**Ping**", value=_ansi_green(f"{latency_ms}ms"), inline=True)
    embed.add_field(name="**Servers**", value=_ansi_green(str(guild_count)), inline=True)
    embed.add_field(name="**Memory**", value=_ansi_green(f"{memory_mb:.2f} MB"), inline=True)
    embed.add_field(name="**Uptime**", value=_ansi_green(uptime), inline=False)
    embed.set_footer(text="Updated Live")
    return embed


def build_draft_embed(draft: EmbedDraft, *, timestamp: datetime) -> discord.Embed:
    """Materialize an embed draft (used for both the preview and the final send)."""
    embed = discord.Embed(
        title=draft.title,
        description=draft.description or None,
        color=draft.color,
        timestamp=timestamp,
    )
    if draft.footer:
        embed.set_footer(text=draft.footer)
    return embed
