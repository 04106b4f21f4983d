"""Discord bot for Kira Bot.

Runs alongside the FastAPI keep-alive server on the same event loop. Routes
gateway traffic to the three stateful engines (counting game, reaction
roles, embed builder) and to the stateless fun/utility commands.

Text commands use a prefix (``.`` by default); admin features are slash
commands. Unknown text commands are ignored silently.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import discord
import httpx
from discord import Intents, app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError

from kirabot.core.cooldown import CooldownStore
from kirabot.core.counting import NOT_CONFIGURED_TEXT, CountingGame, CountVerdict
from kirabot.core.embed_builder import DraftOutcome, DraftStore, EmbedBuilder
from kirabot.core.fun import (
    eight_ball_answer,
    flip_coin,
    format_uptime,
    memory_usage_mb,
    parse_purge_amount,
    ship_compatibility,
    ship_name,
    ship_tier,
)
from kirabot.core.reaction_roles import ReactionRoleEngine, emoji_key_for
from kirabot.discord.embeds import (
    build_eight_ball_embed,
    build_help_embed,
    build_ship_embed,
    build_status_embed,
    build_userinfo_embed,
)
from kirabot.discord.helpers import (
    TextCommand,
    can_manage_messages,
    is_admin,
    is_greeting,
    parse_text_command,
)
from kirabot.errors import (
    CountingNotConfiguredError,
    KiraError,
    StateConflictError,
    TransientExternalError,
)
from kirabot.jokes import fetch_joke

if TYPE_CHECKING:
    from kirabot.config import Settings
    from kirabot.core.timers import TimerScheduler
    from kirabot.db.store import StateStore

logger = logging.getLogger(__name__)

COUNT_ACK_EMOJI = "✔️"
COUNT_ACK_DELAY_SECONDS = 0.75
WRONG_COUNT_GRACE_SECONDS = 3.0
PURGE_CONFIRM_SECONDS = 5.0
RESET_PURGE_LIMIT = 100
PRESENCE_TEXT = "🎧 Listening to xSleepyo"

TextHandler = Callable[[discord.Message, TextCommand], Awaitable[None]]


class KiraBot(commands.Bot):
    """The Kira Bot Discord client and command dispatcher.

    Owns the in-memory stores (embed drafts, status cooldowns) and hands
    them to the engines; nothing lives in module globals.
    """

    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        *,
        drafts: DraftStore | None = None,
        timer_scheduler: TimerScheduler | None = None,
        http_client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        intents = Intents.default()
        intents.message_content = True
        intents.members = True  # Reaction removals arrive without a member attached

        super().__init__(
            command_prefix=settings.kira_prefix,
            intents=intents,
            help_command=None,
            description="Kira Bot -- counting game, reaction roles, and embed builder.",
        )
        self.settings = settings
        self.store = store
        self.counting = CountingGame(store)
        self.reaction_roles = ReactionRoleEngine(store)
        self.drafts = drafts if drafts is not None else DraftStore()
        self.embed_builder = EmbedBuilder(self.drafts, scheduler=timer_scheduler)
        self.status_cooldowns = CooldownStore()
        self.http_client = http_client
        self.rng = rng or random.Random()
        self.count_ack_delay = COUNT_ACK_DELAY_SECONDS
        self._started_monotonic = time.monotonic()
        self._ready_once = False
        self._text_commands: dict[str, TextHandler] = {
            "help": self._cmd_help,
            "ship": self._cmd_ship,
            "purge": self._cmd_purge,
            "flip": self._cmd_flip,
            "userinfo": self._cmd_userinfo,
            "8ball": self._cmd_eight_ball,
            "status": self._cmd_status,
            "joke": self._cmd_joke,
        }
        self._setup_commands()

    @property
    def text_command_names(self) -> list[str]:
        return sorted(self._text_commands)

    def _setup_commands(self) -> None:
        """Register slash commands on the bot's command tree."""

        @self.tree.command(
            name="countinggame",
            description="Sets up the counting game in a specified channel (Admin/Owner only).",
        )
        @app_commands.describe(channel="The channel where the counting game will take place.")
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        async def countinggame_command(
            interaction: discord.Interaction,
            channel: discord.TextChannel,
        ) -> None:
            await self._handle_countinggame(interaction, channel)

        @self.tree.command(
            name="resetcounting",
            description="Resets the counting game channel and restarts the count from 1 (Admin/Owner only).",
        )
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        async def resetcounting_command(interaction: discord.Interaction) -> None:
            await self._handle_resetcounting(interaction)

        @self.tree.command(
            name="embed",
            description="Starts an interactive conversation to build and send a new embed.",
        )
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        async def embed_command(interaction: discord.Interaction) -> None:
            await self._handle_embed(interaction)

        @self.tree.command(
            name="reactionrole",
            description="Sets up a reaction role on a specific message (Admin only).",
        )
        @app_commands.describe(
            message_id="The ID of the message to monitor for reactions.",
            emoji="The emoji users must react with (e.g., 👍 or a custom server emoji).",
            role="The role to assign/remove.",
            channel="The channel the message is in (defaults to current channel).",
        )
        @app_commands.default_permissions(administrator=True)
        @app_commands.guild_only()
        async def reactionrole_command(
            interaction: discord.Interaction,
            message_id: str,
            emoji: str,
            role: discord.Role,
            channel: discord.TextChannel | None = None,
        ) -> None:
            await self._handle_reactionrole(interaction, message_id, emoji, role, channel)

    async def setup_hook(self) -> None:
        """Called before connecting. Syncs slash commands."""
        try:
            if self.settings.discord_guild_id:
                guild = discord.Object(id=int(self.settings.discord_guild_id))
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info("discord_commands_synced guild_id=%s", self.settings.discord_guild_id)
            else:
                await self.tree.sync()
                logger.info("discord_commands_synced globally")
        except discord.HTTPException:
            logger.exception("discord_commands_sync_failed")

    async def on_ready(self) -> None:
        """Called on every (re)connect; presence is refreshed each time."""
        user = self.user
        logger.info("discord_bot_ready user=%s guilds=%d", user.name if user else "unknown", len(self.guilds))
        if not self._ready_once:
            self._started_monotonic = time.monotonic()
            self._ready_once = True
        try:
            await self.change_presence(
                activity=discord.CustomActivity(name=PRESENCE_TEXT),
                status=discord.Status.online,
            )
        except (discord.HTTPException, ConnectionError):
            logger.warning("discord_presence_update_failed", exc_info=True)

    # ------------------------------------------------------------------
    # Message pipeline
    # ------------------------------------------------------------------

    async def on_message(self, message: discord.Message) -> None:
        """Counting check, then the embed conversation, then text commands."""
        if message.author.bot or message.guild is None:
            return

        await self._handle_count(message)

        outcome = await self.embed_builder.handle_message(message)
        if outcome is not DraftOutcome.IGNORED:
            return

        await self.dispatch_text(message)

    async def _handle_count(self, message: discord.Message) -> None:
        if not self.counting.is_counting_channel(message.channel.id):
            return

        result = await self.counting.submit(message.channel.id, message.content)
        if result.verdict is CountVerdict.CORRECT:
            await asyncio.sleep(self.count_ack_delay)
            try:
                await message.add_reaction(COUNT_ACK_EMOJI)
            except discord.HTTPException:
                # The count already advanced; only the acknowledgement is lost.
                logger.warning(
                    "counting_ack_failed message=%s number=%s",
                    message.id,
                    result.number,
                    exc_info=True,
                )
        elif result.verdict is CountVerdict.WRONG:
            try:
                await message.channel.send(
                    f"Wrong Number! The next number was **{result.expected}**. Try again.",
                    delete_after=WRONG_COUNT_GRACE_SECONDS,
                )
            except discord.HTTPException:
                logger.warning("counting_wrong_notice_failed channel=%s", message.channel.id)
            await message.delete(delay=WRONG_COUNT_GRACE_SECONDS)

    async def dispatch_text(self, message: discord.Message) -> None:
        """Route a greeting alias or a prefixed text command."""
        if is_greeting(message.content):
            await self._safe_send(message.channel, "Hey!, how are you?")
            return

        command = parse_text_command(message.content, self.settings.kira_prefix)
        if command is None:
            return
        handler = self._text_commands.get(command.name)
        if handler is None:
            return

        try:
            await handler(message, command)
        except discord.HTTPException:
            logger.exception("text_command_failed name=%s channel=%s", command.name, message.channel.id)

    # ------------------------------------------------------------------
    # Text commands
    # ------------------------------------------------------------------

    async def _cmd_help(self, message: discord.Message, command: TextCommand) -> None:
        await message.channel.send(embed=build_help_embed(self.settings.kira_prefix))

    async def _cmd_ship(self, message: discord.Message, command: TextCommand) -> None:
        first = message.author
        second = message.mentions[0] if message.mentions else self.user
        if second is None:
            return
        if first.id == second.id:
            await message.channel.send(
                "You cannot ship yourself with yourself! Mention someone else."
            )
            return

        compatibility = ship_compatibility(first.id, second.id)
        embed = build_ship_embed(
            first_mention=first.mention,
            second_mention=second.mention,
            name=ship_name(first.name, second.name),
            compatibility=compatibility,
            tier=ship_tier(compatibility, first.name, second.name),
            requested_by=str(message.author),
        )
        await message.channel.send(embed=embed)

    async def _cmd_purge(self, message: discord.Message, command: TextCommand) -> None:
        if not can_manage_messages(message.author):
            await message.channel.send("❌ You do not have permission to manage messages.")
            return

        amount = parse_purge_amount(command.args[0] if command.args else None)
        if amount is None:
            await message.channel.send(
                "Please provide a number between 1 and 100 for messages to delete."
            )
            return

        try:
            deleted = await message.channel.purge(limit=amount)
        except discord.HTTPException:
            logger.exception("purge_failed channel=%s amount=%d", message.channel.id, amount)
            await message.channel.send(
                '❌ I was unable to delete messages. Make sure my role has "Manage Messages" permission.'
            )
            return

        logger.info("purge_done channel=%s deleted=%d", message.channel.id, len(deleted))
        await message.channel.send(
            f"✅ Successfully deleted {len(deleted)} messages.",
            delete_after=PURGE_CONFIRM_SECONDS,
        )

    async def _cmd_flip(self, message: discord.Message, command: TextCommand) -> None:
        await message.channel.send(f"🪙 The coin landed on **{flip_coin(self.rng)}**!")

    async def _cmd_userinfo(self, message: discord.Message, command: TextCommand) -> None:
        members = [m for m in message.mentions if isinstance(m, discord.Member)]
        member = members[0] if members else message.author
        if not isinstance(member, discord.Member):
            return

        roles = [role.mention for role in reversed(member.roles) if not role.is_default()]
        embed = build_userinfo_embed(
            tag=str(member),
            user_id=member.id,
            nickname=member.nick,
            avatar_url=member.display_avatar.url,
            created_at=member.created_at,
            joined_at=member.joined_at,
            role_mentions=roles,
            color=member.color.value,
            requested_by=str(message.author),
        )
        await message.channel.send(embed=embed)

    async def _cmd_eight_ball(self, message: discord.Message, command: TextCommand) -> None:
        question = command.rest
        if not question:
            await message.channel.send("Please ask the magic 8-ball a question!")
            return
        embed = build_eight_ball_embed(
            question,
            eight_ball_answer(self.rng),
            asked_by=str(message.author),
        )
        await message.channel.send(embed=embed)

    async def _cmd_status(self, message: discord.Message, command: TextCommand) -> None:
        # A second run inside the window is most likely a duplicate process; stay quiet.
        if not self.status_cooldowns.try_acquire(message.channel.id):
            logger.debug("status_cooldown_skip channel=%s", message.channel.id)
            return

        latency = self.latency
        embed = build_status_embed(
            latency_ms=round(latency * 1000) if math.isfinite(latency) else 0,
            guild_count=len(self.guilds),
            memory_mb=memory_usage_mb(),
            uptime=format_uptime(self.uptime_seconds),
            timestamp=datetime.now(UTC),
        )
        await message.channel.send(embed=embed)

    async def _cmd_joke(self, message: discord.Message, command: TextCommand) -> None:
        try:
            joke = await fetch_joke(self.settings.joke_api_url, client=self.http_client)
        except TransientExternalError as exc:
            await message.channel.send(exc.message)
            return
        if joke is None:
            await message.channel.send("Sorry, I couldn't fetch a joke right now.")
            return
        await message.channel.send(f"**Here's a joke!**\n\n{joke}")

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started_monotonic

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    async def _require_admin(self, interaction: discord.Interaction, action: str) -> bool:
        """Re-check Administrator at runtime; default permissions can be overridden per guild."""
        if is_admin(interaction.user):
            return True
        await interaction.response.send_message(
            f"❌ You need Administrator permissions to {action}.",
            ephemeral=True,
        )
        return False

    async def _handle_countinggame(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel,
    ) -> None:
        """Handle /countinggame -- point the game at *channel* and restart from 1."""
        if not await self._require_admin(interaction, "set up the counting game"):
            return
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message(
                "Please select a valid text channel!", ephemeral=True
            )
            return

        try:
            await self.counting.setup(channel.id)
        except SQLAlchemyError:
            logger.exception("countinggame_persist_failed channel=%s", channel.id)
            await interaction.response.send_message(
                "❌ I couldn't save the counting game settings. Try again in a moment.",
                ephemeral=True,
            )
            return

        await interaction.response.send_message(
            f"Counting Game has been successfully set up in {channel.mention}!"
        )
        await self._safe_send(channel, "**Counting Game Created!** Start counting from **1**!")

    async def _handle_resetcounting(self, interaction: discord.Interaction) -> None:
        """Handle /resetcounting -- clear recent history and restart from 1."""
        if not await self._require_admin(interaction, "reset the counting game"):
            return
        if not self.counting.state.is_configured:
            await interaction.response.send_message(NOT_CONFIGURED_TEXT, ephemeral=True)
            return

        # The purge below must not be able to delete the response.
        await interaction.response.defer(ephemeral=True)
        try:
            channel_id = await self.counting.reset()
        except CountingNotConfiguredError as exc:
            await interaction.followup.send(exc.message, ephemeral=True)
            return
        except SQLAlchemyError:
            logger.exception("resetcounting_persist_failed")
            await interaction.followup.send(
                "❌ I couldn't save the reset. Try again in a moment.", ephemeral=True
            )
            return

        channel = await self._resolve_text_channel(channel_id)
        if channel is None:
            await interaction.followup.send(
                f"The count was reset to **1**, but I can't see <#{channel_id}> anymore. "
                "Use /countinggame to pick a new channel.",
                ephemeral=True,
            )
            return

        try:
            await channel.purge(limit=RESET_PURGE_LIMIT)
        except discord.HTTPException:
            logger.warning("resetcounting_purge_failed channel=%s", channel_id, exc_info=True)

        await self._safe_send(channel, "**Counting Game Reset!** Start counting from **1**!")
        try:
            await interaction.followup.send(
                f"The Counting Game in {channel.mention} has been **reset**! "
                "Start counting from **1**!",
                ephemeral=True,
            )
        except discord.HTTPException:
            logger.warning("resetcounting_followup_failed channel=%s", channel_id, exc_info=True)

    async def _handle_embed(self, interaction: discord.Interaction) -> None:
        """Handle /embed -- start the interactive embed builder."""
        if not await self._require_admin(interaction, "use the embed builder"):
            return
        channel = interaction.channel
        if interaction.guild is None or channel is None:
            await interaction.response.send_message(
                "The embed builder only works inside a server channel.", ephemeral=True
            )
            return

        try:
            await self.embed_builder.start(
                user=interaction.user,
                channel=channel,  # type: ignore[arg-type]
                channel_id=channel.id,
                guild_id=interaction.guild.id,
            )
        except StateConflictError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return
        except TransientExternalError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return

        await interaction.response.send_message(
            "✍️ **Embed Builder Started!** Please check the next message.",
            ephemeral=True,
        )

    async def _handle_reactionrole(
        self,
        interaction: discord.Interaction,
        message_id: str,
        emoji: str,
        role: discord.Role,
        channel: discord.TextChannel | None = None,
    ) -> None:
        """Handle /reactionrole -- bind an emoji on a message to a role."""
        if not await self._require_admin(interaction, "set up reaction roles"):
            return
        target = channel or interaction.channel
        if interaction.guild is None or not isinstance(target, discord.TextChannel):
            await interaction.response.send_message(
                "❌ The target channel must be a text channel.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        try:
            await self.reaction_roles.register(
                guild_id=interaction.guild.id,
                channel=target,
                message_id=message_id,
                emoji_text=emoji,
                role_id=role.id,
            )
        except KiraError as exc:
            await interaction.followup.send(f"❌ {exc.message}", ephemeral=True)
            return
        except SQLAlchemyError:
            logger.exception("reactionrole_persist_failed message=%s", message_id)
            await interaction.followup.send(
                "❌ I couldn't save the reaction role. Try again in a moment.",
                ephemeral=True,
            )
            return

        await interaction.followup.send(
            f"✅ Reaction role set! Reacting to the message in {target.mention} with {emoji} "
            f"will now grant the {role.mention} role.",
            ephemeral=True,
        )

    # ------------------------------------------------------------------
    # Reaction-role events
    # ------------------------------------------------------------------

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        await self._handle_reaction(payload, added=True)

    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent) -> None:
        await self._handle_reaction(payload, added=False)

    async def _handle_reaction(self, payload: discord.RawReactionActionEvent, *, added: bool) -> None:
        if payload.guild_id is None:
            return
        if self.user is not None and payload.user_id == self.user.id:
            return
        guild = self.get_guild(payload.guild_id)
        if guild is None:
            return

        member = payload.member or guild.get_member(payload.user_id)
        if member is None:
            try:
                member = await guild.fetch_member(payload.user_id)
            except discord.HTTPException:
                logger.warning(
                    "reaction_member_lookup_failed guild=%s user=%s",
                    payload.guild_id,
                    payload.user_id,
                )
                return

        try:
            await self.reaction_roles.sync(
                guild=guild,
                member=member,
                message_id=payload.message_id,
                emoji_key=emoji_key_for(payload.emoji),
                added=added,
            )
        except SQLAlchemyError:
            logger.exception("reaction_role_lookup_failed message=%s", payload.message_id)

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        if payload.guild_id is None:
            return
        await self._cleanup_bindings(payload.guild_id, [payload.message_id])

    async def on_raw_bulk_message_delete(self, payload: discord.RawBulkMessageDeleteEvent) -> None:
        if payload.guild_id is None:
            return
        await self._cleanup_bindings(payload.guild_id, sorted(payload.message_ids))

    async def _cleanup_bindings(self, guild_id: int, message_ids: list[int]) -> None:
        for message_id in message_ids:
            try:
                await self.reaction_roles.cleanup_message(guild_id=guild_id, message_id=message_id)
            except SQLAlchemyError:
                logger.exception("reaction_role_cleanup_failed message=%s", message_id)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _resolve_text_channel(self, channel_id: int) -> discord.TextChannel | None:
        channel = self.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.fetch_channel(channel_id)
            except discord.HTTPException:
                logger.warning("channel_fetch_failed channel=%s", channel_id)
                return None
        return channel if isinstance(channel, discord.TextChannel) else None

    async def _safe_send(self, channel: discord.abc.Messageable, content: str) -> None:
        try:
            await channel.send(content)
        except discord.HTTPException:
            logger.warning("discord_send_failed content=%.40s", content, exc_info=True)

    async def close(self) -> None:
        """Clean shutdown: drop in-memory drafts and cooldowns, then disconnect."""
        self.embed_builder.shutdown()
        self.status_cooldowns.clear()
        await super().close()


async def start_discord_bot(bot: KiraBot, token: str) -> asyncio.Task[None]:
    """Start *bot* as a background task in the current event loop.

    Returns the task so the caller can await it during shutdown.
    """

    async def _run_bot() -> None:
        try:
            await bot.start(token)
        except asyncio.CancelledError:
            logger.info("discord_bot_cancelled")
        except discord.LoginFailure:
            logger.critical("discord_login_failed -- check TOKEN")
        except Exception:  # bot.start can raise connection and auth errors
            logger.exception("discord_bot_error")
        finally:
            if not bot.is_closed():
                with contextlib.suppress(discord.HTTPException, ConnectionError):
                    await bot.close()

    task = asyncio.create_task(_run_bot(), name="discord-bot")
    logger.info("discord_bot_started")
    return task
