"""Interactive embed builder: a per-user conversation state machine.

An admin runs ``/embed`` and then answers five prompts in the same channel:

    awaiting_title -> awaiting_description -> awaiting_footer
        -> awaiting_color -> awaiting_channel -> awaiting_send

Only messages from that admin, in that channel, feed the machine. "cancel"
ends it from any state. Invalid input is answered with an explanation and
left in the channel; accepted input is deleted to keep the channel tidy.
Drafts live in memory only and are abandoned after five minutes without a
qualifying message.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

import discord

from kirabot.core.timers import AsyncioTimerScheduler, TimerHandle, TimerScheduler
from kirabot.discord.embeds import build_draft_embed
from kirabot.errors import StateConflictError, TransientExternalError, ValidationError

logger = logging.getLogger(__name__)

DRAFT_TIMEOUT_SECONDS = 300
TITLE_MAX_LENGTH = 256
DESCRIPTION_MAX_LENGTH = 4096
FOOTER_MAX_LENGTH = 2048

DEFAULT_COLOR = 0x3498DB
COLOR_MAP: dict[str, int] = {
    "RED": 0xFF0000,
    "GREEN": 0x00FF00,
    "BLUE": 0x0000FF,
    "YELLOW": 0xFFFF00,
    "PURPLE": 0x9B59B6,
    "CYAN": 0x00FFFF,
    "DEFAULT": DEFAULT_COLOR,
}
_HEX_COLOR_RE = re.compile(r"(?:0[xX]|#)([0-9a-fA-F]{1,6})")


class DraftStatus(enum.Enum):
    AWAITING_TITLE = "awaiting_title"
    AWAITING_DESCRIPTION = "awaiting_description"
    AWAITING_FOOTER = "awaiting_footer"
    AWAITING_COLOR = "awaiting_color"
    AWAITING_CHANNEL = "awaiting_channel"
    AWAITING_SEND = "awaiting_send"


class DraftOutcome(enum.Enum):
    """What a single message did to the conversation."""

    IGNORED = "ignored"
    ADVANCED = "advanced"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    SENT = "sent"
    SEND_FAILED = "send_failed"
    TARGET_MISSING = "target_missing"


@dataclass
class EmbedDraft:
    """An in-progress embed. ``channel_id`` is where the builder was started."""

    user_id: int
    guild_id: int
    channel_id: int
    title: str = ""
    description: str = ""
    footer: str | None = None
    color: int = DEFAULT_COLOR
    target_channel_id: int | None = None
    status: DraftStatus = DraftStatus.AWAITING_TITLE


@dataclass
class DraftSession:
    """A draft plus the conversation plumbing around it."""

    draft: EmbedDraft
    channel: discord.abc.Messageable
    user_mention: str
    idle_timer: TimerHandle | None = None
    first_input_timer: TimerHandle | None = None

    def cancel_timers(self) -> None:
        for timer in (self.idle_timer, self.first_input_timer):
            if timer is not None:
                timer.cancel()
        self.idle_timer = None
        self.first_input_timer = None


class DraftStore:
    """In-memory drafts keyed by user id. At most one draft per user."""

    def __init__(self) -> None:
        self._sessions: dict[int, DraftSession] = {}

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: int) -> DraftSession | None:
        return self._sessions.get(user_id)

    def add(self, session: DraftSession) -> None:
        user_id = session.draft.user_id
        if user_id in self._sessions:
            raise StateConflictError(
                "You already have an active embed draft! Please finish or cancel it first."
            )
        self._sessions[user_id] = session

    def discard(self, session: DraftSession) -> bool:
        """Remove *session* if it is still the live draft for its user."""
        user_id = session.draft.user_id
        if self._sessions.get(user_id) is session:
            del self._sessions[user_id]
            return True
        return False

    def clear(self) -> None:
        for session in self._sessions.values():
            session.cancel_timers()
        self._sessions.clear()


# ---------------------------------------------------------------------------
# Per-state validation
# ---------------------------------------------------------------------------


def validate_title(text: str) -> str:
    if not text:
        raise ValidationError("❌ Please type a title for your embed.")
    if len(text) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"❌ Title is too long! Please keep it under {TITLE_MAX_LENGTH} characters."
        )
    return text


def validate_description(text: str) -> str:
    if len(text) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"❌ Description is too long! Please keep it under {DESCRIPTION_MAX_LENGTH} characters."
        )
    return text


def parse_footer(text: str) -> str | None:
    """Return None for "skip", otherwise the footer text."""
    if text.lower() == "skip":
        return None
    if len(text) > FOOTER_MAX_LENGTH:
        raise ValidationError(
            f"❌ Footer is too long! Please keep it under {FOOTER_MAX_LENGTH} characters."
        )
    return text


def parse_color(text: str) -> int:
    """Resolve a color name (RED, BLUE, ...) or a ``0x``/``#`` hex literal."""
    named = COLOR_MAP.get(text.upper())
    if named is not None:
        return named
    match = _HEX_COLOR_RE.fullmatch(text)
    if match:
        return int(match.group(1), 16)
    raise ValidationError(
        "❌ Invalid color. Please use a valid color name (RED, BLUE) "
        "or a hex code (e.g., 0xFF0000)."
    )


def resolve_target_channel(message: discord.Message) -> discord.TextChannel:
    """Pick the single text channel mentioned in *message* and check the bot can post there."""
    mentioned = message.channel_mentions
    if len(mentioned) != 1:
        raise ValidationError("❌ Please mention exactly one channel (e.g., `#general`).")
    channel = mentioned[0]
    if not isinstance(channel, discord.TextChannel):
        raise ValidationError("❌ The target must be a text channel.")

    guild = message.guild
    me = guild.me if guild is not None else None
    permissions = channel.permissions_for(me) if me is not None else None
    if permissions is None or not (permissions.send_messages and permissions.embed_links):
        raise ValidationError(
            f"❌ I do not have permission to send messages and/or embeds in {channel.mention}. "
            "Please check my permissions."
        )
    return channel


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class EmbedBuilder:
    """Drives every user's draft conversation.

    The draft store and the timer scheduler are injected so the owner
    controls their lifetime and tests control time.
    """

    def __init__(
        self,
        drafts: DraftStore,
        *,
        scheduler: TimerScheduler | None = None,
        timeout_seconds: float = DRAFT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.drafts = drafts
        self.scheduler = scheduler or AsyncioTimerScheduler()
        self.timeout_seconds = timeout_seconds
        self._clock = clock or (lambda: datetime.now(UTC))

    async def start(
        self,
        *,
        user: discord.abc.User,
        channel: discord.abc.Messageable,
        channel_id: int,
        guild_id: int,
    ) -> EmbedDraft:
        """Open a draft for *user* and post the first prompt.

        Raises StateConflictError if the user already has one; the existing
        draft is left untouched.
        """
        session = DraftSession(
            draft=EmbedDraft(user_id=user.id, guild_id=guild_id, channel_id=channel_id),
            channel=channel,
            user_mention=user.mention,
        )
        # Registration happens before any await so two starts can't both succeed.
        self.drafts.add(session)
        session.first_input_timer = self.scheduler.call_later(
            self.timeout_seconds, lambda: self._expire(session)
        )
        session.idle_timer = self.scheduler.call_later(
            self.timeout_seconds, lambda: self._expire(session)
        )
        logger.info("embed_draft_started user=%s channel=%s", user.id, channel_id)

        try:
            await channel.send(
                f"Hey {user.mention}, please type the **TITLE** you want for your embed. "
                f"(Max {TITLE_MAX_LENGTH} chars)"
            )
        except discord.HTTPException as exc:
            self._finish(session)
            raise TransientExternalError(
                "I couldn't post in this channel, so the embed builder was stopped."
            ) from exc
        return session.draft

    async def handle_message(self, message: discord.Message) -> DraftOutcome:
        """Feed one channel message to its author's draft, if it qualifies."""
        session = self.drafts.get(message.author.id)
        if session is None or message.channel.id != session.draft.channel_id:
            return DraftOutcome.IGNORED

        self._touch(session)
        text = message.content.strip()
        draft = session.draft

        if text.lower() == "cancel":
            self._finish(session)
            logger.info("embed_draft_cancelled user=%s status=%s", draft.user_id, draft.status.value)
            await self._delete_input(message)
            await self._reply(session, "🗑️ Embed draft successfully cancelled.")
            return DraftOutcome.CANCELLED

        if draft.status is DraftStatus.AWAITING_SEND:
            return await self._handle_send(session, message, text)

        try:
            reply = self._apply(draft, message, text)
        except ValidationError as exc:
            await self._reply(session, exc.message)
            return DraftOutcome.REJECTED

        await self._delete_input(message)
        if draft.status is DraftStatus.AWAITING_SEND:
            await self._send_preview(session)
        else:
            await self._reply(session, reply)
        return DraftOutcome.ADVANCED

    def shutdown(self) -> None:
        """Drop every draft and its timers."""
        self.drafts.clear()

    # -- state steps --

    def _apply(self, draft: EmbedDraft, message: discord.Message, text: str) -> str:
        """Validate *text* for the current state, store it, and advance.

        Returns the prompt for the next state. Raises ValidationError without
        touching the draft when the input is rejected.
        """
        if draft.status is DraftStatus.AWAITING_TITLE:
            draft.title = validate_title(text)
            draft.status = DraftStatus.AWAITING_DESCRIPTION
            return (
                f"✅ Title set to: **{text}**.\n\nNext, please type the **DESCRIPTION**. "
                f"(Max {DESCRIPTION_MAX_LENGTH} chars)"
            )

        if draft.status is DraftStatus.AWAITING_DESCRIPTION:
            draft.description = validate_description(text)
            draft.status = DraftStatus.AWAITING_FOOTER
            return (
                "✅ Description set.\n\nNext, please type the **FOOTER** text. "
                f'(Optional - type "skip" if you don\'t want a footer). (Max {FOOTER_MAX_LENGTH} chars)'
            )

        if draft.status is DraftStatus.AWAITING_FOOTER:
            draft.footer = parse_footer(text)
            draft.status = DraftStatus.AWAITING_COLOR
            return (
                "✅ Footer set.\n\nNext, please provide the **COLOR** for the sidebar. "
                "(Example: `RED`, `BLUE`, or hex code like `0xFF0000`)"
            )

        if draft.status is DraftStatus.AWAITING_COLOR:
            draft.color = parse_color(text)
            draft.status = DraftStatus.AWAITING_CHANNEL
            return (
                "✅ Color set.\n\nNext, please **MENTION THE CHANNEL** where you want the "
                "embed sent (e.g., `#announcements`)."
            )

        if draft.status is DraftStatus.AWAITING_CHANNEL:
            channel = resolve_target_channel(message)
            draft.target_channel_id = channel.id
            draft.status = DraftStatus.AWAITING_SEND
            return ""

        raise AssertionError(f"unhandled draft status {draft.status}")

    async def _send_preview(self, session: DraftSession) -> None:
        draft = session.draft
        preview = build_draft_embed(draft, timestamp=self._clock())
        await self._reply(
            session,
            f"🎉 **Embed Complete!** It will be sent to <#{draft.target_channel_id}>. "
            "Here is the preview:",
            embed=preview,
        )
        await self._reply(
            session,
            "Last step: Type `send` to finalize and send the embed, "
            "or type `cancel` to discard it.",
        )

    async def _handle_send(
        self,
        session: DraftSession,
        message: discord.Message,
        text: str,
    ) -> DraftOutcome:
        draft = session.draft
        if text.lower() != "send":
            await self._reply(
                session,
                "Unrecognized command. Type `send` to send or `cancel` to discard.",
            )
            return DraftOutcome.REJECTED

        # The draft is gone from here on, whatever happens to the send.
        self._finish(session)
        guild = message.guild
        target = (
            guild.get_channel(draft.target_channel_id)
            if guild is not None and draft.target_channel_id is not None
            else None
        )
        if target is None:
            logger.info("embed_draft_target_missing user=%s", draft.user_id)
            await self._reply(session, "❌ Could not find the target channel. Draft cleared.")
            return DraftOutcome.TARGET_MISSING

        await self._delete_input(message)
        try:
            await target.send(embed=build_draft_embed(draft, timestamp=self._clock()))
        except discord.HTTPException:
            logger.exception(
                "embed_draft_send_failed user=%s target=%s", draft.user_id, target.id
            )
            await self._reply(
                session,
                f"❌ Failed to send embed to {target.mention}. "
                "Check my permissions (Send Messages, Embed Links).",
            )
            return DraftOutcome.SEND_FAILED

        logger.info("embed_draft_sent user=%s target=%s", draft.user_id, target.id)
        await self._reply(
            session,
            f"🥳 **Success!** Your embed has been sent to {target.mention}. Draft cleared.",
        )
        return DraftOutcome.SENT

    # -- lifecycle --

    def _touch(self, session: DraftSession) -> None:
        """Record a qualifying input: restart the idle window."""
        if session.first_input_timer is not None:
            session.first_input_timer.cancel()
            session.first_input_timer = None
        if session.idle_timer is not None:
            session.idle_timer.cancel()
        session.idle_timer = self.scheduler.call_later(
            self.timeout_seconds, lambda: self._expire(session)
        )

    def _finish(self, session: DraftSession) -> None:
        session.cancel_timers()
        self.drafts.discard(session)

    async def _expire(self, session: DraftSession) -> None:
        if not self.drafts.discard(session):
            return
        session.cancel_timers()
        logger.info(
            "embed_draft_timed_out user=%s status=%s",
            session.draft.user_id,
            session.draft.status.value,
        )
        await self._reply(
            session,
            f"⏳ {session.user_mention} Embed draft cancelled due to 5-minute inactivity.",
        )

    async def _reply(
        self,
        session: DraftSession,
        content: str,
        *,
        embed: discord.Embed | None = None,
    ) -> None:
        try:
            if embed is None:
                await session.channel.send(content)
            else:
                await session.channel.send(content, embed=embed)
        except discord.HTTPException:
            logger.exception("embed_draft_reply_failed user=%s", session.draft.user_id)

    async def _delete_input(self, message: discord.Message) -> None:
        try:
            await message.delete()
        except discord.HTTPException:
            logger.debug("embed_draft_input_delete_failed message=%s", message.id, exc_info=True)
