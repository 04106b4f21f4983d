"""Reaction-role engine.

Keeps Discord role membership in step with reactions on bound messages.
Bindings live only in the database; this engine never caches one beyond a
single lookup.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import TYPE_CHECKING

import discord

from kirabot.errors import (
    InvalidEmojiError,
    MissingPermissionsError,
    NotFoundError,
    TransientExternalError,
    ValidationError,
)
from kirabot.models.state import ReactionRoleBinding

if TYPE_CHECKING:
    from kirabot.db.store import StateStore

logger = logging.getLogger(__name__)

CUSTOM_EMOJI_RE = re.compile(r"<a?:\w+:(\d+)>")

# Discord JSON error code for "Unknown Emoji".
UNKNOWN_EMOJI_CODE = 10014


class SyncOutcome(enum.Enum):
    IGNORED = "ignored"
    NO_BINDING = "no_binding"
    ROLE_MISSING = "role_missing"
    GRANTED = "granted"
    REVOKED = "revoked"
    FAILED = "failed"


def emoji_key(text: str) -> str:
    """Derive the storage key for an emoji typed by an admin.

    Custom emoji mentions (``<:name:id>`` / ``<a:name:id>``) key on the
    numeric id; anything else keys on the literal text.
    """
    text = text.strip()
    match = CUSTOM_EMOJI_RE.search(text)
    if match:
        return match.group(1)
    return text


def emoji_key_for(emoji: discord.PartialEmoji) -> str:
    """Derive the storage key for an emoji delivered by the gateway."""
    if emoji.id:
        return str(emoji.id)
    return emoji.name or ""


def _reaction_emoji(text: str) -> discord.PartialEmoji | str:
    match = CUSTOM_EMOJI_RE.search(text)
    if match:
        return discord.PartialEmoji.from_str(match.group(0))
    return text.strip()


class ReactionRoleEngine:
    """Registration, event sync, and cleanup of reaction-role bindings."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    async def register(
        self,
        *,
        guild_id: int,
        channel: discord.TextChannel,
        message_id: str,
        emoji_text: str,
        role_id: int,
    ) -> ReactionRoleBinding:
        """Bind *emoji_text* on a message to a role.

        Fetches the message, places the bot's own reaction, then upserts the
        binding. A failure at any step raises and writes nothing.
        """
        if not message_id.strip().isdigit():
            raise ValidationError(f"`{message_id}` is not a valid message ID.")
        key = emoji_key(emoji_text)
        if not key:
            raise ValidationError("Please provide an emoji.")

        try:
            message = await channel.fetch_message(int(message_id))
        except discord.NotFound as exc:
            raise NotFoundError(
                f"Could not find a message with ID `{message_id}` in {channel.mention}. "
                "Check the ID and channel!"
            ) from exc
        except discord.Forbidden as exc:
            raise MissingPermissionsError(
                f"I can't read message history in {channel.mention}. "
                "Grant me **Read Message History**."
            ) from exc
        except discord.HTTPException as exc:
            raise TransientExternalError(f"Discord failed to fetch the message: {exc.text}") from exc

        try:
            await message.add_reaction(_reaction_emoji(emoji_text))
        except discord.Forbidden as exc:
            raise MissingPermissionsError(
                f"I can't react in {channel.mention}. Grant me **Add Reactions**."
            ) from exc
        except discord.HTTPException as exc:
            if exc.code == UNKNOWN_EMOJI_CODE:
                raise InvalidEmojiError(
                    f"Invalid emoji provided: {emoji_text}. "
                    "Ensure it is a valid server emoji or standard Unicode emoji."
                ) from exc
            raise TransientExternalError(f"Discord failed to add the reaction: {exc.text}") from exc

        binding = await self.store.upsert_binding(
            ReactionRoleBinding(
                guild_id=guild_id,
                message_id=message.id,
                channel_id=channel.id,
                emoji_key=key,
                role_id=role_id,
            )
        )
        logger.info(
            "reaction_role_registered guild=%s message=%s emoji=%s role=%s",
            guild_id,
            binding.message_id,
            key,
            role_id,
        )
        return binding

    async def sync(
        self,
        *,
        guild: discord.Guild,
        member: discord.Member,
        message_id: int,
        emoji_key: str,
        added: bool,
    ) -> SyncOutcome:
        """Grant (on add) or revoke (on remove) the role bound to this reaction."""
        if member.bot:
            return SyncOutcome.IGNORED

        binding = await self.store.find_binding(message_id, emoji_key, guild.id)
        if binding is None:
            return SyncOutcome.NO_BINDING

        role = guild.get_role(binding.role_id)
        if role is None:
            logger.warning(
                "reaction_role_missing guild=%s message=%s role=%s",
                guild.id,
                message_id,
                binding.role_id,
            )
            return SyncOutcome.ROLE_MISSING

        # The binding stays put on failure; the user can simply react again.
        try:
            if added:
                await member.add_roles(role, reason="Reaction role")
            else:
                await member.remove_roles(role, reason="Reaction role")
        except discord.HTTPException:
            logger.exception(
                "reaction_role_update_failed guild=%s member=%s role=%s added=%s",
                guild.id,
                member.id,
                role.id,
                added,
            )
            return SyncOutcome.FAILED
        return SyncOutcome.GRANTED if added else SyncOutcome.REVOKED

    async def cleanup_message(self, *, guild_id: int, message_id: int) -> int:
        """Drop every binding of a deleted message. Returns the number removed."""
        removed = await self.store.delete_bindings_for_message(message_id, guild_id)
        if removed:
            logger.info(
                "reaction_role_cleanup guild=%s message=%s removed=%d",
                guild_id,
                message_id,
                removed,
            )
        return removed
