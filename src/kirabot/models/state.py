"""Durable state models.

CountingState is the single-row counting game record. ReactionRoleBinding is
one (message, emoji) -> role association. Both are plain values;
``kirabot.db.store`` owns their persistence.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class CountingState(BaseModel):
    """Counting game progress. One per deployment."""

    active_channel_id: int | None = None
    next_expected: int = Field(default=1, ge=1)

    @property
    def is_configured(self) -> bool:
        return self.active_channel_id is not None


class ReactionRoleBinding(BaseModel):
    """A persisted (message, emoji) -> role association.

    ``emoji_key`` is the custom emoji's numeric id, or the literal unicode
    symbol for standard emoji.
    """

    guild_id: int
    message_id: int
    channel_id: int
    emoji_key: str = Field(min_length=1)
    role_id: int
