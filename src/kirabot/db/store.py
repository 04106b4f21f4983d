"""Persistence layer for engine state.

The only component that touches the database on behalf of the engines. Each
operation runs in its own session (commit on success, rollback on error) and
speaks in domain models, never ORM rows. Database errors propagate; callers
decide whether they are fatal.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from kirabot.db.engine import get_session
from kirabot.db.models import ReactionRoleRow
from kirabot.db.repository import Repository
from kirabot.models.state import CountingState, ReactionRoleBinding

logger = logging.getLogger(__name__)


def _binding_from_row(row: ReactionRoleRow) -> ReactionRoleBinding:
    return ReactionRoleBinding(
        guild_id=int(row.guild_id),
        message_id=int(row.message_id),
        channel_id=int(row.channel_id),
        emoji_key=row.emoji_key,
        role_id=int(row.role_id),
    )


class StateStore:
    """Load/save/delete operations over the ``counting`` and ``reaction_roles`` tables."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    # --- Counting ---

    async def load_counting_state(self) -> CountingState:
        async with get_session(self.engine) as session:
            row = await Repository(session).ensure_counting_row()
            state = CountingState(
                active_channel_id=int(row.channel_id) if row.channel_id else None,
                next_expected=max(row.next_number or 1, 1),
            )
        logger.info(
            "counting_state_loaded channel=%s next=%d",
            state.active_channel_id,
            state.next_expected,
        )
        return state

    async def save_counting_state(self, state: CountingState) -> None:
        channel = str(state.active_channel_id) if state.active_channel_id is not None else None
        async with get_session(self.engine) as session:
            await Repository(session).update_counting_row(channel, state.next_expected)

    # --- Reaction roles ---

    async def upsert_binding(self, binding: ReactionRoleBinding) -> ReactionRoleBinding:
        async with get_session(self.engine) as session:
            row = await Repository(session).upsert_reaction_role(
                guild_id=str(binding.guild_id),
                message_id=str(binding.message_id),
                channel_id=str(binding.channel_id),
                emoji_key=binding.emoji_key,
                role_id=str(binding.role_id),
            )
            return _binding_from_row(row)

    async def find_binding(
        self,
        message_id: int,
        emoji_key: str,
        guild_id: int,
    ) -> ReactionRoleBinding | None:
        async with get_session(self.engine) as session:
            row = await Repository(session).get_reaction_role(
                str(message_id), emoji_key, str(guild_id)
            )
            return _binding_from_row(row) if row else None

    async def delete_bindings_for_message(self, message_id: int, guild_id: int) -> int:
        async with get_session(self.engine) as session:
            return await Repository(session).delete_reaction_roles_for_message(
                str(message_id), str(guild_id)
            )

    async def list_bindings(self, guild_id: int) -> list[ReactionRoleBinding]:
        async with get_session(self.engine) as session:
            rows = await Repository(session).list_reaction_roles(str(guild_id))
            return [_binding_from_row(row) for row in rows]
