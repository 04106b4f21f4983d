"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Row-level queries only; conversion to the
domain models lives in ``kirabot.db.store``.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kirabot.db.models import COUNTING_ROW_ID, CountingRow, ReactionRoleRow


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Counting ---

    async def get_counting_row(self) -> CountingRow | None:
        return await self.session.get(CountingRow, COUNTING_ROW_ID)

    async def ensure_counting_row(self) -> CountingRow:
        """Return the counting row, inserting the default (no channel, next=1) if absent."""
        row = await self.get_counting_row()
        if row is None:
            row = CountingRow(id=COUNTING_ROW_ID, channel_id=None, next_number=1)
            self.session.add(row)
            await self.session.flush()
        return row

    async def update_counting_row(self, channel_id: str | None, next_number: int) -> CountingRow:
        row = await self.ensure_counting_row()
        row.channel_id = channel_id
        row.next_number = next_number
        await self.session.flush()
        return row

    # --- Reaction roles ---

    async def get_reaction_role(
        self,
        message_id: str,
        emoji_key: str,
        guild_id: str | None = None,
    ) -> ReactionRoleRow | None:
        """Look up the binding for a message/emoji pair, optionally scoped to a guild."""
        stmt = select(ReactionRoleRow).where(
            ReactionRoleRow.message_id == message_id,
            ReactionRoleRow.emoji_key == emoji_key,
        )
        if guild_id is not None:
            stmt = stmt.where(ReactionRoleRow.guild_id == guild_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_reaction_role(
        self,
        *,
        guild_id: str,
        message_id: str,
        channel_id: str,
        emoji_key: str,
        role_id: str,
    ) -> ReactionRoleRow:
        """Insert a binding or overwrite the role of the existing message/emoji pair."""
        row = await self.get_reaction_role(message_id, emoji_key)
        if row is None:
            row = ReactionRoleRow(
                guild_id=guild_id,
                message_id=message_id,
                channel_id=channel_id,
                emoji_key=emoji_key,
                role_id=role_id,
            )
            self.session.add(row)
        else:
            row.guild_id = guild_id
            row.channel_id = channel_id
            row.role_id = role_id
        await self.session.flush()
        return row

    async def delete_reaction_roles_for_message(self, message_id: str, guild_id: str) -> int:
        result = await self.session.execute(
            delete(ReactionRoleRow).where(
                ReactionRoleRow.message_id == message_id,
                ReactionRoleRow.guild_id == guild_id,
            )
        )
        return result.rowcount or 0  # type: ignore[union-attr]

    async def list_reaction_roles(self, guild_id: str) -> list[ReactionRoleRow]:
        result = await self.session.execute(
            select(ReactionRoleRow)
            .where(ReactionRoleRow.guild_id == guild_id)
            .order_by(ReactionRoleRow.id)
        )
        return list(result.scalars().all())
