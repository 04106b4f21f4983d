"""SQLAlchemy ORM models for the Kira Bot database.

Two tables: ``counting`` (a single row, id fixed at 1) and
``reaction_roles`` (one row per message/emoji pair). Discord snowflakes are
stored as text.
"""

from __future__ import annotations

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

COUNTING_ROW_ID = 1


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class CountingRow(Base):
    __tablename__ = "counting"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    channel_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    next_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ReactionRoleRow(Base):
    __tablename__ = "reaction_roles"
    __table_args__ = (
        UniqueConstraint("message_id", "emoji_key", name="uq_reaction_roles_message_emoji"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    message_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    emoji_key: Mapped[str] = mapped_column(String(128), nullable=False)
    role_id: Mapped[str] = mapped_column(String(32), nullable=False)
