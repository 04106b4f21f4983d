"""Discord bot helpers -- text command tokenization and permission gates."""

from __future__ import annotations

from dataclasses import dataclass

import discord

GREETING_ALIASES = frozenset({"hello!", "hey!"})


@dataclass(frozen=True)
class TextCommand:
    """A prefixed text command: lowercased name plus whitespace-split arguments."""

    name: str
    args: tuple[str, ...] = ()

    @property
    def rest(self) -> str:
        return " ".join(self.args)


def parse_text_command(content: str, prefix: str) -> TextCommand | None:
    """Split ``<prefix>name arg arg`` into a TextCommand.

    Returns None when *content* does not start with *prefix* or names no
    command. The prefix itself is matched case-insensitively.
    """
    if not content.lower().startswith(prefix.lower()):
        return None
    tokens = content[len(prefix) :].split()
    if not tokens:
        return None
    return TextCommand(name=tokens[0].lower(), args=tuple(tokens[1:]))


def is_greeting(content: str) -> bool:
    return content.strip().lower() in GREETING_ALIASES


def _permissions(user: object) -> discord.Permissions | None:
    if isinstance(user, discord.Member):
        return user.guild_permissions
    return None


def is_admin(user: object) -> bool:
    """True for guild members with the Administrator permission."""
    perms = _permissions(user)
    return bool(perms and perms.administrator)


def can_manage_messages(user: object) -> bool:
    """True for guild members who may delete other people's messages."""
    perms = _permissions(user)
    return bool(perms and (perms.manage_messages or perms.administrator))
