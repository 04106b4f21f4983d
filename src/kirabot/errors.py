"""Error taxonomy for Kira Bot.

Every error carries a message that is safe to show in chat. Command handlers
catch these at the boundary and turn them into a reply; only the process-level
handlers in ``kirabot.main`` ever see an uncaught failure.
"""

from __future__ import annotations


class KiraError(Exception):
    """Base class for all user-facing bot errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(KiraError):
    """A required startup dependency is missing or invalid. Fatal."""


class TransientExternalError(KiraError):
    """An HTTP or Discord API call failed. Not retried."""


class ValidationError(KiraError):
    """Admin-supplied or conversational input is outside allowed constraints."""


class InvalidEmojiError(ValidationError):
    """Discord rejected the emoji for a reaction."""


class NotFoundError(KiraError):
    """A referenced message, channel, or role no longer exists."""


class CountingNotConfiguredError(NotFoundError):
    """The counting game has no channel yet."""


class MissingPermissionsError(KiraError):
    """The bot lacks a Discord capability needed for the operation."""


class StateConflictError(KiraError):
    """The operation conflicts with state that already exists."""
