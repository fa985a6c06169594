"""Relay error taxonomy and Discord error classification."""

from __future__ import annotations

import discord


class RelayError(Exception):
    """Base class for failures raised by the relay itself."""


class ConfigError(RelayError):
    """Required configuration is missing or invalid."""


class ChannelError(RelayError):
    """A configured channel does not exist or is not a text channel."""


class PermissionsError(RelayError):
    """The bot is missing permissions it needs in a configured channel."""


def is_server_error(exc: BaseException) -> bool:
    """True for Discord API errors with a 5xx status, the only retryable class."""
    return isinstance(exc, discord.HTTPException) and getattr(exc, "status", 0) >= 500


def is_not_found(exc: BaseException) -> bool:
    """True when Discord reports that the message, channel or thread is gone."""
    return isinstance(exc, discord.NotFound)


def safe_error_message(exc: BaseException) -> str:
    """Render an exception for operators without a traceback."""
    message = str(exc).strip()
    return message or type(exc).__name__
