"""Dependencies passed explicitly to every event handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from relay_core.retry import DEFAULT_BASE_DELAY, DEFAULT_RETRIES, with_retry

if TYPE_CHECKING:
    import discord

    from relay_core.config import ChannelConfig
    from relay_store.base import StateStore

T = TypeVar("T")


@dataclass
class HandlerContext:
    """Everything a handler needs for one invocation.

    No module-level client or store: tests build a context from fakes.
    """

    client: discord.Client
    store: StateStore
    channels: ChannelConfig
    config: dict = field(default_factory=dict)
    github_token: str | None = None
    repo: str | None = None

    @property
    def search_limit(self) -> int:
        return int(self.config.get("search_limit", 100))

    @property
    def thread_auto_archive_minutes(self) -> int:
        return int(self.config.get("thread_auto_archive_minutes", 1440))

    async def retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a Discord call under the configured retry policy."""
        return await with_retry(
            operation,
            retries=int(self.config.get("retry_attempts", DEFAULT_RETRIES)),
            base_delay=float(self.config.get("retry_base_delay", DEFAULT_BASE_DELAY)),
        )
