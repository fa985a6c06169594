"""RepoRelay: one invocation's Discord client, state store and dispatch."""

from __future__ import annotations

import asyncio
import logging

import discord

from relay_core.config import get_channel_config
from relay_core.context import HandlerContext
from relay_core.errors import ConfigError, PermissionsError, RelayError
from relay_core.events import HANDLERS, GitHubEvent, extract_repo
from relay_core.messages import fetch_text_channel
from relay_store.sqlite import SQLiteStateStore

logger = logging.getLogger(__name__)

# (discord.Permissions attribute, name shown in Discord's UI)
REQUIRED_PERMISSIONS = (
    ("send_messages", "Send Messages"),
    ("create_public_threads", "Create Public Threads"),
    ("send_messages_in_threads", "Send Messages in Threads"),
    ("manage_threads", "Manage Threads"),
    ("embed_links", "Embed Links"),
    ("read_message_history", "Read Message History"),
)


class RepoRelay:
    """Relays GitHub events for one invocation.

    Usage is strictly connect → validate_permissions → handle_event →
    disconnect. ``disconnect`` must run even on failure: it is what
    checkpoints the state database.
    """

    def __init__(self, config: dict, client: discord.Client | None = None):
        self.config = config
        self.channels = get_channel_config(config)
        self.client = client or discord.Client(intents=discord.Intents(guilds=True, guild_messages=True))
        self.store: SQLiteStateStore | None = None
        self.repo: str | None = None
        self._gateway: asyncio.Task | None = None

    def _context(self) -> HandlerContext:
        return HandlerContext(
            client=self.client,
            store=self.store,
            channels=self.channels,
            config=self.config,
            github_token=self.config.get("github_token"),
            repo=self.repo,
        )

    async def connect(self) -> None:
        token = self.config.get("discord_token")
        if not token:
            raise ConfigError("DISCORD_BOT_TOKEN is required")

        await self.client.login(token)
        # The gateway connection populates the guild and thread caches.
        self._gateway = asyncio.create_task(self.client.connect())
        ready = asyncio.create_task(self.client.wait_until_ready())
        done, _ = await asyncio.wait({ready, self._gateway}, return_when=asyncio.FIRST_COMPLETED)
        if ready not in done:
            ready.cancel()
            self._gateway.result()
            raise RelayError("Discord gateway closed before the client became ready")
        logger.info("Connected to Discord as %s", self.client.user)

    async def validate_permissions(self) -> None:
        """Fail fast if the bot cannot do its job in any configured channel."""
        ctx = self._context()
        missing_in = []
        for channel_id in self.channels.all_ids():
            channel = await fetch_text_channel(ctx, channel_id)
            permissions = channel.permissions_for(channel.guild.me)
            missing = [label for attr, label in REQUIRED_PERMISSIONS if not getattr(permissions, attr)]
            if missing:
                logger.error(
                    "Missing Discord permissions in channel %s. Missing: %s",
                    channel_id,
                    ", ".join(missing),
                )
                missing_in.append(channel_id)
        if missing_in:
            raise PermissionsError(f"Missing Discord permissions in channel(s) {', '.join(missing_in)}")

    async def handle_event(self, event: GitHubEvent) -> None:
        repo = extract_repo(event)
        if self.repo != repo:
            if self.store is not None:
                self.store.close()
            self.store = SQLiteStateStore(repo, base_dir=self.config.get("state_dir"))
            self.repo = repo

        handler = HANDLERS.get(event.name)
        if handler is None:
            logger.info("Unknown event type %s, skipping", event.name)
            return

        logger.info("Handling %s event for %s", event.name, repo)
        await handler(self._context(), event.payload)
        logger.info("Finished %s event for %s", event.name, repo)

    async def disconnect(self) -> None:
        if self.store is not None:
            self.store.close()
            self.store = None
        await self.client.close()
        if self._gateway is not None:
            try:
                await self._gateway
            except Exception as e:
                logger.debug("Gateway task ended with %s", type(e).__name__)
            self._gateway = None
        logger.info("Disconnected from Discord")
