"""run command: relay one GitHub Actions event to Discord."""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console

from relay_core.errors import ConfigError, safe_error_message
from relay_core.events import GitHubEvent, should_skip_event

console = Console()
logger = logging.getLogger(__name__)


async def relay_event(config: dict, event: GitHubEvent) -> None:
    """Connect, validate, handle one event and always disconnect."""
    from relay_core.relay import RepoRelay

    relay = RepoRelay(config)
    try:
        await relay.connect()
        await relay.validate_permissions()
        await relay.handle_event(event)
    finally:
        await relay.disconnect()


@click.command("run")
@click.option(
    "--event-name",
    envvar="GITHUB_EVENT_NAME",
    required=True,
    help="GitHub event name (defaults to $GITHUB_EVENT_NAME).",
)
@click.option(
    "--event-path",
    envvar="GITHUB_EVENT_PATH",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to the event payload JSON (defaults to $GITHUB_EVENT_PATH).",
)
@click.pass_context
def run_cmd(ctx, event_name: str, event_path: str):
    """Relay a single GitHub event to Discord.

    \b
    Required environment variables:
      DISCORD_BOT_TOKEN     Bot token
      DISCORD_CHANNEL_PRS   Channel for PR, CI and review updates
    Optional:
      GITHUB_TOKEN          Enables review polling and CI failure details
      STATE_DIR             Where the per-repository state database lives
    """
    config = ctx.obj["config"]
    if not config.get("discord_token"):
        raise click.UsageError("DISCORD_BOT_TOKEN environment variable is not set.")

    try:
        event = GitHubEvent.from_file(event_name, event_path)
    except (ConfigError, ValueError) as e:
        raise click.UsageError(f"Could not read event payload: {e}")

    reason = should_skip_event(event)
    if reason:
        console.print(f"[dim]Skipping event: {reason}[/dim]")
        return

    try:
        asyncio.run(relay_event(config, event))
    except Exception as e:
        logger.error("Failed to relay %s event: %s", event_name, safe_error_message(e))
        logger.debug("Traceback", exc_info=True)
        ctx.exit(1)
