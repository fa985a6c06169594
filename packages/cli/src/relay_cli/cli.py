"""CLI entry point for repo-relay.

Commands:
  run     relay one GitHub Actions event to Discord
  events  show the audit log recorded for a repository
  show    show the stored mapping, snapshot and status for one PR or issue
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
import yaml
from rich.logging import RichHandler

from relay_cli.commands.events import events_cmd
from relay_cli.commands.run import run_cmd
from relay_cli.commands.show import show_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # discord.py is chatty at INFO (gateway handshakes, session ids).
    logging.getLogger("discord").setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("repo-relay"),
    prog_name="repo-relay",
)
@click.option(
    "--config",
    "config_path",
    default=".repo-relay.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REPO_RELAY_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Relay GitHub repository events to Discord as living messages."""
    from relay_cli.auth import resolve_github_token
    from relay_core.config import load_config
    from relay_core.errors import ConfigError

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except (ConfigError, OSError, yaml.YAMLError) as e:
        raise click.UsageError(f"Could not load {config_path}: {e}")

    if not config.get("github_token"):
        config["github_token"] = resolve_github_token()

    ctx.obj["config"] = config


main.add_command(run_cmd)
main.add_command(events_cmd)
main.add_command(show_cmd)
