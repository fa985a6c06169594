import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from relay_core.errors import ConfigError

DEFAULT_CONFIG: dict = {
    "state_dir": "~/.repo-relay",
    "search_limit": 100,  # channel messages scanned when the state database has no mapping
    "retry_attempts": 3,
    "retry_base_delay": 1.0,  # seconds; doubled on every retry
    "poll_budget_seconds": 240,  # warn when a scheduled pass runs longer than this
    "thread_auto_archive_minutes": 1440,
    "channels": {},  # prs / issues / releases / deployments / security → Discord channel id
}

_CHANNEL_ENV_VARS = {
    "prs": "DISCORD_CHANNEL_PRS",
    "issues": "DISCORD_CHANNEL_ISSUES",
    "releases": "DISCORD_CHANNEL_RELEASES",
    "deployments": "DISCORD_CHANNEL_DEPLOYMENTS",
    "security": "DISCORD_CHANNEL_SECURITY",
}


def load_config(config_path: str = ".repo-relay.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .repo-relay.yml in the current directory
      3. CLI argument overrides
      4. Credentials, state directory and channel ids from the environment
    """
    config = {**DEFAULT_CONFIG, "channels": dict(DEFAULT_CONFIG["channels"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        channels = file_config.pop("channels", None) or {}
        config.update(file_config)
        config["channels"].update({k: str(v) for k, v in channels.items() if v is not None})

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["discord_token"] = os.environ.get("DISCORD_BOT_TOKEN")
    config["github_token"] = os.environ.get("GITHUB_TOKEN") or None

    if os.environ.get("STATE_DIR"):
        config["state_dir"] = os.environ["STATE_DIR"]
    # GitHub Actions passes "~" through literally.
    config["state_dir"] = str(Path(config["state_dir"]).expanduser())

    for kind, env_var in _CHANNEL_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            config["channels"][kind] = value

    return config


@dataclass
class ChannelConfig:
    prs: str
    issues: Optional[str] = None
    releases: Optional[str] = None
    deployments: Optional[str] = None
    security: Optional[str] = None

    def all_ids(self) -> list[str]:
        """Distinct configured channel ids, PR channel first."""
        ids: list[str] = []
        for value in (self.prs, self.issues, self.releases, self.deployments, self.security):
            if value and value not in ids:
                ids.append(value)
        return ids


def get_channel_config(config: dict) -> ChannelConfig:
    channels = config.get("channels") or {}
    prs = channels.get("prs")
    if not prs:
        raise ConfigError("A PR channel is required: set DISCORD_CHANNEL_PRS or channels.prs in .repo-relay.yml")
    return ChannelConfig(
        prs=str(prs),
        issues=channels.get("issues") or None,
        releases=channels.get("releases") or None,
        deployments=channels.get("deployments") or None,
        security=channels.get("security") or None,
    )


def channel_for_event(channels: ChannelConfig, kind: str) -> str:
    """Route an event kind to its channel, falling back to the PR channel."""
    if kind in ("pr", "ci", "review", "comment", "push"):
        return channels.prs
    if kind == "issue":
        return channels.issues or channels.prs
    if kind == "release":
        return channels.releases or channels.prs
    if kind == "deployment":
        return channels.deployments or channels.prs
    if kind == "security":
        return channels.security or channels.prs
    raise ValueError(f"Unknown event kind: {kind}")
