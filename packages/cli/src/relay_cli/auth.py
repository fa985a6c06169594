"""GitHub token resolution for the optional GitHub API lookups.

The relay works without a GitHub token; with one it can also poll reviews,
list failed CI steps and rebuild lost PR snapshots.

Resolution order (stops at first success):
  1. GITHUB_TOKEN environment variable (always set inside GitHub Actions)
  2. `gh auth token`, so a local `repo-relay run` against a saved payload
     picks up the developer's GitHub CLI session
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source has one. Never raises."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # No gh binary (or it hung); the relay simply runs without GitHub lookups.
        return None

    if result.returncode == 0 and result.stdout.strip():
        logger.debug("Using GitHub token from the gh CLI session")
        return result.stdout.strip()
    return None
