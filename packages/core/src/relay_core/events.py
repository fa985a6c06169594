"""Inbound GitHub events and the single dispatch table.

An event is a tag (the GitHub event name, as in ``GITHUB_EVENT_NAME``) plus
its decoded JSON payload. ``HANDLERS`` maps each supported tag to its
handler coroutine; there is no handler class hierarchy.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from relay_core.errors import ConfigError
from relay_core.handlers.ci import handle_workflow_run
from relay_core.handlers.comment import handle_issue_comment
from relay_core.handlers.deployment import TERMINAL_STATES, handle_deployment_status
from relay_core.handlers.issue import HANDLED_ACTIONS as ISSUE_ACTIONS
from relay_core.handlers.issue import handle_issues
from relay_core.handlers.pr import handle_pull_request
from relay_core.handlers.push import handle_push
from relay_core.handlers.push import skip_reason as push_skip_reason
from relay_core.handlers.release import handle_release
from relay_core.handlers.review import handle_pull_request_review
from relay_core.handlers.schedule import handle_schedule
from relay_core.handlers.security import (
    handle_code_scanning_alert,
    handle_dependabot_alert,
    handle_secret_scanning_alert,
)
from relay_core.handlers.security import skip_reason as security_skip_reason
from relay_store.sqlite import validate_repo

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

Handler = Callable[["HandlerContext", dict], Awaitable[None]]

HANDLERS: dict[str, Handler] = {
    "pull_request": handle_pull_request,
    "workflow_run": handle_workflow_run,
    "pull_request_review": handle_pull_request_review,
    "issue_comment": handle_issue_comment,
    "issues": handle_issues,
    "release": handle_release,
    "deployment_status": handle_deployment_status,
    "push": handle_push,
    "dependabot_alert": handle_dependabot_alert,
    "secret_scanning_alert": handle_secret_scanning_alert,
    "code_scanning_alert": handle_code_scanning_alert,
    "schedule": handle_schedule,
}


@dataclass
class GitHubEvent:
    name: str
    payload: dict

    @classmethod
    def from_file(cls, name: str, path: str | Path) -> GitHubEvent:
        """Load an event the way a GitHub Actions runner provides it."""
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict):
            raise ConfigError(f"Event payload at {path} is not a JSON object")
        return cls(name=name, payload=payload)


def extract_repo(event: GitHubEvent) -> str:
    """Return the validated ``owner/name`` the event belongs to."""
    repo = (event.payload.get("repository") or {}).get("full_name")
    if not repo and event.name == "schedule":
        repo = os.environ.get("GITHUB_REPOSITORY")
    if not repo:
        raise ConfigError(f"Could not determine the repository for a {event.name} event")
    try:
        return validate_repo(repo)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def should_skip_event(event: GitHubEvent) -> str | None:
    """Return why the event can be dropped before connecting to Discord, or None.

    Mirrors each handler's own early exits so an invocation that would do
    nothing never opens a gateway session.
    """
    payload = event.payload
    action = payload.get("action")

    if event.name not in HANDLERS:
        return f"{event.name}: event type not handled"

    if event.name == "workflow_run":
        if not (payload.get("workflow_run") or {}).get("pull_requests"):
            return "workflow_run: no associated PRs"
    elif event.name == "issue_comment":
        if action != "created":
            return f"issue_comment: action '{action}' not handled"
        if not (payload.get("issue") or {}).get("pull_request"):
            return "issue_comment: not a PR comment"
    elif event.name == "deployment_status":
        state = (payload.get("deployment_status") or {}).get("state")
        if state not in TERMINAL_STATES:
            return f"deployment_status: state '{state}' not terminal"
    elif event.name == "push":
        return push_skip_reason(payload)
    elif event.name == "release":
        if action != "published":
            return f"release: action '{action}' not handled"
        if (payload.get("release") or {}).get("draft"):
            return "release: draft release"
    elif event.name == "pull_request_review":
        if action != "submitted":
            return f"pull_request_review: action '{action}' not handled"
    elif event.name == "issues":
        if action not in ISSUE_ACTIONS:
            return f"issues: action '{action}' not handled"
    elif event.name in ("dependabot_alert", "secret_scanning_alert", "code_scanning_alert"):
        return security_skip_reason(event.name, payload)
    return None
