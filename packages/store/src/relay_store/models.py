"""Relay state data models.

Decoupled from relay_core so the store layer can be used (and tested)
without a Discord client, and relay_core only depends on these plain
dataclasses rather than on SQLite rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

EntityKind = Literal["pr", "issue"]

PR: EntityKind = "pr"
ISSUE: EntityKind = "issue"

CI_STATES = ("pending", "running", "success", "failure", "cancelled")
REVIEWER_STATES = ("pending", "reviewed")
AGENT_REVIEW_STATES = ("pending", "approved", "changes_requested", "none")


@dataclass
class MessageMapping:
    """The Discord message (and optional thread) that represents one entity.

    At most one mapping exists per (repo, number, kind). ``thread_id`` stays
    None until the first reply needs a thread.
    """

    repo: str
    number: int
    channel_id: str
    message_id: str
    thread_id: str | None = None
    created_at: str = ""
    last_updated: str = ""
    kind: EntityKind = PR


@dataclass
class PrSnapshot:
    """Last-known rendered view of a pull request."""

    repo: str
    number: int
    title: str
    url: str
    author: str
    author_url: str
    branch: str
    base_branch: str
    created_at: str  # ISO-8601, as reported by GitHub
    author_avatar: str | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    state: str = "open"  # "open" | "closed" | "merged"
    draft: bool = False
    merged_at: str | None = None
    merged_by: str | None = None


@dataclass
class IssueSnapshot:
    """Last-known rendered view of an issue."""

    repo: str
    number: int
    title: str
    url: str
    author: str
    created_at: str
    author_avatar: str | None = None
    state: str = "open"  # "open" | "closed"
    state_reason: str | None = None
    labels: list[str] = field(default_factory=list)
    body: str | None = None


@dataclass
class PrStatus:
    """Denormalised rollup of the signals that arrive independently for a PR."""

    repo: str
    number: int
    reviewer_status: str = "pending"
    reviewer_comments: int = 0
    agent_review_status: str = "pending"
    ci_status: str = "pending"
    ci_workflow_name: str | None = None
    ci_url: str | None = None


@dataclass
class AuditLogEntry:
    """One append-only record of an inbound event. Diagnostics only."""

    id: int
    repo: str
    entity_number: int | None
    event_type: str
    payload: str  # JSON text
    created_at: str
