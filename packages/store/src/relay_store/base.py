"""Abstract state store interface.

Handlers and the message resolver depend on StateStore, not on the SQLite
backend, so tests and alternative backends can substitute their own
implementation without touching relay_core.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relay_store.models import (
        AuditLogEntry,
        EntityKind,
        IssueSnapshot,
        MessageMapping,
        PrSnapshot,
        PrStatus,
    )


class StateStore(ABC):
    """Durable mapping of GitHub entities to Discord messages, plus cached state.

    Every write is an upsert: GitHub delivery order is not reliable, so no
    operation may assume a row is absent (or present) before it runs.
    """

    # ------------------------------------------------------------------ #
    # Message mappings                                                    #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_message_mapping(self, repo: str, number: int, kind: EntityKind = "pr") -> MessageMapping | None:
        """Return the mapping for an entity, or None."""

    @abstractmethod
    def upsert_message_mapping(
        self,
        repo: str,
        number: int,
        channel_id: str,
        message_id: str,
        thread_id: str | None = None,
        kind: EntityKind = "pr",
    ) -> None:
        """Insert a mapping or replace the existing one for (repo, number)."""

    @abstractmethod
    def update_thread(self, repo: str, number: int, thread_id: str, kind: EntityKind = "pr") -> None:
        """Record the thread created for an entity's message."""

    @abstractmethod
    def touch_timestamp(self, repo: str, number: int, kind: EntityKind = "pr") -> None:
        """Advance last_updated without changing anything else."""

    @abstractmethod
    def delete_mapping(self, repo: str, number: int, kind: EntityKind = "pr") -> None:
        """Forget a mapping whose remote message no longer exists."""

    # ------------------------------------------------------------------ #
    # Snapshots                                                           #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_pr_snapshot(self, repo: str, number: int) -> PrSnapshot | None:
        """Return the cached PR view, or None."""

    @abstractmethod
    def save_pr_snapshot(self, snapshot: PrSnapshot) -> None:
        """Replace the cached PR view wholesale."""

    @abstractmethod
    def get_issue_snapshot(self, repo: str, number: int) -> IssueSnapshot | None:
        """Return the cached issue view, or None."""

    @abstractmethod
    def save_issue_snapshot(self, snapshot: IssueSnapshot) -> None:
        """Replace the cached issue view wholesale."""

    # ------------------------------------------------------------------ #
    # Derived PR status                                                   #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_status(self, repo: str, number: int) -> PrStatus | None:
        """Return the derived status row for a PR, or None if none was recorded yet."""

    @abstractmethod
    def ensure_status_row(self, repo: str, number: int) -> None:
        """Create the default status row if absent. Idempotent."""

    @abstractmethod
    def update_reviewer_status(self, repo: str, number: int, status: str, comments: int = 0) -> None:
        """Set the automated-reviewer status, creating the row if needed."""

    @abstractmethod
    def update_agent_status(self, repo: str, number: int, status: str) -> None:
        """Set the agent-review verdict, creating the row if needed."""

    @abstractmethod
    def update_ci_status(
        self,
        repo: str,
        number: int,
        status: str,
        workflow_name: str | None = None,
        url: str | None = None,
    ) -> None:
        """Set the CI status, creating the row if needed."""

    # ------------------------------------------------------------------ #
    # Audit log and queries                                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def append_audit_log(self, repo: str, entity_number: int | None, event_type: str, payload: object) -> None:
        """Record an inbound event. Must never raise into the caller."""

    @abstractmethod
    def recent_audit_log(self, repo: str, entity_number: int | None = None, limit: int = 50) -> list[AuditLogEntry]:
        """Return the newest audit entries first."""

    @abstractmethod
    def list_open_entity_numbers(self, repo: str, kind: EntityKind = "pr") -> list[int]:
        """Return numbers whose snapshot state is "open", ascending."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
