"""SQLiteStateStore: the per-repository durable store.

Why SQLite:
- Batteries included: ships with Python, no server to provision on a
  GitHub-hosted runner.
- One file per repository keeps repositories from contending for (or
  leaking into) each other's state, and lets a CI cache step save and
  restore exactly one file.
- WAL mode plus an explicit checkpoint on close means a runner that is torn
  down right after the process exits still has every committed write in
  the main database file.

Schema:
  pr_messages / issue_messages: entity → Discord message/thread mapping
  pr_data / issue_data:         cached snapshots for rebuilding embeds
  pr_status:                    derived CI / reviewer / agent-review rollup
  event_log:                    append-only audit log

Migration order is migrate-then-create: column patches run first against
whatever tables an existing file already has (skipping tables that do not
exist yet), then ``CREATE ... IF NOT EXISTS`` fills in anything missing. A
brand-new file therefore skips every migration and gets the current schema
directly; an old file is patched before the index definitions that depend
on the new column names are created.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from relay_store.base import StateStore
from relay_store.models import (
    AuditLogEntry,
    EntityKind,
    IssueSnapshot,
    MessageMapping,
    PrSnapshot,
    PrStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = "~/.repo-relay"
_DB_FILENAME = "state.db"

# owner/name with exactly one slash. fullmatch() so a trailing newline is rejected.
REPO_NAME_PATTERN = re.compile(r"[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+")

# kind → (mapping table, snapshot table, number column)
_TABLES: dict[str, tuple[str, str, str]] = {
    "pr": ("pr_messages", "pr_data", "pr_number"),
    "issue": ("issue_messages", "issue_data", "issue_number"),
}

# Applied in this order, each only when the old column is still present.
_RENAMES = (
    ("event_log", "pr_number", "entity_number"),
    ("pr_status", "copilot_status", "reviewer_status"),
    ("pr_status", "copilot_comments", "reviewer_comments"),
)

# Applied after the renames, each only when the column is absent.
_ADDITIONS = (
    ("pr_messages", "thread_id", "TEXT"),
    ("issue_messages", "thread_id", "TEXT"),
    ("pr_status", "reviewer_comments", "INTEGER DEFAULT 0"),
    ("pr_status", "ci_workflow_name", "TEXT"),
    ("pr_status", "ci_url", "TEXT"),
    ("pr_data", "merged_at", "TEXT"),
    ("pr_data", "merged_by", "TEXT"),
    ("issue_data", "state_reason", "TEXT"),
    ("issue_data", "body", "TEXT"),
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS pr_messages (
    repo          TEXT NOT NULL,
    pr_number     INTEGER NOT NULL,
    channel_id    TEXT NOT NULL,
    message_id    TEXT NOT NULL,
    thread_id     TEXT,
    created_at    TEXT NOT NULL,
    last_updated  TEXT NOT NULL,
    PRIMARY KEY (repo, pr_number)
);

CREATE TABLE IF NOT EXISTS issue_messages (
    repo          TEXT NOT NULL,
    issue_number  INTEGER NOT NULL,
    channel_id    TEXT NOT NULL,
    message_id    TEXT NOT NULL,
    thread_id     TEXT,
    created_at    TEXT NOT NULL,
    last_updated  TEXT NOT NULL,
    PRIMARY KEY (repo, issue_number)
);

CREATE TABLE IF NOT EXISTS pr_status (
    repo                 TEXT NOT NULL,
    pr_number            INTEGER NOT NULL,
    reviewer_status      TEXT DEFAULT 'pending',
    reviewer_comments    INTEGER DEFAULT 0,
    agent_review_status  TEXT DEFAULT 'pending',
    ci_status            TEXT DEFAULT 'pending',
    ci_workflow_name     TEXT,
    ci_url               TEXT,
    PRIMARY KEY (repo, pr_number)
);

CREATE TABLE IF NOT EXISTS pr_data (
    repo           TEXT NOT NULL,
    pr_number      INTEGER NOT NULL,
    title          TEXT NOT NULL,
    url            TEXT NOT NULL,
    author         TEXT NOT NULL,
    author_url     TEXT NOT NULL,
    author_avatar  TEXT,
    branch         TEXT NOT NULL,
    base_branch    TEXT NOT NULL,
    additions      INTEGER DEFAULT 0,
    deletions      INTEGER DEFAULT 0,
    changed_files  INTEGER DEFAULT 0,
    state          TEXT DEFAULT 'open',
    draft          INTEGER DEFAULT 0,
    pr_created_at  TEXT NOT NULL,
    merged_at      TEXT,
    merged_by      TEXT,
    PRIMARY KEY (repo, pr_number)
);

CREATE TABLE IF NOT EXISTS issue_data (
    repo              TEXT NOT NULL,
    issue_number      INTEGER NOT NULL,
    title             TEXT NOT NULL,
    url               TEXT NOT NULL,
    author            TEXT NOT NULL,
    author_avatar     TEXT,
    state             TEXT DEFAULT 'open',
    state_reason      TEXT,
    labels_json       TEXT DEFAULT '[]',
    body              TEXT,
    issue_created_at  TEXT NOT NULL,
    PRIMARY KEY (repo, issue_number)
);

CREATE TABLE IF NOT EXISTS event_log (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    repo           TEXT NOT NULL,
    entity_number  INTEGER,
    event_type     TEXT,
    payload        TEXT,
    created_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_event_log_repo_entity ON event_log (repo, entity_number);
CREATE INDEX IF NOT EXISTS idx_pr_data_state         ON pr_data (repo, state);
CREATE INDEX IF NOT EXISTS idx_issue_data_state      ON issue_data (repo, state);
"""


def validate_repo(repo: str) -> str:
    """Return ``repo`` if it is a safe owner/name identifier, else raise ValueError."""
    if not REPO_NAME_PATTERN.fullmatch(repo or "") or any(part in (".", "..") for part in repo.split("/")):
        raise ValueError(f"Invalid repository name: {repo!r}")
    return repo


def state_db_path(repo: str, base_dir: str | Path | None = None) -> Path:
    """Return ``<base_dir>/<owner-name>/state.db`` for a repository."""
    validate_repo(repo)
    base = Path(base_dir or DEFAULT_STATE_DIR).expanduser()
    return base / repo.replace("/", "-") / _DB_FILENAME


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStateStore(StateStore):
    """Stores relay state for one repository in a local SQLite file.

    Opening never fails because of a damaged file: if the integrity check
    fails the file (and its WAL/SHM siblings) is deleted and an empty schema
    is created in its place. The resolver rebuilds
    mappings from channel history, so an empty store only costs a slower
    first lookup.
    """

    def __init__(self, repo: str, base_dir: str | Path | None = None):
        self.repo = repo
        self.db_path = state_db_path(repo, base_dir)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Using state database %s", self.db_path)

        self._conn = self._open_checked()
        self._migrate()
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Open / integrity / migrations                                       #
    # ------------------------------------------------------------------ #

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _open_checked(self) -> sqlite3.Connection:
        conn = None
        try:
            conn = self._connect()
            result = conn.execute("PRAGMA integrity_check").fetchone()
            if result is not None and result[0] == "ok":
                return conn
            reason = result[0] if result is not None else "no result"
        except sqlite3.DatabaseError as e:
            reason = str(e)

        logger.warning(
            "State database integrity check failed (%s); recreating %s. Stored mappings will be "
            "recovered from channel history.",
            reason,
            self.db_path,
        )
        if conn is not None:
            conn.close()
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)
        return self._connect()

    def _table_exists(self, table: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)).fetchone()
        return row is not None

    def _columns(self, table: str) -> set[str]:
        return {row[1] for row in self._conn.execute(f"PRAGMA table_info({table})").fetchall()}

    def _migrate(self) -> None:
        for table, old, new in _RENAMES:
            if not self._table_exists(table):
                continue
            columns = self._columns(table)
            if old in columns and new not in columns:
                logger.info("Migrating %s.%s -> %s", table, old, new)
                self._conn.execute(f"ALTER TABLE {table} RENAME COLUMN {old} TO {new}")

        for table, column, sql_type in _ADDITIONS:
            if not self._table_exists(table):
                continue
            if column not in self._columns(table):
                logger.info("Migrating %s: adding column %s", table, column)
                self._conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {sql_type}")

        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Message mappings                                                    #
    # ------------------------------------------------------------------ #

    def get_message_mapping(self, repo: str, number: int, kind: EntityKind = "pr") -> MessageMapping | None:
        table, _, col = _TABLES[kind]
        row = self._conn.execute(
            f"SELECT * FROM {table} WHERE repo = ? AND {col} = ?",
            (repo, number),
        ).fetchone()
        if row is None:
            return None
        return MessageMapping(
            repo=row["repo"],
            number=row[col],
            channel_id=row["channel_id"],
            message_id=row["message_id"],
            thread_id=row["thread_id"],
            created_at=row["created_at"],
            last_updated=row["last_updated"],
            kind=kind,
        )

    def upsert_message_mapping(
        self,
        repo: str,
        number: int,
        channel_id: str,
        message_id: str,
        thread_id: str | None = None,
        kind: EntityKind = "pr",
    ) -> None:
        table, _, col = _TABLES[kind]
        now = _now()
        self._conn.execute(
            f"""
            INSERT INTO {table} (repo, {col}, channel_id, message_id, thread_id, created_at, last_updated)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(repo, {col}) DO UPDATE SET
                channel_id = excluded.channel_id,
                message_id = excluded.message_id,
                thread_id = excluded.thread_id,
                last_updated = excluded.last_updated
            """,
            (repo, number, str(channel_id), str(message_id), str(thread_id) if thread_id else None, now, now),
        )
        self._conn.commit()

    def update_thread(self, repo: str, number: int, thread_id: str, kind: EntityKind = "pr") -> None:
        table, _, col = _TABLES[kind]
        self._conn.execute(
            f"UPDATE {table} SET thread_id = ?, last_updated = ? WHERE repo = ? AND {col} = ?",
            (str(thread_id), _now(), repo, number),
        )
        self._conn.commit()

    def touch_timestamp(self, repo: str, number: int, kind: EntityKind = "pr") -> None:
        table, _, col = _TABLES[kind]
        self._conn.execute(
            f"UPDATE {table} SET last_updated = ? WHERE repo = ? AND {col} = ?",
            (_now(), repo, number),
        )
        self._conn.commit()

    def delete_mapping(self, repo: str, number: int, kind: EntityKind = "pr") -> None:
        table, _, col = _TABLES[kind]
        self._conn.execute(f"DELETE FROM {table} WHERE repo = ? AND {col} = ?", (repo, number))
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Snapshots                                                           #
    # ------------------------------------------------------------------ #

    def get_pr_snapshot(self, repo: str, number: int) -> PrSnapshot | None:
        row = self._conn.execute(
            "SELECT * FROM pr_data WHERE repo = ? AND pr_number = ?",
            (repo, number),
        ).fetchone()
        return self._row_to_pr_snapshot(row) if row is not None else None

    def save_pr_snapshot(self, snapshot: PrSnapshot) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO pr_data
              (repo, pr_number, title, url, author, author_url, author_avatar, branch,
               base_branch, additions, deletions, changed_files, state, draft,
               pr_created_at, merged_at, merged_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.repo,
                snapshot.number,
                snapshot.title,
                snapshot.url,
                snapshot.author,
                snapshot.author_url,
                snapshot.author_avatar,
                snapshot.branch,
                snapshot.base_branch,
                snapshot.additions,
                snapshot.deletions,
                snapshot.changed_files,
                snapshot.state,
                1 if snapshot.draft else 0,
                snapshot.created_at,
                snapshot.merged_at,
                snapshot.merged_by,
            ),
        )
        self._conn.commit()

    def get_issue_snapshot(self, repo: str, number: int) -> IssueSnapshot | None:
        row = self._conn.execute(
            "SELECT * FROM issue_data WHERE repo = ? AND issue_number = ?",
            (repo, number),
        ).fetchone()
        return self._row_to_issue_snapshot(row) if row is not None else None

    def save_issue_snapshot(self, snapshot: IssueSnapshot) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO issue_data
              (repo, issue_number, title, url, author, author_avatar, state,
               state_reason, labels_json, body, issue_created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.repo,
                snapshot.number,
                snapshot.title,
                snapshot.url,
                snapshot.author,
                snapshot.author_avatar,
                snapshot.state,
                snapshot.state_reason,
                json.dumps(list(snapshot.labels)),
                snapshot.body,
                snapshot.created_at,
            ),
        )
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Derived PR status                                                   #
    # ------------------------------------------------------------------ #

    def get_status(self, repo: str, number: int) -> PrStatus | None:
        row = self._conn.execute(
            "SELECT * FROM pr_status WHERE repo = ? AND pr_number = ?",
            (repo, number),
        ).fetchone()
        if row is None:
            return None
        return PrStatus(
            repo=row["repo"],
            number=row["pr_number"],
            reviewer_status=row["reviewer_status"] or "pending",
            reviewer_comments=row["reviewer_comments"] or 0,
            agent_review_status=row["agent_review_status"] or "pending",
            ci_status=row["ci_status"] or "pending",
            ci_workflow_name=row["ci_workflow_name"],
            ci_url=row["ci_url"],
        )

    def ensure_status_row(self, repo: str, number: int) -> None:
        self._conn.execute(
            "INSERT INTO pr_status (repo, pr_number) VALUES (?, ?) ON CONFLICT(repo, pr_number) DO NOTHING",
            (repo, number),
        )
        self._conn.commit()

    def update_reviewer_status(self, repo: str, number: int, status: str, comments: int = 0) -> None:
        self.ensure_status_row(repo, number)
        self._conn.execute(
            "UPDATE pr_status SET reviewer_status = ?, reviewer_comments = ? WHERE repo = ? AND pr_number = ?",
            (status, comments, repo, number),
        )
        self._conn.commit()

    def update_agent_status(self, repo: str, number: int, status: str) -> None:
        self.ensure_status_row(repo, number)
        self._conn.execute(
            "UPDATE pr_status SET agent_review_status = ? WHERE repo = ? AND pr_number = ?",
            (status, repo, number),
        )
        self._conn.commit()

    def update_ci_status(
        self,
        repo: str,
        number: int,
        status: str,
        workflow_name: str | None = None,
        url: str | None = None,
    ) -> None:
        self.ensure_status_row(repo, number)
        self._conn.execute(
            "UPDATE pr_status SET ci_status = ?, ci_workflow_name = ?, ci_url = ? WHERE repo = ? AND pr_number = ?",
            (status, workflow_name, url, repo, number),
        )
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Audit log and queries                                               #
    # ------------------------------------------------------------------ #

    def append_audit_log(self, repo: str, entity_number: int | None, event_type: str, payload: object) -> None:
        try:
            self._conn.execute(
                "INSERT INTO event_log (repo, entity_number, event_type, payload, created_at) VALUES (?, ?, ?, ?, ?)",
                (repo, entity_number, event_type, json.dumps(payload, default=str), _now()),
            )
            self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            # The audit log is diagnostics only; the event itself must still be relayed.
            logger.warning("Could not write audit log entry for %s (%s): %s", event_type, type(e).__name__, e)
            if self._conn.in_transaction:
                self._conn.rollback()

    def recent_audit_log(self, repo: str, entity_number: int | None = None, limit: int = 50) -> list[AuditLogEntry]:
        if entity_number is not None:
            rows = self._conn.execute(
                "SELECT * FROM event_log WHERE repo = ? AND entity_number = ? ORDER BY id DESC LIMIT ?",
                (repo, entity_number, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM event_log WHERE repo = ? ORDER BY id DESC LIMIT ?",
                (repo, limit),
            ).fetchall()
        return [
            AuditLogEntry(
                id=r["id"],
                repo=r["repo"],
                entity_number=r["entity_number"],
                event_type=r["event_type"] or "",
                payload=r["payload"] or "{}",
                created_at=r["created_at"] or "",
            )
            for r in rows
        ]

    def list_open_entity_numbers(self, repo: str, kind: EntityKind = "pr") -> list[int]:
        _, table, col = _TABLES[kind]
        rows = self._conn.execute(
            f"SELECT {col} FROM {table} WHERE repo = ? AND state = 'open' ORDER BY {col}",
            (repo,),
        ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        if self._conn is None:
            return
        # Fold the WAL back into the main file so a runner torn down right after
        # exit (and a cache step that only saves state.db) keeps every commit.
        self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        self._conn.close()
        self._conn = None

    # ------------------------------------------------------------------ #
    # Row mapping                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _row_to_pr_snapshot(row: sqlite3.Row) -> PrSnapshot:
        return PrSnapshot(
            repo=row["repo"],
            number=row["pr_number"],
            title=row["title"],
            url=row["url"],
            author=row["author"],
            author_url=row["author_url"],
            author_avatar=row["author_avatar"],
            branch=row["branch"],
            base_branch=row["base_branch"],
            additions=row["additions"] or 0,
            deletions=row["deletions"] or 0,
            changed_files=row["changed_files"] or 0,
            state=row["state"] or "open",
            draft=bool(row["draft"]),
            created_at=row["pr_created_at"],
            merged_at=row["merged_at"],
            merged_by=row["merged_by"],
        )

    @staticmethod
    def _row_to_issue_snapshot(row: sqlite3.Row) -> IssueSnapshot:
        return IssueSnapshot(
            repo=row["repo"],
            number=row["issue_number"],
            title=row["title"],
            url=row["url"],
            author=row["author"],
            author_avatar=row["author_avatar"],
            state=row["state"] or "open",
            state_reason=row["state_reason"],
            labels=json.loads(row["labels_json"] or "[]"),
            body=row["body"],
            created_at=row["issue_created_at"],
        )
