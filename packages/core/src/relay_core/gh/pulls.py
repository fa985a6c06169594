"""Pull request lookups used to rebuild state the database no longer has."""

from __future__ import annotations

import logging

from relay_core.errors import safe_error_message
from relay_core.gh.client import compare, get_pull, get_repo
from relay_store.models import PrSnapshot

logger = logging.getLogger(__name__)


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def fetch_pr_snapshot(repo: str, number: int, token: str) -> PrSnapshot | None:
    """Build a PrSnapshot from the GitHub API, or None if the PR cannot be read."""
    try:
        pull = get_pull(get_repo(repo, token), number)
        return PrSnapshot(
            repo=repo,
            number=pull.number,
            title=pull.title,
            url=pull.html_url,
            author=pull.user.login,
            author_url=pull.user.html_url,
            author_avatar=pull.user.avatar_url,
            branch=pull.head.ref,
            base_branch=pull.base.ref,
            additions=pull.additions,
            deletions=pull.deletions,
            changed_files=pull.changed_files,
            state="merged" if pull.merged else pull.state,
            draft=bool(pull.draft),
            created_at=_iso(pull.created_at) or "",
            merged_at=_iso(pull.merged_at),
            merged_by=pull.merged_by.login if pull.merged_by else None,
        )
    except Exception as e:
        logger.warning("Failed to fetch PR #%d from GitHub: %s", number, safe_error_message(e))
        return None


def count_commits(repo: str, before: str, after: str, token: str) -> int | None:
    """Number of commits between two SHAs, or None if GitHub cannot say."""
    try:
        return compare(get_repo(repo, token), before, after).total_commits
    except Exception as e:
        logger.warning("Failed to compare %s...%s: %s", before[:7], after[:7], safe_error_message(e))
        return None
