"""Review polling against the GitHub API.

Reviews and comments posted by other apps with GITHUB_TOKEN do not trigger
workflows, so these signals can only be learned by asking GitHub. Called
opportunistically from other events and by the scheduled pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from relay_core.errors import safe_error_message
from relay_core.gh.client import get_pull, get_repo
from relay_core.patterns import classify_verdict, is_agent_review, is_copilot

if TYPE_CHECKING:
    from relay_store.base import StateStore

logger = logging.getLogger(__name__)


@dataclass
class ReviewCheck:
    copilot_reviewed: bool = False
    copilot_comments: int = 0
    copilot_url: str | None = None
    agent_review_status: str = "pending"
    agent_review_url: str | None = None
    changed: bool = False


def check_for_reviews(store: StateStore, repo: str, number: int, token: str) -> ReviewCheck:
    """Record any new Copilot review or agent-review verdict for a PR.

    ``changed`` tells the caller whether the embed needs a refresh. GitHub
    errors are logged and treated as "nothing new".
    """
    current = store.get_status(repo, number)
    result = ReviewCheck(
        copilot_reviewed=current is not None and current.reviewer_status == "reviewed",
        copilot_comments=current.reviewer_comments if current else 0,
        agent_review_status=current.agent_review_status if current else "pending",
    )

    try:
        pull = get_pull(get_repo(repo, token), number)
    except Exception as e:
        logger.warning("Failed to load PR #%d for review check: %s", number, safe_error_message(e))
        return result

    try:
        copilot_review = next((r for r in pull.get_reviews() if r.user and is_copilot(r.user.login)), None)
        if copilot_review is not None and not result.copilot_reviewed:
            comments = pull.get_single_review_comments(copilot_review.id).totalCount
            logger.info("Detected Copilot review for PR #%d (%d comments)", number, comments)
            store.update_reviewer_status(repo, number, "reviewed", comments)
            result.copilot_reviewed = True
            result.copilot_comments = comments
            result.copilot_url = copilot_review.html_url
            result.changed = True
    except Exception as e:
        logger.warning("Failed to check Copilot reviews for PR #%d: %s", number, safe_error_message(e))

    try:
        matching = [c for c in pull.get_issue_comments() if is_agent_review(c.body)]
        logger.debug("Found %d agent-review comments on PR #%d", len(matching), number)
        if matching:
            latest = max(matching, key=lambda c: c.created_at)
            status = classify_verdict(latest.body)
            if status != result.agent_review_status:
                logger.info("Detected agent review (%s) for PR #%d", status, number)
                store.update_agent_status(repo, number, status)
                result.agent_review_status = status
                result.agent_review_url = latest.html_url
                result.changed = True
    except Exception as e:
        logger.warning("Failed to check agent-review comments for PR #%d: %s", number, safe_error_message(e))

    return result


def count_review_comments(repo: str, number: int, review_id: int, token: str) -> int:
    """Inline comment count for one review; 0 if GitHub cannot say."""
    try:
        return get_pull(get_repo(repo, token), number).get_single_review_comments(review_id).totalCount
    except Exception as e:
        logger.warning("Failed to count comments for review %s: %s", review_id, safe_error_message(e))
        return 0
