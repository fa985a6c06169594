"""Message-identity resolver.

The single answer to "which Discord message represents this entity":

    state database (fast path, no Discord I/O)
      → channel history search (slow path)
        → write the hit back, replaying any footer status

A second resolve() for the same entity is always a fast-path hit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay_core import footer
from relay_core.lookup import ISSUE_TITLE_PATTERN, PR_TITLE_PATTERN, SEARCH_LIMIT, find_by_entity_number
from relay_store.models import PR

if TYPE_CHECKING:
    import discord

    from relay_core.lookup import SearchHit
    from relay_store.base import StateStore
    from relay_store.models import EntityKind, MessageMapping

logger = logging.getLogger(__name__)

_TITLE_PATTERNS = {
    "pr": PR_TITLE_PATTERN,
    "issue": ISSUE_TITLE_PATTERN,
}

_LABELS = {"pr": "PR", "issue": "Issue"}


async def resolve(
    store: StateStore,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    kind: EntityKind = PR,
    search_limit: int = SEARCH_LIMIT,
) -> MessageMapping | None:
    """Return the mapping for ``repo#number``, recovering it from Discord if needed."""
    cached = store.get_message_mapping(repo, number, kind=kind)
    if cached is not None:
        return cached

    hit = await find_by_entity_number(channel, _TITLE_PATTERNS[kind], repo, number, limit=search_limit)
    if hit is None:
        return None

    store.upsert_message_mapping(repo, number, str(channel.id), hit.message_id, hit.thread_id, kind=kind)
    recovered_status = False
    if kind == PR:
        store.ensure_status_row(repo, number)
        recovered_status = _replay_footer_status(store, repo, number, hit)

    logger.info(
        "Recovered message for %s #%d from Discord channel (status %s)",
        _LABELS[kind],
        number,
        "recovered from footer" if recovered_status else "not recovered",
    )
    return store.get_message_mapping(repo, number, kind=kind)


def _replay_footer_status(store: StateStore, repo: str, number: int, hit: SearchHit) -> bool:
    status = footer.decode(hit.footer_text)
    if not isinstance(status, footer.PrFooter) or status.number != number:
        return False

    current = store.get_status(repo, number)
    store.update_ci_status(
        repo,
        number,
        status.ci_status,
        current.ci_workflow_name if current else None,
        current.ci_url if current else None,
    )
    store.update_reviewer_status(repo, number, status.reviewer_status, status.reviewer_comments or 0)
    # "pending" is the neutral default; it must not clobber a verdict learned elsewhere.
    if status.agent_review_status != "pending":
        store.update_agent_status(repo, number, status.agent_review_status)
    return True
