"""schedule events: the periodic review reconciliation pass.

Copilot reviews and agent-review comments posted with GITHUB_TOKEN never
trigger a workflow, so the only way to notice them is to ask GitHub. This
pass walks every PR the store believes is open and refreshes the ones whose
review status changed. One PR failing never stops the pass.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from relay_core.embeds import build_review_reply
from relay_core.gh.reviews import check_for_reviews
from relay_core.handlers.pr import refresh_pr_message
from relay_core.messages import channel_for, reply_in_thread, thread_name
from relay_core.resolver import resolve

if TYPE_CHECKING:
    import discord

    from relay_core.context import HandlerContext
    from relay_store.models import PrStatus

logger = logging.getLogger(__name__)


async def handle_schedule(ctx: HandlerContext, payload: dict) -> None:
    repo = ctx.repo or ((payload.get("repository") or {}).get("full_name"))
    if not ctx.github_token:
        logger.info("No GitHub token configured; skipping review polling")
        return

    numbers = ctx.store.list_open_entity_numbers(repo, kind="pr")
    if not numbers:
        logger.info("No open PRs to poll")
        return

    ctx.store.append_audit_log(repo, None, "schedule", {"open_prs": numbers})
    channel = await channel_for(ctx, "pr")
    budget = float(ctx.config.get("poll_budget_seconds", 240))
    started = time.monotonic()

    for number in numbers:
        try:
            await _poll_pr(ctx, channel, repo, number)
        except Exception:
            logger.exception("Review polling failed for PR #%d; continuing", number)

    elapsed = time.monotonic() - started
    logger.info("Review polling completed: %d PR(s) in %.1fs", len(numbers), elapsed)
    if elapsed > budget:
        logger.warning(
            "Review polling took %.1fs, over the %.0fs budget; runs may start overlapping",
            elapsed,
            budget,
        )


async def _poll_pr(ctx: HandlerContext, channel: discord.TextChannel, repo: str, number: int) -> None:
    # Resolve before polling so footer-recovered status is the baseline being compared.
    mapping = await resolve(ctx.store, channel, repo, number, search_limit=ctx.search_limit)
    before = ctx.store.get_status(repo, number)
    result = await asyncio.to_thread(check_for_reviews, ctx.store, repo, number, ctx.github_token)
    if not result.changed or mapping is None:
        return

    refreshed = await refresh_pr_message(ctx, channel, repo, number)
    if refreshed is None:
        return
    mapping, message = refreshed

    snapshot = ctx.store.get_pr_snapshot(repo, number)
    name = thread_name("PR", number, snapshot.title if snapshot else "")
    for reply in _review_replies(before, result):
        await reply_in_thread(ctx, channel, mapping, message, name, reply)


def _review_replies(before: PrStatus | None, result) -> list[str]:
    replies = []
    if result.copilot_reviewed and (before is None or before.reviewer_status != "reviewed"):
        replies.append(build_review_reply("copilot", "reviewed", result.copilot_comments, result.copilot_url))
    previous_agent = before.agent_review_status if before else "pending"
    if result.agent_review_status != previous_agent:
        replies.append(build_review_reply("agent", result.agent_review_status, url=result.agent_review_url))
    return replies
