"""pull_request_review events: automated reviewer (Copilot) status."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from relay_core.embeds import build_review_reply
from relay_core.gh.reviews import count_review_comments
from relay_core.handlers.pr import apply_pr_signal
from relay_core.messages import channel_for
from relay_core.patterns import is_copilot

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)


async def handle_pull_request_review(ctx: HandlerContext, payload: dict) -> None:
    action = payload.get("action")
    repo = payload["repository"]["full_name"]
    review = payload["review"]
    number = payload["pull_request"]["number"]

    ctx.store.append_audit_log(repo, number, f"review.{action}", payload)
    if action != "submitted":
        return

    login = (review.get("user") or {}).get("login")
    if not is_copilot(login):
        logger.debug("Review on PR #%d by %s is not from Copilot; nothing to record", number, login)
        return

    comments = 0
    if ctx.github_token and review.get("id"):
        comments = await asyncio.to_thread(count_review_comments, repo, number, review["id"], ctx.github_token)

    channel = await channel_for(ctx, "review")
    await apply_pr_signal(
        ctx,
        channel,
        repo,
        number,
        lambda: ctx.store.update_reviewer_status(repo, number, "reviewed", comments),
        build_review_reply("copilot", "reviewed", comments, review.get("html_url")),
    )
