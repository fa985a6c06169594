"""issue_comment events: agent-review verdicts posted as PR comments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay_core.embeds import build_review_reply
from relay_core.handlers.pr import apply_pr_signal
from relay_core.messages import channel_for
from relay_core.patterns import classify_verdict, is_agent_review

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)


async def handle_issue_comment(ctx: HandlerContext, payload: dict) -> None:
    action = payload.get("action")
    repo = payload["repository"]["full_name"]
    issue = payload["issue"]
    comment = payload["comment"]

    if action != "created" or not issue.get("pull_request"):
        return

    number = issue["number"]
    body = comment.get("body") or ""
    if not is_agent_review(body):
        return

    ctx.store.append_audit_log(repo, number, "review.agent", payload)
    status = classify_verdict(body)
    logger.info("Agent review on PR #%d: %s", number, status)

    channel = await channel_for(ctx, "comment")
    await apply_pr_signal(
        ctx,
        channel,
        repo,
        number,
        lambda: ctx.store.update_agent_status(repo, number, status),
        build_review_reply("agent", status, url=comment.get("html_url")),
    )
