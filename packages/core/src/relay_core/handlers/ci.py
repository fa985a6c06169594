"""workflow_run events: CI status on every associated PR."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from relay_core.embeds import CiStatus, build_ci_reply
from relay_core.errors import RelayError
from relay_core.gh.ci import fetch_failed_steps
from relay_core.gh.reviews import check_for_reviews
from relay_core.handlers.pr import refresh_pr_message
from relay_core.messages import channel_for, reply_in_thread, resolve_message, thread_name
from relay_core.resolver import resolve

if TYPE_CHECKING:
    import discord

    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)


def map_ci_status(status: str | None, conclusion: str | None) -> str:
    if status == "completed":
        if conclusion in ("failure", "cancelled"):
            return conclusion
        # success, neutral, skipped
        return "success"
    if status == "in_progress":
        return "running"
    return "pending"


async def handle_workflow_run(ctx: HandlerContext, payload: dict) -> None:
    run = payload["workflow_run"]
    repo = payload["repository"]["full_name"]
    action = payload.get("action")
    pull_requests = run.get("pull_requests") or []
    if not pull_requests:
        logger.debug("workflow_run %s has no associated PRs", run.get("id"))
        return

    channel = await channel_for(ctx, "ci")
    ci = CiStatus(
        status=map_ci_status(run.get("status"), run.get("conclusion")),
        workflow_name=run.get("name"),
        url=run.get("html_url"),
    )

    failed = []
    for pr in pull_requests:
        number = pr["number"]
        ctx.store.append_audit_log(repo, number, f"ci.{action}", payload)
        try:
            await _update_pr(ctx, channel, repo, number, run, ci, completed=action == "completed")
        except Exception:
            logger.exception("Failed to update CI status for PR #%d", number)
            failed.append(number)

    if failed:
        raise RelayError(f"CI update failed for PR(s) {', '.join(f'#{n}' for n in failed)}")


async def _update_pr(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    run: dict,
    ci: CiStatus,
    completed: bool,
) -> None:
    # Resolve first so footer status recovered from Discord is replayed
    # before this event's CI status is written over it.
    mapping = await resolve(ctx.store, channel, repo, number, search_limit=ctx.search_limit)
    if mapping is None:
        logger.info("No message for PR #%d; skipping CI update", number)
        return

    ctx.store.update_ci_status(repo, number, ci.status, ci.workflow_name, ci.url)
    if ctx.github_token:
        await asyncio.to_thread(check_for_reviews, ctx.store, repo, number, ctx.github_token)

    refreshed = await refresh_pr_message(ctx, channel, repo, number)
    if refreshed is None:
        refreshed = await resolve_message(ctx, channel, repo, number)
        if refreshed is None:
            return
    mapping, message = refreshed

    if not completed:
        return

    failed_steps = None
    if ci.status == "failure" and ctx.github_token:
        failed_steps = await asyncio.to_thread(fetch_failed_steps, repo, run["id"], ctx.github_token)
    snapshot = ctx.store.get_pr_snapshot(repo, number)
    title = snapshot.title if snapshot else run.get("display_title") or run.get("name") or ""
    await reply_in_thread(ctx, channel, mapping, message, thread_name("PR", number, title), build_ci_reply(ci, failed_steps))
