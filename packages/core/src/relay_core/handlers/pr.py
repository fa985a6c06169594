"""pull_request events: the PR message lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from relay_core.embeds import (
    build_closed_reply,
    build_merged_reply,
    build_pr_embed,
    build_push_reply,
    build_reopened_reply,
    pr_view_from_store,
)
from relay_core.gh.pulls import count_commits, fetch_pr_snapshot
from relay_core.messages import channel_for, reply_in_thread, resolve_message, thread_name, upsert_entity_message
from relay_core.resolver import resolve
from relay_store.models import PrSnapshot

if TYPE_CHECKING:
    import discord

    from relay_core.context import HandlerContext
    from relay_core.embeds import CiStatus, ReviewStatus
    from relay_store.models import MessageMapping

logger = logging.getLogger(__name__)

_REFRESH_ACTIONS = ("edited", "ready_for_review", "converted_to_draft")


def snapshot_from_payload(repo: str, pr: dict) -> PrSnapshot:
    user = pr.get("user") or {}
    return PrSnapshot(
        repo=repo,
        number=pr["number"],
        title=pr["title"],
        url=pr["html_url"],
        author=user.get("login", "unknown"),
        author_url=user.get("html_url", ""),
        author_avatar=user.get("avatar_url"),
        branch=pr["head"]["ref"],
        base_branch=pr["base"]["ref"],
        additions=pr.get("additions") or 0,
        deletions=pr.get("deletions") or 0,
        changed_files=pr.get("changed_files") or 0,
        state="merged" if pr.get("merged") else pr.get("state", "open"),
        draft=bool(pr.get("draft")),
        created_at=pr.get("created_at") or "",
        merged_at=pr.get("merged_at"),
        merged_by=(pr.get("merged_by") or {}).get("login"),
    )


async def load_pr_view(ctx: HandlerContext, repo: str, number: int) -> tuple[PrSnapshot, CiStatus, ReviewStatus] | None:
    """Embed inputs from the store, refetching the snapshot from GitHub if it was lost."""
    view = pr_view_from_store(ctx.store, repo, number)
    if view is None and ctx.github_token:
        snapshot = await asyncio.to_thread(fetch_pr_snapshot, repo, number, ctx.github_token)
        if snapshot is not None:
            ctx.store.save_pr_snapshot(snapshot)
            view = pr_view_from_store(ctx.store, repo, number)
    return view


async def refresh_pr_message(
    ctx: HandlerContext, channel: discord.TextChannel, repo: str, number: int
) -> tuple[MessageMapping, discord.Message] | None:
    """Re-render a PR embed from stored snapshot and status.

    Posts a fresh message if the old one was deleted. Returns None when
    there is no snapshot to render from.
    """
    view = await load_pr_view(ctx, repo, number)
    if view is None:
        logger.info("No snapshot for PR #%d; leaving its message unchanged", number)
        return None
    mapping, message, _ = await upsert_entity_message(ctx, channel, repo, number, build_pr_embed(*view))
    return mapping, message


async def handle_pull_request(ctx: HandlerContext, payload: dict) -> None:
    action = payload.get("action")
    repo = payload["repository"]["full_name"]
    snapshot = snapshot_from_payload(repo, payload["pull_request"])
    number = snapshot.number

    ctx.store.append_audit_log(repo, number, f"pr.{action}", payload)

    if action not in ("opened", "reopened", "closed", "synchronize", *_REFRESH_ACTIONS):
        logger.debug("Ignoring pull_request action %s", action)
        return

    channel = await channel_for(ctx, "pr")
    ctx.store.save_pr_snapshot(snapshot)
    embed = build_pr_embed(*pr_view_from_store(ctx.store, repo, number))
    mapping, message, created = await upsert_entity_message(ctx, channel, repo, number, embed)

    sender = (payload.get("sender") or {}).get("login")
    reply = None
    if action == "reopened" and not created:
        reply = build_reopened_reply(sender)
    elif action == "closed" and not created:
        if snapshot.state == "merged":
            reply = build_merged_reply(snapshot.merged_by, snapshot.base_branch)
        else:
            reply = build_closed_reply(sender)
    elif action == "synchronize":
        reply = await _push_reply(ctx, repo, snapshot, payload)

    if reply:
        await reply_in_thread(ctx, channel, mapping, message, thread_name("PR", number, snapshot.title), reply)


async def _push_reply(ctx: HandlerContext, repo: str, pr: PrSnapshot, payload: dict) -> str:
    before = payload.get("before")
    after = payload.get("after") or payload["pull_request"]["head"]["sha"]
    commit_count = None
    if before and ctx.github_token:
        commit_count = await asyncio.to_thread(count_commits, repo, before, after, ctx.github_token)
    compare_url = f"https://github.com/{repo}/compare/{before}...{after}" if before else f"{pr.url}/commits"
    sender = (payload.get("sender") or {}).get("login", pr.author)
    return build_push_reply(commit_count or 1, sender, after, compare_url)


async def apply_pr_signal(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    record: Callable[[], object],
    reply: str | None = None,
) -> bool:
    """Record a status signal for a PR, re-render its embed and optionally reply.

    The mapping is resolved before ``record`` runs so that status recovered
    from a message footer cannot overwrite the new signal. Returns False if
    the PR has no message.
    """
    mapping = await resolve(ctx.store, channel, repo, number, search_limit=ctx.search_limit)
    record()
    if mapping is None:
        logger.info("No message for PR #%d; status recorded only", number)
        return False

    refreshed = await refresh_pr_message(ctx, channel, repo, number)
    if refreshed is None:
        refreshed = await resolve_message(ctx, channel, repo, number)
        if refreshed is None:
            return False
    mapping, message = refreshed

    if reply:
        snapshot = ctx.store.get_pr_snapshot(repo, number)
        name = thread_name("PR", number, snapshot.title if snapshot else "")
        await reply_in_thread(ctx, channel, mapping, message, name, reply)
    return True
