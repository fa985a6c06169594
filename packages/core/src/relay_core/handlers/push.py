"""push events: commits landing on the default branch."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from relay_core.embeds import build_force_push_embed, build_push_embed
from relay_core.messages import channel_for

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)

# Commits GitHub creates when a PR is merged; the PR thread already covers them.
_MERGE_COMMIT = re.compile(r"^Merge (pull request #\d+|branch '|remote-tracking branch ')")


def branch_name(ref: str) -> str:
    return ref[len("refs/heads/") :] if ref.startswith("refs/heads/") else ref


def is_merge_only(commits: list[dict]) -> bool:
    return bool(commits) and all(_MERGE_COMMIT.match(c.get("message") or "") for c in commits)


def skip_reason(payload: dict) -> str | None:
    """Why a push would be discarded, or None if it should be relayed."""
    branch = branch_name(payload.get("ref", ""))
    default_branch = (payload.get("repository") or {}).get("default_branch")
    if branch != default_branch:
        return f"push: branch '{branch}' is not default branch"
    if payload.get("created") or payload.get("deleted"):
        return "push: branch creation or deletion event"
    if not payload.get("forced") and is_merge_only(payload.get("commits") or []):
        return "push: only merge commits"
    return None


async def handle_push(ctx: HandlerContext, payload: dict) -> None:
    reason = skip_reason(payload)
    if reason:
        logger.debug("Skipping %s", reason)
        return

    repo = payload["repository"]["full_name"]
    branch = branch_name(payload["ref"])
    ctx.store.append_audit_log(repo, None, "push.forced" if payload.get("forced") else "push", payload)

    sender = payload.get("sender") or {}
    pusher = sender.get("login") or (payload.get("pusher") or {}).get("name", "unknown")
    if payload.get("forced"):
        embed = build_force_push_embed(
            branch=branch,
            before=payload.get("before", ""),
            after=payload.get("after", ""),
            pusher=pusher,
            compare_url=payload.get("compare"),
            pusher_avatar=sender.get("avatar_url"),
        )
    else:
        commits = payload.get("commits") or []
        if not commits:
            return
        embed = build_push_embed(
            branch=branch,
            commits=commits,
            pusher=pusher,
            compare_url=payload.get("compare"),
            pusher_avatar=sender.get("avatar_url"),
        )

    channel = await channel_for(ctx, "push")
    await ctx.retry(lambda: channel.send(embed=embed))
