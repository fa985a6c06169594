"""issues events: the issue message lifecycle."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay_core.embeds import build_issue_closed_reply, build_issue_embed, build_issue_reopened_reply
from relay_core.messages import channel_for, reply_in_thread, thread_name, upsert_entity_message
from relay_store.models import ISSUE, IssueSnapshot

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)

HANDLED_ACTIONS = ("opened", "closed", "reopened")


def snapshot_from_payload(repo: str, issue: dict) -> IssueSnapshot:
    user = issue.get("user") or {}
    return IssueSnapshot(
        repo=repo,
        number=issue["number"],
        title=issue["title"],
        url=issue["html_url"],
        author=user.get("login", "unknown"),
        author_avatar=user.get("avatar_url"),
        state=issue.get("state", "open"),
        state_reason=issue.get("state_reason"),
        labels=[label["name"] for label in issue.get("labels") or [] if label.get("name")],
        body=issue.get("body"),
        created_at=issue.get("created_at") or "",
    )


async def handle_issues(ctx: HandlerContext, payload: dict) -> None:
    action = payload.get("action")
    repo = payload["repository"]["full_name"]
    snapshot = snapshot_from_payload(repo, payload["issue"])
    number = snapshot.number

    ctx.store.append_audit_log(repo, number, f"issue.{action}", payload)
    if action not in HANDLED_ACTIONS:
        logger.debug("Ignoring issues action %s", action)
        return

    channel = await channel_for(ctx, "issue")
    ctx.store.save_issue_snapshot(snapshot)
    mapping, message, created = await upsert_entity_message(
        ctx, channel, repo, number, build_issue_embed(snapshot), kind=ISSUE
    )
    if created or action == "opened":
        return

    sender = (payload.get("sender") or {}).get("login")
    if action == "closed":
        reply = build_issue_closed_reply(sender, snapshot.state_reason)
    else:
        reply = build_issue_reopened_reply(sender)
    await reply_in_thread(ctx, channel, mapping, message, thread_name("Issue", number, snapshot.title), reply)
