"""deployment_status events: terminal deployment outcomes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from relay_core.embeds import build_deployment_embed
from relay_core.messages import channel_for

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

TERMINAL_STATES = ("success", "failure", "error")


async def handle_deployment_status(ctx: HandlerContext, payload: dict) -> None:
    status = payload["deployment_status"]
    deployment = payload["deployment"]
    repo = payload["repository"]["full_name"]

    if status.get("state") not in TERMINAL_STATES:
        return

    ctx.store.append_audit_log(repo, None, f"deployment_status.{status['state']}", payload)

    creator = status.get("creator") or deployment.get("creator") or {}
    embed = build_deployment_embed(
        state=status["state"],
        environment=status.get("environment") or deployment.get("environment", "unknown"),
        ref=deployment.get("ref", ""),
        sha=deployment.get("sha", ""),
        creator=creator.get("login", "unknown"),
        creator_avatar=creator.get("avatar_url"),
        description=status.get("description"),
        target_url=status.get("target_url") or status.get("environment_url"),
    )
    channel = await channel_for(ctx, "deployment")
    await ctx.retry(lambda: channel.send(embed=embed))
