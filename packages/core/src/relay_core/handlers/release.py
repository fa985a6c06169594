"""release events: one standalone embed per published release."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay_core.embeds import build_release_embed
from relay_core.messages import channel_for

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

logger = logging.getLogger(__name__)


async def handle_release(ctx: HandlerContext, payload: dict) -> None:
    action = payload.get("action")
    release = payload["release"]
    repo = payload["repository"]["full_name"]

    if action != "published" or release.get("draft"):
        return

    ctx.store.append_audit_log(repo, None, f"release.{action}", payload)

    author = release.get("author") or {}
    embed = build_release_embed(
        name=release.get("name") or release["tag_name"],
        tag_name=release["tag_name"],
        url=release["html_url"],
        author=author.get("login", "unknown"),
        author_avatar=author.get("avatar_url"),
        body=release.get("body"),
        prerelease=bool(release.get("prerelease")),
    )
    channel = await channel_for(ctx, "release")
    await ctx.retry(lambda: channel.send(embed=embed))
    logger.info("Posted release %s", release["tag_name"])
