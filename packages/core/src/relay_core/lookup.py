"""Remote search fallback: recover a message mapping from channel history.

Used when the state database has no row for an entity, typically because an
ephemeral runner started with an empty (or lost) state directory.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from relay_core.retry import with_retry

if TYPE_CHECKING:
    import discord

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100

# Titles look like "🔀 PR #42: Fix login" or "🟢 Issue #7: Crash on start".
# Only the leading emoji may precede the label, so "Issue #7: Regression from
# PR #42: ..." never matches as PR #42.
PR_TITLE_PATTERN = re.compile(r"^(?:\S+\s+)?PR #(\d+):")
ISSUE_TITLE_PATTERN = re.compile(r"^(?:\S+\s+)?Issue #(\d+):")

# GitHub path segment each entity kind lives under.
_URL_SEGMENTS = {
    PR_TITLE_PATTERN: "pull",
    ISSUE_TITLE_PATTERN: "issues",
}


@dataclass
class SearchHit:
    message_id: str
    thread_id: str | None = None
    footer_text: str | None = None


def url_belongs_to_repo(url: str | None, repo: str) -> bool:
    """True if ``url`` points inside ``owner/name`` (case-insensitive path check)."""
    if not url:
        return False
    path = urlparse(url).path.lower()
    return path.startswith(f"/{repo.lower()}/")


def url_points_to_entity(url: str | None, repo: str, segment: str, number: int) -> bool:
    """True if ``url`` is the page of ``repo`` entity ``number`` (e.g. ``/owner/name/pull/42``)."""
    if not url_belongs_to_repo(url, repo):
        return False
    path = urlparse(url).path.lower().rstrip("/")
    expected = f"/{repo.lower()}/{segment}/{number}"
    return path == expected or path.startswith(expected + "/")


async def _recent_messages(channel: discord.TextChannel, limit: int) -> list[discord.Message]:
    return [message async for message in channel.history(limit=limit)]


async def find_by_entity_number(
    channel: discord.TextChannel,
    title_pattern: re.Pattern,
    repo: str,
    number: int,
    limit: int = SEARCH_LIMIT,
) -> SearchHit | None:
    """Scan the newest ``limit`` messages for the embed representing ``repo#number``.

    A title match alone is not enough: channels are often shared between
    repositories, so the embed URL must also be the entity's own page in
    ``repo``. The newest match wins. Best-effort: any failure is logged and
    reported as a miss.
    """
    try:
        messages = await with_retry(lambda: _recent_messages(channel, limit))
    except Exception as e:
        logger.warning("Channel search for %s#%d failed (%s): %s", repo, number, type(e).__name__, e)
        return None

    segment = _URL_SEGMENTS.get(title_pattern)
    for message in messages:
        if not message.embeds:
            continue
        embed = message.embeds[0]
        if not embed.title:
            continue
        match = title_pattern.match(embed.title)
        if not match or int(match.group(1)) != number:
            continue
        if not url_belongs_to_repo(embed.url, repo):
            logger.debug("Skipping message %s: #%d belongs to another repository (%s)", message.id, number, embed.url)
            continue
        if segment and not url_points_to_entity(embed.url, repo, segment, number):
            logger.debug("Skipping message %s: link %s is not #%d", message.id, embed.url, number)
            continue
        thread = getattr(message, "thread", None)
        return SearchHit(
            message_id=str(message.id),
            thread_id=str(thread.id) if thread is not None else None,
            footer_text=embed.footer.text if embed.footer else None,
        )
    return None
