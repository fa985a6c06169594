"""Discord message and thread operations shared by the handlers.

Every call that reaches Discord goes through ``ctx.retry``. Every path that
touches a previously mapped message treats ``discord.NotFound`` as "the
message was deleted out of band": the mapping is dropped and the caller
falls through to creating a fresh message. Any other error propagates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from relay_core.config import channel_for_event
from relay_core.errors import ChannelError, is_not_found
from relay_core.resolver import resolve
from relay_store.models import PR

if TYPE_CHECKING:
    from relay_core.context import HandlerContext
    from relay_store.models import EntityKind, MessageMapping

logger = logging.getLogger(__name__)

# Discord's limit for thread names.
_MAX_THREAD_NAME = 100

_LABELS = {"pr": "PR", "issue": "Issue"}


async def fetch_text_channel(ctx: HandlerContext, channel_id: str) -> discord.TextChannel:
    try:
        channel = await ctx.retry(lambda: ctx.client.fetch_channel(int(channel_id)))
    except discord.NotFound as e:
        raise ChannelError(f"Channel {channel_id} not found") from e
    if not isinstance(channel, discord.TextChannel):
        raise ChannelError(f"Channel {channel_id} is not a text channel")
    return channel


async def channel_for(ctx: HandlerContext, kind: str) -> discord.TextChannel:
    """Fetch the text channel that events of ``kind`` are routed to."""
    return await fetch_text_channel(ctx, channel_for_event(ctx.channels, kind))


def _forget_stale(ctx: HandlerContext, mapping: MessageMapping) -> None:
    ctx.store.delete_mapping(mapping.repo, mapping.number, kind=mapping.kind)
    logger.info(
        "Message %s for %s #%d no longer exists in Discord; dropped stale mapping",
        mapping.message_id,
        _LABELS[mapping.kind],
        mapping.number,
    )


async def fetch_mapped_message(
    ctx: HandlerContext, channel: discord.TextChannel, mapping: MessageMapping
) -> discord.Message | None:
    """Fetch the message behind ``mapping``; None (and the mapping dropped) if it was deleted."""
    try:
        return await ctx.retry(lambda: channel.fetch_message(int(mapping.message_id)))
    except discord.NotFound:
        _forget_stale(ctx, mapping)
        return None


async def resolve_message(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    kind: EntityKind = PR,
) -> tuple[MessageMapping, discord.Message] | None:
    """Resolve an entity to its live Discord message, or None if there is none."""
    mapping = await resolve(ctx.store, channel, repo, number, kind=kind, search_limit=ctx.search_limit)
    if mapping is None:
        return None
    message = await fetch_mapped_message(ctx, channel, mapping)
    if message is None:
        return None
    return mapping, message


async def send_entity_message(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    embed: discord.Embed,
    kind: EntityKind = PR,
) -> tuple[MessageMapping, discord.Message]:
    message = await ctx.retry(lambda: channel.send(embed=embed))
    ctx.store.upsert_message_mapping(repo, number, str(channel.id), str(message.id), kind=kind)
    logger.info("Posted message %s for %s #%d", message.id, _LABELS[kind], number)
    return ctx.store.get_message_mapping(repo, number, kind=kind), message


async def upsert_entity_message(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    repo: str,
    number: int,
    embed: discord.Embed,
    kind: EntityKind = PR,
) -> tuple[MessageMapping, discord.Message, bool]:
    """Edit the entity's message in place, or post a new one.

    Returns ``(mapping, message, created)``.
    """
    resolved = await resolve_message(ctx, channel, repo, number, kind=kind)
    if resolved is not None:
        mapping, message = resolved
        try:
            await ctx.retry(lambda: message.edit(embed=embed))
        except discord.NotFound:
            _forget_stale(ctx, mapping)
        else:
            ctx.store.touch_timestamp(repo, number, kind=kind)
            return mapping, message, False

    mapping, message = await send_entity_message(ctx, channel, repo, number, embed, kind=kind)
    return mapping, message, True


def thread_name(label: str, number: int, title: str) -> str:
    name = f"{label} #{number}: {title}"
    if len(name) > _MAX_THREAD_NAME:
        name = name[: _MAX_THREAD_NAME - 1] + "…"
    return name


async def _fetch_thread(ctx: HandlerContext, channel: discord.TextChannel, thread_id: str) -> discord.Thread | None:
    thread = channel.guild.get_thread(int(thread_id))
    if thread is None:
        try:
            thread = await ctx.retry(lambda: channel.guild.fetch_channel(int(thread_id)))
        except discord.HTTPException as e:
            if not is_not_found(e):
                raise
            return None
    return thread if isinstance(thread, discord.Thread) else None


async def get_or_create_thread(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    mapping: MessageMapping,
    message: discord.Message,
    name: str,
) -> discord.Thread:
    """Return the entity's reply thread, unarchiving or creating it as needed."""
    thread = None
    if mapping.thread_id:
        thread = await _fetch_thread(ctx, channel, mapping.thread_id)
        if thread is None:
            logger.info("Thread %s for #%d is gone; creating a new one", mapping.thread_id, mapping.number)

    if thread is None and message.thread is not None:
        thread = message.thread

    if thread is None:
        thread = await ctx.retry(
            lambda: message.create_thread(name=name, auto_archive_duration=ctx.thread_auto_archive_minutes)
        )
        logger.info("Created thread %s for #%d", thread.id, mapping.number)

    if str(thread.id) != mapping.thread_id:
        ctx.store.update_thread(mapping.repo, mapping.number, str(thread.id), kind=mapping.kind)
        mapping.thread_id = str(thread.id)

    if thread.archived:
        await ctx.retry(lambda: thread.edit(archived=False))
    return thread


async def reply_in_thread(
    ctx: HandlerContext,
    channel: discord.TextChannel,
    mapping: MessageMapping,
    message: discord.Message,
    name: str,
    text: str,
) -> discord.Thread:
    thread = await get_or_create_thread(ctx, channel, mapping, message, name)
    await ctx.retry(lambda: thread.send(text))
    return thread
