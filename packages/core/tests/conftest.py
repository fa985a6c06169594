"""Shared fakes for the relay core tests.

The Discord side is faked with spec'd MagicMocks so that the ``isinstance``
checks in relay_core.messages pass; the store is a real SQLite file under
``tmp_path``.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from relay_core.config import ChannelConfig
from relay_core.context import HandlerContext
from relay_store.sqlite import SQLiteStateStore

REPO = "owner/repo"
CHANNEL_ID = 111


def make_http_error(cls=discord.HTTPException, status=500):
    response = MagicMock(status=status, reason="error")
    return cls(response, f"HTTP {status}")


async def _aiter(items):
    for item in items:
        yield item


class FakeChannel:
    """A text channel that remembers what was posted to it.

    ``channel.mock`` is what the code under test sees. Messages and threads
    get sequential integer ids; deleting a message makes later fetches and
    edits raise ``discord.NotFound``.
    """

    def __init__(self, channel_id=CHANNEL_ID):
        self.messages: list = []  # oldest first
        self.threads: dict = {}
        self.deleted: set = set()
        self._next_id = 1000

        self.mock = MagicMock(spec=discord.TextChannel)
        self.mock.id = channel_id
        self.mock.send = AsyncMock(side_effect=self._send)
        self.mock.fetch_message = AsyncMock(side_effect=self._fetch)
        self.mock.history = MagicMock(side_effect=self._history)
        self.mock.guild.get_thread = MagicMock(side_effect=lambda thread_id: self.threads.get(thread_id))
        self.mock.guild.fetch_channel = AsyncMock(side_effect=self._fetch_thread)

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    def add_message(self, embed=None, content=None):
        message = MagicMock(spec=discord.Message)
        message.id = self._new_id()
        message.content = content
        message.embeds = [embed] if embed is not None else []
        message.thread = None

        async def edit(embed=None, **kwargs):
            if message.id in self.deleted:
                raise make_http_error(discord.NotFound, 404)
            message.embeds = [embed]
            return message

        async def create_thread(name, auto_archive_duration=None, **kwargs):
            thread = self.add_thread(name)
            message.thread = thread
            return thread

        message.edit = AsyncMock(side_effect=edit)
        message.create_thread = AsyncMock(side_effect=create_thread)
        self.messages.append(message)
        return message

    def add_thread(self, name="thread", archived=False):
        thread = MagicMock(spec=discord.Thread)
        thread.id = self._new_id()
        thread.name = name
        thread.archived = archived
        thread.sent = []

        async def send(content=None, **kwargs):
            thread.sent.append(content)

        async def edit(archived=None, **kwargs):
            if archived is not None:
                thread.archived = archived
            return thread

        thread.send = AsyncMock(side_effect=send)
        thread.edit = AsyncMock(side_effect=edit)
        self.threads[thread.id] = thread
        return thread

    def delete(self, message):
        self.deleted.add(message.id)

    async def _send(self, content=None, embed=None, **kwargs):
        return self.add_message(embed=embed, content=content)

    async def _fetch(self, message_id):
        for message in self.messages:
            if message.id == message_id and message.id not in self.deleted:
                return message
        raise make_http_error(discord.NotFound, 404)

    async def _fetch_thread(self, thread_id):
        if thread_id in self.threads:
            return self.threads[thread_id]
        raise make_http_error(discord.NotFound, 404)

    def _history(self, limit=100, **kwargs):
        live = [m for m in reversed(self.messages) if m.id not in self.deleted]
        return _aiter(live[:limit])


@pytest.fixture
def http_error():
    return make_http_error


@pytest.fixture
def store(tmp_path):
    s = SQLiteStateStore(REPO, base_dir=tmp_path)
    yield s
    s.close()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def client(channel):
    client = MagicMock(spec=discord.Client)
    client.fetch_channel = AsyncMock(return_value=channel.mock)
    return client


@pytest.fixture
def ctx(client, store):
    return HandlerContext(
        client=client,
        store=store,
        channels=ChannelConfig(prs=str(CHANNEL_ID)),
        config={"retry_base_delay": 0, "search_limit": 100},
        github_token=None,
        repo=REPO,
    )
