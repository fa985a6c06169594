"""Tests for the message-identity resolver."""

import logging

import pytest

from relay_core.embeds import CiStatus, ReviewStatus, build_issue_embed, build_pr_embed
from relay_core.resolver import resolve
from relay_store.models import IssueSnapshot, PrSnapshot

REPO = "owner/repo"


def _pr(number=42, repo=REPO):
    return PrSnapshot(
        repo=repo,
        number=number,
        title="Fix login",
        url=f"https://github.com/{repo}/pull/{number}",
        author="octocat",
        author_url="https://github.com/octocat",
        branch="fix-login",
        base_branch="main",
        created_at="2024-05-01T12:00:00Z",
    )


class TestFastPath:
    @pytest.mark.asyncio
    async def test_stored_mapping_needs_no_discord_call(self, store, channel):
        store.upsert_message_mapping(REPO, 42, "111", "5000", "6000")

        mapping = await resolve(store, channel.mock, REPO, 42)

        assert mapping.message_id == "5000"
        assert mapping.thread_id == "6000"
        channel.mock.history.assert_not_called()
        channel.mock.fetch_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_miss_everywhere_returns_none(self, store, channel):
        assert await resolve(store, channel.mock, REPO, 42) is None
        assert store.get_message_mapping(REPO, 42) is None


class TestRecovery:
    @pytest.mark.asyncio
    async def test_hit_is_written_back(self, store, channel):
        message = channel.add_message(build_pr_embed(_pr()))

        mapping = await resolve(store, channel.mock, REPO, 42)

        assert mapping.message_id == str(message.id)
        assert mapping.channel_id == "111"
        stored = store.get_message_mapping(REPO, 42)
        assert (stored.channel_id, stored.message_id) == (mapping.channel_id, mapping.message_id)

    @pytest.mark.asyncio
    async def test_second_resolve_is_fast_path(self, store, channel):
        channel.add_message(build_pr_embed(_pr()))

        await resolve(store, channel.mock, REPO, 42)
        await resolve(store, channel.mock, REPO, 42)

        assert channel.mock.history.call_count == 1

    @pytest.mark.asyncio
    async def test_footer_status_is_replayed(self, store, channel, caplog):
        embed = build_pr_embed(
            _pr(),
            CiStatus(status="failure", workflow_name="CI", url="https://ci"),
            ReviewStatus(reviewer="reviewed", reviewer_comments=3, agent_review="changes_requested"),
        )
        channel.add_message(embed)

        with caplog.at_level(logging.INFO):
            await resolve(store, channel.mock, REPO, 42)

        status = store.get_status(REPO, 42)
        assert status.ci_status == "failure"
        assert status.reviewer_status == "reviewed"
        assert status.reviewer_comments == 3
        assert status.agent_review_status == "changes_requested"
        assert "status recovered from footer" in caplog.text

    @pytest.mark.asyncio
    async def test_pending_agent_status_does_not_clobber(self, store, channel):
        store.update_agent_status(REPO, 42, "approved")
        channel.add_message(build_pr_embed(_pr(), CiStatus(status="success")))

        await resolve(store, channel.mock, REPO, 42)

        status = store.get_status(REPO, 42)
        assert status.agent_review_status == "approved"
        assert status.ci_status == "success"

    @pytest.mark.asyncio
    async def test_message_without_footer_still_recovers_identity(self, store, channel, caplog):
        embed = build_pr_embed(_pr())
        embed.remove_footer()
        message = channel.add_message(embed)

        with caplog.at_level(logging.INFO):
            mapping = await resolve(store, channel.mock, REPO, 42)

        assert mapping.message_id == str(message.id)
        assert store.get_status(REPO, 42).ci_status == "pending"
        assert "status not recovered" in caplog.text

    @pytest.mark.asyncio
    async def test_other_repository_is_not_recovered(self, store, channel):
        channel.add_message(build_pr_embed(_pr(repo="owner/other-repo")))

        assert await resolve(store, channel.mock, REPO, 42) is None
        assert store.get_message_mapping(REPO, 42) is None

    @pytest.mark.asyncio
    async def test_issue_recovery_uses_issue_table(self, store, channel):
        issue = IssueSnapshot(
            repo=REPO,
            number=9,
            title="Crash",
            url=f"https://github.com/{REPO}/issues/9",
            author="octocat",
            created_at="2024-05-01T12:00:00Z",
        )
        message = channel.add_message(build_issue_embed(issue))

        mapping = await resolve(store, channel.mock, REPO, 9, kind="issue")

        assert mapping.kind == "issue"
        assert store.get_message_mapping(REPO, 9, kind="issue").message_id == str(message.id)
        assert store.get_message_mapping(REPO, 9) is None
        assert store.get_status(REPO, 9) is None

    @pytest.mark.asyncio
    async def test_pr_number_in_an_issue_title_is_not_recovered(self, store, channel):
        issue = IssueSnapshot(
            repo=REPO,
            number=7,
            title="Regression from PR #42: login broken",
            url=f"https://github.com/{REPO}/issues/7",
            author="octocat",
            created_at="2024-05-01T12:00:00Z",
        )
        channel.add_message(build_issue_embed(issue))

        assert await resolve(store, channel.mock, REPO, 42) is None
        assert store.get_message_mapping(REPO, 42) is None
        assert store.get_status(REPO, 42) is None
