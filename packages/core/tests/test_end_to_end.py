"""End-to-end: a PR opens, CI completes, and CI replays against a lost store."""

import pytest

from relay_core.context import HandlerContext
from relay_core.footer import PrFooter, decode
from relay_core.gh.reviews import ReviewCheck
from relay_core.handlers.ci import handle_workflow_run
from relay_core.handlers.pr import handle_pull_request
from relay_store.sqlite import SQLiteStateStore

REPO = "owner/repo"


def _pr_payload(action="opened"):
    return {
        "action": action,
        "repository": {"full_name": REPO},
        "sender": {"login": "octocat"},
        "pull_request": {
            "number": 7,
            "title": "Fix auth bug",
            "html_url": f"https://github.com/{REPO}/pull/7",
            "state": "open",
            "draft": False,
            "merged": False,
            "user": {"login": "octocat", "html_url": "https://github.com/octocat", "avatar_url": None},
            "head": {"ref": "fix-auth", "sha": "abc1234def"},
            "base": {"ref": "main"},
            "additions": 10,
            "deletions": 2,
            "changed_files": 3,
            "created_at": "2024-05-01T12:00:00Z",
        },
    }


def _ci_payload(conclusion="success"):
    return {
        "action": "completed",
        "repository": {"full_name": REPO},
        "workflow_run": {
            "id": 99,
            "name": "CI",
            "status": "completed",
            "conclusion": conclusion,
            "html_url": f"https://github.com/{REPO}/actions/runs/99",
            "pull_requests": [{"number": 7}],
        },
    }


class TestPrLifecycle:
    @pytest.mark.asyncio
    async def test_open_then_ci_completion(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        assert len(channel.messages) == 1
        message = channel.messages[0]
        mapping = store.get_message_mapping(REPO, 7)
        assert mapping.message_id == str(message.id)
        assert store.get_pr_snapshot(REPO, 7).title == "Fix auth bug"
        assert store.get_status(REPO, 7) is None
        opened_at = mapping.last_updated

        channel.mock.history.reset_mock()
        await handle_workflow_run(ctx, _ci_payload())

        # Fast path: the stored mapping was used, no channel search.
        channel.mock.history.assert_not_called()
        assert store.get_status(REPO, 7).ci_status == "success"

        message.edit.assert_awaited_once()
        edited = message.embeds[0]
        assert edited.title.startswith("🔀 PR #7: Fix auth bug")
        assert decode(edited.footer.text).ci_status == "success"

        thread = message.thread
        assert thread is not None
        assert thread.sent == [f"🔄 CI: ✅ Passed (CI) [View](https://github.com/{REPO}/actions/runs/99)"]

        after = store.get_message_mapping(REPO, 7)
        assert after.thread_id == str(thread.id)
        assert after.last_updated > opened_at
        assert len(channel.messages) == 1

    @pytest.mark.asyncio
    async def test_ci_replay_after_store_loss(self, ctx, channel, client, store, tmp_path, mocker):
        await handle_pull_request(ctx, _pr_payload())
        store.update_reviewer_status(REPO, 7, "reviewed", 2)
        await handle_workflow_run(ctx, _ci_payload())
        message = channel.messages[0]
        thread = message.thread
        snapshot = store.get_pr_snapshot(REPO, 7)

        # A fresh runner: nothing survives locally.
        fresh = SQLiteStateStore(REPO, base_dir=tmp_path / "fresh")
        fresh_ctx = HandlerContext(
            client=client,
            store=fresh,
            channels=ctx.channels,
            config=ctx.config,
            github_token="ghs_test",
            repo=REPO,
        )
        mocker.patch("relay_core.handlers.pr.fetch_pr_snapshot", return_value=snapshot)
        mocker.patch("relay_core.handlers.ci.check_for_reviews", return_value=ReviewCheck())

        await handle_workflow_run(fresh_ctx, _ci_payload())

        channel.mock.history.assert_called()
        mapping = fresh.get_message_mapping(REPO, 7)
        assert mapping.message_id == str(message.id)
        assert mapping.thread_id == str(thread.id)

        status = fresh.get_status(REPO, 7)
        assert status.ci_status == "success"
        # Learned only from the message footer.
        assert status.reviewer_status == "reviewed"
        assert status.reviewer_comments == 2

        assert message.edit.await_count == 2
        assert decode(message.embeds[0].footer.text) == PrFooter(
            number=7,
            ci_status="success",
            reviewer_status="reviewed",
            agent_review_status="pending",
            reviewer_comments=2,
        )
        assert len(thread.sent) == 2
        assert len(channel.messages) == 1
        fresh.close()

    @pytest.mark.asyncio
    async def test_ci_for_unknown_pr_posts_nothing(self, ctx, channel, store):
        await handle_workflow_run(ctx, _ci_payload())

        assert channel.messages == []
        assert store.get_message_mapping(REPO, 7) is None

    @pytest.mark.asyncio
    async def test_deleted_pr_message_is_reposted(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())
        old = channel.messages[0]
        channel.delete(old)

        await handle_pull_request(ctx, _pr_payload("edited"))

        assert len(channel.messages) == 2
        assert store.get_message_mapping(REPO, 7).message_id == str(channel.messages[1].id)

    @pytest.mark.asyncio
    async def test_edit_of_pr_opened_before_the_relay_posts_it(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload("ready_for_review"))

        assert len(channel.messages) == 1
        assert channel.messages[0].embeds[0].title == "🔀 PR #7: Fix auth bug"
        assert store.get_message_mapping(REPO, 7).message_id == str(channel.messages[0].id)
        assert store.get_status(REPO, 7) is None

    @pytest.mark.asyncio
    async def test_merge_replies_in_thread(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        merged = _pr_payload("closed")
        merged["pull_request"].update(
            state="closed", merged=True, merged_at="2024-05-02T09:00:00Z", merged_by={"login": "hubot"}
        )
        await handle_pull_request(ctx, merged)

        message = channel.messages[0]
        assert message.embeds[0].title.endswith("[MERGED]")
        assert message.thread.sent == ["🎉 Merged to main by @hubot!"]
        assert store.get_pr_snapshot(REPO, 7).state == "merged"
        assert store.recent_audit_log(REPO, entity_number=7)[0].event_type == "pr.closed"
