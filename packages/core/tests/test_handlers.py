"""Tests for the per-event handlers other than the PR/CI lifecycle."""

import pytest

from relay_core.errors import RelayError
from relay_core.gh.ci import FailedStep
from relay_core.handlers.ci import handle_workflow_run, map_ci_status
from relay_core.handlers.comment import handle_issue_comment
from relay_core.handlers.deployment import handle_deployment_status
from relay_core.handlers.issue import handle_issues
from relay_core.handlers.pr import handle_pull_request
from relay_core.handlers.push import handle_push
from relay_core.handlers.release import handle_release
from relay_core.handlers.review import handle_pull_request_review
from relay_core.handlers.security import handle_code_scanning_alert, handle_dependabot_alert

REPO = "owner/repo"
REPOSITORY = {"full_name": REPO, "default_branch": "main"}


def _pr_payload(number=7, action="opened"):
    return {
        "action": action,
        "repository": REPOSITORY,
        "sender": {"login": "octocat"},
        "pull_request": {
            "number": number,
            "title": "Fix auth bug",
            "html_url": f"https://github.com/{REPO}/pull/{number}",
            "state": "open",
            "user": {"login": "octocat", "html_url": "https://github.com/octocat"},
            "head": {"ref": "fix-auth", "sha": "abc1234def"},
            "base": {"ref": "main"},
            "created_at": "2024-05-01T12:00:00Z",
        },
    }


def _issue_payload(action="opened", state="open", state_reason=None):
    return {
        "action": action,
        "repository": REPOSITORY,
        "sender": {"login": "octocat"},
        "issue": {
            "number": 12,
            "title": "Crash on start",
            "html_url": f"https://github.com/{REPO}/issues/12",
            "state": state,
            "state_reason": state_reason,
            "user": {"login": "octocat"},
            "labels": [{"name": "bug"}],
            "body": "It crashes.",
            "created_at": "2024-05-01T12:00:00Z",
        },
    }


# ---------------------------------------------------------------------------
# CI
# ---------------------------------------------------------------------------


class TestMapCiStatus:
    @pytest.mark.parametrize(
        "status, conclusion, expected",
        [
            ("queued", None, "pending"),
            ("in_progress", None, "running"),
            ("completed", "success", "success"),
            ("completed", "skipped", "success"),
            ("completed", "failure", "failure"),
            ("completed", "cancelled", "cancelled"),
        ],
    )
    def test_mapping(self, status, conclusion, expected):
        assert map_ci_status(status, conclusion) == expected


class TestWorkflowRun:
    @pytest.mark.asyncio
    async def test_failure_lists_failed_steps(self, ctx, channel, store, mocker):
        ctx.github_token = "ghs_test"
        mocker.patch("relay_core.handlers.ci.check_for_reviews")
        fetch = mocker.patch(
            "relay_core.handlers.ci.fetch_failed_steps",
            return_value=[FailedStep("test", "Run pytest")],
        )
        await handle_pull_request(ctx, _pr_payload())

        await handle_workflow_run(
            ctx,
            {
                "action": "completed",
                "repository": REPOSITORY,
                "workflow_run": {
                    "id": 5,
                    "name": "CI",
                    "status": "completed",
                    "conclusion": "failure",
                    "html_url": "https://ci/5",
                    "pull_requests": [{"number": 7}],
                },
            },
        )

        fetch.assert_called_once_with(REPO, 5, "ghs_test")
        sent = channel.messages[0].thread.sent
        assert sent == ["🔄 CI: ❌ Failed (CI) [View](https://ci/5)\n• test → Run pytest"]

    @pytest.mark.asyncio
    async def test_in_progress_updates_without_reply(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        await handle_workflow_run(
            ctx,
            {
                "action": "in_progress",
                "repository": REPOSITORY,
                "workflow_run": {"id": 5, "name": "CI", "status": "in_progress", "pull_requests": [{"number": 7}]},
            },
        )

        assert store.get_status(REPO, 7).ci_status == "running"
        assert channel.messages[0].thread is None

    @pytest.mark.asyncio
    async def test_one_pr_failing_does_not_stop_the_others(self, ctx, channel, store, mocker):
        await handle_pull_request(ctx, _pr_payload(number=7))
        await handle_pull_request(ctx, _pr_payload(number=8))
        original = store.update_ci_status

        def flaky(repo, number, *args):
            if number == 7:
                raise RuntimeError("disk full")
            return original(repo, number, *args)

        mocker.patch.object(store, "update_ci_status", side_effect=flaky)

        with pytest.raises(RelayError, match="#7"):
            await handle_workflow_run(
                ctx,
                {
                    "action": "completed",
                    "repository": REPOSITORY,
                    "workflow_run": {
                        "id": 5,
                        "name": "CI",
                        "status": "completed",
                        "conclusion": "success",
                        "pull_requests": [{"number": 7}, {"number": 8}],
                    },
                },
            )
        assert store.get_status(REPO, 8).ci_status == "success"


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class TestReviewSignals:
    @pytest.mark.asyncio
    async def test_copilot_review_recorded(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        await handle_pull_request_review(
            ctx,
            {
                "action": "submitted",
                "repository": REPOSITORY,
                "pull_request": {"number": 7},
                "review": {"id": 1, "user": {"login": "copilot-pull-request-reviewer[bot]"}},
            },
        )

        status = store.get_status(REPO, 7)
        assert status.reviewer_status == "reviewed"
        assert "Copilot: ✅ Reviewed" in channel.messages[0].embeds[0].fields[2].value
        assert channel.messages[0].thread.sent == ["🤖 Copilot reviewed"]

    @pytest.mark.asyncio
    async def test_human_review_ignored(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        await handle_pull_request_review(
            ctx,
            {
                "action": "submitted",
                "repository": REPOSITORY,
                "pull_request": {"number": 7},
                "review": {"id": 1, "user": {"login": "octocat"}},
            },
        )

        assert store.get_status(REPO, 7) is None

    @pytest.mark.asyncio
    async def test_agent_review_comment(self, ctx, channel, store):
        await handle_pull_request(ctx, _pr_payload())

        await handle_issue_comment(
            ctx,
            {
                "action": "created",
                "repository": REPOSITORY,
                "issue": {"number": 7, "pull_request": {"url": "https://api.github.com/repos/owner/repo/pulls/7"}},
                "comment": {
                    "body": "## Code Review Summary\n\n**Verdict:** ✅ Approved",
                    "html_url": "https://github.com/owner/repo/pull/7#c1",
                },
            },
        )

        assert store.get_status(REPO, 7).agent_review_status == "approved"
        assert channel.messages[0].thread.sent == [
            "🔍 Agent review: ✅ Approved [View](https://github.com/owner/repo/pull/7#c1)"
        ]

    @pytest.mark.asyncio
    async def test_plain_comment_ignored(self, ctx, channel, store):
        await handle_issue_comment(
            ctx,
            {
                "action": "created",
                "repository": REPOSITORY,
                "issue": {"number": 7, "pull_request": {"url": "https://api.github.com/repos/owner/repo/pulls/7"}},
                "comment": {"body": "thanks!"},
            },
        )
        assert store.recent_audit_log(REPO) == []
        assert channel.messages == []

    @pytest.mark.asyncio
    async def test_signal_without_message_is_recorded_only(self, ctx, channel, store):
        await handle_issue_comment(
            ctx,
            {
                "action": "created",
                "repository": REPOSITORY,
                "issue": {"number": 9, "pull_request": {"url": "https://api.github.com/repos/owner/repo/pulls/7"}},
                "comment": {"body": "### Agent Review\nChanges requested"},
            },
        )
        assert store.get_status(REPO, 9).agent_review_status == "changes_requested"
        assert channel.messages == []


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class TestIssues:
    @pytest.mark.asyncio
    async def test_open_then_close_as_not_planned(self, ctx, channel, store):
        await handle_issues(ctx, _issue_payload())

        assert store.get_message_mapping(REPO, 12, kind="issue").message_id == str(channel.messages[0].id)
        assert store.get_message_mapping(REPO, 12) is None

        await handle_issues(ctx, _issue_payload("closed", state="closed", state_reason="not_planned"))

        message = channel.messages[0]
        assert message.embeds[0].title == "🟣 Issue #12: Crash on start [NOT PLANNED]"
        assert message.thread.sent == ["🟣 Closed as not planned by @octocat"]
        assert store.get_issue_snapshot(REPO, 12).state_reason == "not_planned"

    @pytest.mark.asyncio
    async def test_unhandled_action_only_audited(self, ctx, channel, store):
        await handle_issues(ctx, _issue_payload("labeled"))
        assert channel.messages == []
        assert store.recent_audit_log(REPO)[0].event_type == "issue.labeled"


# ---------------------------------------------------------------------------
# Standalone notifications
# ---------------------------------------------------------------------------


class TestNotifications:
    @pytest.mark.asyncio
    async def test_release_published(self, ctx, channel):
        await handle_release(
            ctx,
            {
                "action": "published",
                "repository": REPOSITORY,
                "release": {
                    "tag_name": "v1.2.0",
                    "name": "1.2.0",
                    "html_url": "https://github.com/owner/repo/releases/v1.2.0",
                    "author": {"login": "octocat"},
                    "body": "Notes",
                    "prerelease": True,
                },
            },
        )
        assert channel.messages[0].embeds[0].title == "🧪 Release: 1.2.0 [PRE-RELEASE]"

    @pytest.mark.asyncio
    async def test_draft_release_ignored(self, ctx, channel):
        await handle_release(
            ctx,
            {"action": "published", "repository": REPOSITORY, "release": {"tag_name": "v1", "draft": True}},
        )
        assert channel.messages == []

    @pytest.mark.asyncio
    async def test_deployment_terminal_state(self, ctx, channel):
        await handle_deployment_status(
            ctx,
            {
                "repository": REPOSITORY,
                "deployment_status": {"state": "failure", "environment": "production"},
                "deployment": {"ref": "main", "sha": "abcdef1234", "creator": {"login": "octocat"}},
            },
        )
        embed = channel.messages[0].embeds[0]
        assert embed.title == "❌ Deployment to production: Failed"
        assert embed.fields[1].value == "`abcdef1`"

    @pytest.mark.asyncio
    async def test_deployment_in_progress_ignored(self, ctx, channel):
        await handle_deployment_status(
            ctx,
            {"repository": REPOSITORY, "deployment_status": {"state": "in_progress"}, "deployment": {}},
        )
        assert channel.messages == []

    @pytest.mark.asyncio
    async def test_push_to_default_branch(self, ctx, channel):
        await handle_push(
            ctx,
            {
                "ref": "refs/heads/main",
                "repository": REPOSITORY,
                "sender": {"login": "octocat"},
                "compare": "https://github.com/owner/repo/compare/a...b",
                "commits": [
                    {"id": "1111111aaaa", "message": "Fix typo\n\nlong body", "author": {"username": "octocat"}},
                    {"id": "2222222bbbb", "message": "Bump version"},
                ],
            },
        )
        embed = channel.messages[0].embeds[0]
        assert embed.title == "📦 Push to main: 2 commits"
        assert "`1111111` Fix typo - octocat" in embed.description

    @pytest.mark.asyncio
    async def test_force_push(self, ctx, channel):
        await handle_push(
            ctx,
            {
                "ref": "refs/heads/main",
                "repository": REPOSITORY,
                "forced": True,
                "before": "aaaaaaa111",
                "after": "bbbbbbb222",
                "sender": {"login": "octocat"},
                "commits": [],
            },
        )
        assert channel.messages[0].embeds[0].title == "⚠️ Force push to main"

    @pytest.mark.asyncio
    async def test_push_to_feature_branch_ignored(self, ctx, channel):
        await handle_push(ctx, {"ref": "refs/heads/feature", "repository": REPOSITORY, "commits": [{"message": "x"}]})
        assert channel.messages == []

    @pytest.mark.asyncio
    async def test_dependabot_alert(self, ctx, channel, store):
        await handle_dependabot_alert(
            ctx,
            {
                "action": "created",
                "repository": REPOSITORY,
                "alert": {
                    "number": 3,
                    "html_url": "https://github.com/owner/repo/security/dependabot/3",
                    "dependency": {"package": {"name": "requests", "ecosystem": "pip"}},
                    "security_advisory": {"severity": "high", "summary": "Leak", "ghsa_id": "GHSA-xxxx"},
                    "security_vulnerability": {"first_patched_version": {"identifier": "2.32.0"}},
                },
            },
        )
        embed = channel.messages[0].embeds[0]
        assert embed.title == "🛡️ Dependabot alert #3: requests"
        assert store.recent_audit_log(REPO)[0].event_type == "dependabot_alert.created"

    @pytest.mark.asyncio
    async def test_code_scanning_alert_fixed_ignored(self, ctx, channel):
        await handle_code_scanning_alert(ctx, {"action": "fixed", "repository": REPOSITORY, "alert": {"number": 1}})
        assert channel.messages == []
