"""Discord embed and reply builders.

Two textual conventions here are load-bearing for state recovery and must
stay stable:

- PR and issue titles start with ``<emoji> PR #<n>:`` / ``<emoji> Issue #<n>:``
  and the embed URL points at the GitHub entity (see relay_core.lookup).
- PR and issue embeds carry an encoded status footer (see relay_core.footer).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import discord

from relay_core import footer

if TYPE_CHECKING:
    from relay_core.gh.ci import FailedStep
    from relay_store.base import StateStore
    from relay_store.models import IssueSnapshot, PrSnapshot

_MAX_TITLE = 256
_MAX_ISSUE_BODY = 200
_MAX_RELEASE_BODY = 500
_MAX_PUSH_COMMITS = 10
_MAX_FAILED_STEPS = 10


@dataclass
class CiStatus:
    status: str = "pending"  # pending | running | success | failure | cancelled
    workflow_name: str | None = None
    url: str | None = None


@dataclass
class ReviewStatus:
    reviewer: str = "pending"  # pending | reviewed
    reviewer_comments: int = 0
    agent_review: str = "pending"  # pending | approved | changes_requested | none


# ---------------------------------------------------------------------------
# PR
# ---------------------------------------------------------------------------


def build_pr_embed(pr: PrSnapshot, ci: CiStatus | None = None, reviews: ReviewStatus | None = None) -> discord.Embed:
    ci = ci or CiStatus()
    reviews = reviews or ReviewStatus()

    embed = discord.Embed(
        title=_truncate_title(f"{_pr_emoji(pr)} PR #{pr.number}: {pr.title}{_pr_state_label(pr)}"),
        url=pr.url,
        colour=_pr_colour(pr),
        timestamp=_parse_timestamp(pr.created_at),
    )
    embed.set_author(name=pr.author, icon_url=pr.author_avatar, url=pr.author_url)
    embed.add_field(name="Branch", value=f"`{pr.branch}` → `{pr.base_branch}`", inline=True)
    embed.add_field(
        name="Changes",
        value=f"{pr.changed_files} files (+{pr.additions}, -{pr.deletions})",
        inline=True,
    )

    if reviews.reviewer == "reviewed":
        reviewer_text = f"✅ Reviewed ({reviews.reviewer_comments} comments)"
    else:
        reviewer_text = "⏳ Pending"
    embed.add_field(
        name="📋 Reviews",
        value=f"• Copilot: {reviewer_text}\n• Agent Review: {_agent_review_text(reviews.agent_review)}",
        inline=False,
    )
    embed.add_field(name="🔄 CI", value=_ci_text(ci), inline=False)

    if pr.state == "merged" and pr.merged_at:
        merged = _parse_timestamp(pr.merged_at)
        when = discord.utils.format_dt(merged, "f") if merged else pr.merged_at
        by = f"by @{pr.merged_by} " if pr.merged_by else ""
        embed.add_field(name="Merged", value=f"{by}on {when}", inline=False)

    embed.set_footer(
        text=footer.encode(
            footer.PrFooter(
                number=pr.number,
                ci_status=ci.status,
                reviewer_status=reviews.reviewer,
                agent_review_status=reviews.agent_review,
                reviewer_comments=reviews.reviewer_comments,
            )
        )
    )
    return embed


def pr_view_from_store(store: StateStore, repo: str, number: int) -> tuple[PrSnapshot, CiStatus, ReviewStatus] | None:
    """Rebuild the embed inputs for a PR from its snapshot and derived status."""
    snapshot = store.get_pr_snapshot(repo, number)
    if snapshot is None:
        return None
    status = store.get_status(repo, number)
    if status is None:
        return snapshot, CiStatus(), ReviewStatus()
    ci = CiStatus(status=status.ci_status, workflow_name=status.ci_workflow_name, url=status.ci_url)
    reviews = ReviewStatus(
        reviewer=status.reviewer_status,
        reviewer_comments=status.reviewer_comments,
        agent_review=status.agent_review_status,
    )
    return snapshot, ci, reviews


def build_push_reply(commit_count: int, author: str, sha: str, compare_url: str | None = None) -> str:
    short = sha[:7]
    link = f"[{short}]({compare_url})" if compare_url else short
    plural = "commit" if commit_count == 1 else "commits"
    return f"📤 Push: {commit_count} {plural} by @{author} ({link})"


def build_ci_reply(ci: CiStatus, failed_steps: list[FailedStep] | None = None) -> str:
    lines = [f"🔄 CI: {_ci_text(ci)}"]
    if failed_steps:
        for step in failed_steps[:_MAX_FAILED_STEPS]:
            lines.append(f"• {step.job_name} → {step.step_name}")
        if len(failed_steps) > _MAX_FAILED_STEPS:
            lines.append(f"• …and {len(failed_steps) - _MAX_FAILED_STEPS} more")
    return "\n".join(lines)


def build_review_reply(kind: str, status: str, comments: int | None = None, url: str | None = None) -> str:
    """Reply for a reviewer (``kind="copilot"``) or agent-review (``kind="agent"``) result."""
    if kind == "copilot":
        comment_text = f" ({comments} comments)" if comments else ""
        return f"🤖 Copilot reviewed{comment_text}"
    emoji = "✅" if status == "approved" else "⚠️"
    link = f" [View]({url})" if url else ""
    return f"🔍 Agent review: {emoji} {status.replace('_', ' ').capitalize()}{link}"


def build_merged_reply(merged_by: str | None = None, base_branch: str = "main") -> str:
    by = f" by @{merged_by}" if merged_by else ""
    return f"🎉 Merged to {base_branch}{by}!"


def build_closed_reply(closed_by: str | None = None) -> str:
    by = f" by @{closed_by}" if closed_by else ""
    return f"🚫 Closed without merging{by}"


def build_reopened_reply(reopened_by: str | None = None) -> str:
    by = f" by @{reopened_by}" if reopened_by else ""
    return f"🔄 Reopened{by}"


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


def build_issue_embed(issue: IssueSnapshot) -> discord.Embed:
    is_open = issue.state == "open"
    label = ""
    if not is_open:
        label = " [NOT PLANNED]" if issue.state_reason == "not_planned" else " [CLOSED]"

    embed = discord.Embed(
        title=_truncate_title(f"{'🟢' if is_open else '🟣'} Issue #{issue.number}: {issue.title}{label}"),
        url=issue.url,
        colour=discord.Colour.green() if is_open else discord.Colour.purple(),
        timestamp=_parse_timestamp(issue.created_at),
    )
    embed.set_author(name=issue.author, icon_url=issue.author_avatar)
    if issue.labels:
        embed.add_field(name="Labels", value=" ".join(f"`{name}`" for name in issue.labels), inline=False)
    if issue.body:
        embed.description = _truncate(issue.body, _MAX_ISSUE_BODY)
    embed.set_footer(text=footer.encode(footer.IssueFooter(number=issue.number)))
    return embed


def build_issue_closed_reply(closed_by: str | None = None, state_reason: str | None = None) -> str:
    by = f" by @{closed_by}" if closed_by else ""
    if state_reason == "not_planned":
        return f"🟣 Closed as not planned{by}"
    return f"🟣 Closed{by}"


def build_issue_reopened_reply(reopened_by: str | None = None) -> str:
    by = f" by @{reopened_by}" if reopened_by else ""
    return f"🟢 Reopened{by}"


# ---------------------------------------------------------------------------
# Standalone notifications
# ---------------------------------------------------------------------------


def build_release_embed(
    name: str,
    tag_name: str,
    url: str,
    author: str,
    author_avatar: str | None = None,
    body: str | None = None,
    prerelease: bool = False,
) -> discord.Embed:
    emoji = "🧪" if prerelease else "🚀"
    label = " [PRE-RELEASE]" if prerelease else ""
    embed = discord.Embed(
        title=_truncate_title(f"{emoji} Release: {name}{label}"),
        url=url,
        colour=discord.Colour.yellow() if prerelease else discord.Colour.blue(),
    )
    embed.set_author(name=author, icon_url=author_avatar)
    embed.add_field(name="Tag", value=f"`{tag_name}`", inline=True)
    if body:
        embed.description = _truncate(body, _MAX_RELEASE_BODY)
    return embed


_DEPLOYMENT_STYLES = {
    "success": ("✅", "Succeeded", discord.Colour.green()),
    "failure": ("❌", "Failed", discord.Colour.red()),
    "error": ("⚠️", "Errored", discord.Colour.orange()),
}


def build_deployment_embed(
    state: str,
    environment: str,
    ref: str,
    sha: str,
    creator: str,
    creator_avatar: str | None = None,
    description: str | None = None,
    target_url: str | None = None,
) -> discord.Embed:
    emoji, label, colour = _DEPLOYMENT_STYLES.get(state, ("🚚", state.capitalize(), discord.Colour.light_grey()))
    embed = discord.Embed(
        title=_truncate_title(f"{emoji} Deployment to {environment}: {label}"),
        url=target_url,
        colour=colour,
    )
    embed.set_author(name=creator, icon_url=creator_avatar)
    embed.add_field(name="Ref", value=f"`{ref}`", inline=True)
    embed.add_field(name="Commit", value=f"`{sha[:7]}`", inline=True)
    if description:
        embed.description = description
    return embed


def build_push_embed(
    branch: str,
    commits: list[dict],
    pusher: str,
    compare_url: str | None = None,
    pusher_avatar: str | None = None,
) -> discord.Embed:
    count = len(commits)
    plural = "commit" if count == 1 else "commits"
    lines = []
    for commit in commits[:_MAX_PUSH_COMMITS]:
        sha = (commit.get("id") or "")[:7]
        message = (commit.get("message") or "").splitlines()[0] if commit.get("message") else ""
        author = (commit.get("author") or {}).get("username") or (commit.get("author") or {}).get("name") or ""
        link = f"[`{sha}`]({commit['url']})" if commit.get("url") else f"`{sha}`"
        lines.append(f"{link} {_truncate(message, 72)}" + (f" - {author}" if author else ""))
    if count > _MAX_PUSH_COMMITS:
        lines.append(f"…and {count - _MAX_PUSH_COMMITS} more")

    embed = discord.Embed(
        title=_truncate_title(f"📦 Push to {branch}: {count} {plural}"),
        url=compare_url,
        colour=discord.Colour.blurple(),
        description="\n".join(lines) or None,
    )
    embed.set_author(name=pusher, icon_url=pusher_avatar)
    return embed


def build_force_push_embed(
    branch: str,
    before: str,
    after: str,
    pusher: str,
    compare_url: str | None = None,
    pusher_avatar: str | None = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=_truncate_title(f"⚠️ Force push to {branch}"),
        url=compare_url,
        colour=discord.Colour.orange(),
        description="History was rewritten on the default branch.",
    )
    embed.set_author(name=pusher, icon_url=pusher_avatar)
    embed.add_field(name="Before", value=f"`{before[:7]}`", inline=True)
    embed.add_field(name="After", value=f"`{after[:7]}`", inline=True)
    return embed


_SEVERITY_COLOURS = {
    "critical": discord.Colour.dark_red(),
    "high": discord.Colour.red(),
    "error": discord.Colour.red(),
    "medium": discord.Colour.orange(),
    "warning": discord.Colour.orange(),
    "low": discord.Colour.yellow(),
    "note": discord.Colour.blue(),
}


def build_dependabot_alert_embed(payload: dict) -> discord.Embed:
    alert = payload["alert"]
    advisory = alert.get("security_advisory") or {}
    package = ((alert.get("dependency") or {}).get("package")) or {}
    severity = (advisory.get("severity") or "unknown").lower()
    patched = ((alert.get("security_vulnerability") or {}).get("first_patched_version") or {}).get("identifier")

    embed = discord.Embed(
        title=_truncate_title(f"🛡️ Dependabot alert #{alert['number']}: {package.get('name', 'unknown package')}"),
        url=alert.get("html_url"),
        colour=_SEVERITY_COLOURS.get(severity, discord.Colour.light_grey()),
        description=_truncate(advisory.get("summary") or "", _MAX_RELEASE_BODY) or None,
    )
    embed.add_field(name="Severity", value=severity.capitalize(), inline=True)
    embed.add_field(name="Ecosystem", value=package.get("ecosystem") or "unknown", inline=True)
    embed.add_field(name="Patched version", value=f"`{patched}`" if patched else "None available", inline=True)
    advisory_id = advisory.get("cve_id") or advisory.get("ghsa_id")
    if advisory_id:
        embed.add_field(name="Advisory", value=advisory_id, inline=True)
    return embed


def build_secret_scanning_alert_embed(payload: dict) -> discord.Embed:
    alert = payload["alert"]
    secret_type = alert.get("secret_type_display_name") or alert.get("secret_type") or "secret"
    embed = discord.Embed(
        title=_truncate_title(f"🔑 Secret scanning alert #{alert['number']}: {secret_type}"),
        url=alert.get("html_url"),
        colour=discord.Colour.dark_red(),
    )
    if alert.get("push_protection_bypassed"):
        embed.add_field(name="Push protection", value="⚠️ Bypassed", inline=True)
    return embed


def build_code_scanning_alert_embed(payload: dict) -> discord.Embed:
    alert = payload["alert"]
    rule = alert.get("rule") or {}
    severity = (rule.get("security_severity_level") or rule.get("severity") or "unknown").lower()
    location = ((alert.get("most_recent_instance") or {}).get("location")) or {}

    embed = discord.Embed(
        title=_truncate_title(f"🔍 Code scanning alert #{alert['number']}: {rule.get('name') or rule.get('id')}"),
        url=alert.get("html_url"),
        colour=_SEVERITY_COLOURS.get(severity, discord.Colour.light_grey()),
        description=_truncate(rule.get("description") or "", _MAX_RELEASE_BODY) or None,
    )
    embed.add_field(name="Severity", value=severity.capitalize(), inline=True)
    embed.add_field(name="Tool", value=(alert.get("tool") or {}).get("name") or "unknown", inline=True)
    if location.get("path"):
        embed.add_field(name="Location", value=f"`{location['path']}:{location.get('start_line', '?')}`", inline=False)
    return embed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pr_emoji(pr: PrSnapshot) -> str:
    if pr.draft:
        return "📝"
    return {"open": "🔀", "merged": "✅", "closed": "🚫"}.get(pr.state, "🔀")


def _pr_state_label(pr: PrSnapshot) -> str:
    if pr.draft:
        return " [DRAFT]"
    return {"merged": " [MERGED]", "closed": " [CLOSED]"}.get(pr.state, "")


def _pr_colour(pr: PrSnapshot) -> discord.Colour:
    if pr.draft:
        return discord.Colour.light_grey()
    if pr.state == "merged":
        return discord.Colour.purple()
    if pr.state == "closed":
        return discord.Colour.red()
    return discord.Colour.green()


def _agent_review_text(status: str) -> str:
    return {
        "approved": "✅ Approved",
        "changes_requested": "⚠️ Changes Requested",
        "none": "—",
    }.get(status, "⏳ Pending")


def _ci_text(ci: CiStatus) -> str:
    name = f" ({ci.workflow_name})" if ci.workflow_name else ""
    link = f" [View]({ci.url})" if ci.url else ""
    if ci.status == "running":
        return f"🔄 Running...{name}{link}"
    if ci.status == "success":
        return f"✅ Passed{name}{link}"
    if ci.status == "failure":
        return f"❌ Failed{name}{link}"
    if ci.status == "cancelled":
        return f"⚪ Cancelled{name}"
    return f"⏳ Pending{name}"


def _truncate_title(title: str) -> str:
    return title if len(title) <= _MAX_TITLE else title[: _MAX_TITLE - 1] + "…"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
