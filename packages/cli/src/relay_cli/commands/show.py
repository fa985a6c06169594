"""show command: inspect the stored state for one PR or issue."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_CI_STYLE = {
    "success": "green",
    "failure": "red",
    "running": "cyan",
    "cancelled": "dim",
}


def open_existing_store(ctx, repo: str):
    """Open the repository's state database without creating one."""
    from relay_store.sqlite import SQLiteStateStore, state_db_path

    base_dir = ctx.obj["config"].get("state_dir")
    try:
        path = state_db_path(repo, base_dir)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--repo")
    if not path.exists():
        console.print(f"[yellow]No state database for {repo} at {path}.[/yellow]")
        return None

    store = SQLiteStateStore(repo, base_dir=base_dir)
    ctx.call_on_close(store.close)
    return store


@click.command("show")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number.")
@click.option("--issue", "issue_number", type=int, default=None, help="Issue number.")
@click.pass_context
def show_cmd(ctx, repo: str, pr_number: int | None, issue_number: int | None):
    """Show the Discord mapping, cached snapshot and derived status for one entity."""
    if (pr_number is None) == (issue_number is None):
        raise click.UsageError("Pass exactly one of --pr or --issue.")

    store = open_existing_store(ctx, repo)
    if store is None:
        return

    kind = "pr" if pr_number is not None else "issue"
    number = pr_number if pr_number is not None else issue_number
    label = "PR" if kind == "pr" else "Issue"

    mapping = store.get_message_mapping(repo, number, kind=kind)
    snapshot = store.get_pr_snapshot(repo, number) if kind == "pr" else store.get_issue_snapshot(repo, number)
    if mapping is None and snapshot is None:
        console.print(f"[yellow]Nothing stored for {label} #{number}.[/yellow]")
        return

    table = Table(title=f"{label} #{number} ({repo})", show_header=False)
    table.add_column("Field", style="bold", width=18)
    table.add_column("Value")

    if snapshot is not None:
        table.add_row("Title", snapshot.title)
        table.add_row("State", snapshot.state)
        table.add_row("URL", snapshot.url)
    if mapping is not None:
        table.add_row("Channel", mapping.channel_id)
        table.add_row("Message", mapping.message_id)
        table.add_row("Thread", mapping.thread_id or "—")
        table.add_row("Last updated", mapping.last_updated[:19].replace("T", " "))
    else:
        table.add_row("Message", "[yellow]not mapped[/yellow]")

    if kind == "pr":
        status = store.get_status(repo, number)
        if status is not None:
            style = _CI_STYLE.get(status.ci_status, "yellow")
            ci = f"[{style}]{status.ci_status}[/{style}]"
            if status.ci_workflow_name:
                ci += f" ({status.ci_workflow_name})"
            table.add_row("CI", ci)
            table.add_row("Copilot", f"{status.reviewer_status} ({status.reviewer_comments} comments)")
            table.add_row("Agent review", status.agent_review_status)

    console.print(table)
