"""events command: display the audit log for a repository."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("events")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--number", type=int, default=None, help="Filter by PR or issue number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of entries to show.")
@click.pass_context
def events_cmd(ctx, repo: str, number: int | None, limit: int):
    """Show recently recorded events for a repository, newest first."""
    from relay_cli.commands.show import open_existing_store

    store = open_existing_store(ctx, repo)
    if store is None:
        return

    entries = store.recent_audit_log(repo, entity_number=number, limit=limit)
    if not entries:
        console.print("[yellow]No events recorded.[/yellow]")
        return

    table = Table(title=f"Event Log: {repo}", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=6)
    table.add_column("Entity", width=8)
    table.add_column("Event", width=28)
    table.add_column("Action", width=16)
    table.add_column("Recorded At", width=20)

    for entry in entries:
        try:
            action = json.loads(entry.payload).get("action") or ""
        except (ValueError, AttributeError):
            action = ""
        table.add_row(
            str(entry.id),
            f"#{entry.entity_number}" if entry.entity_number is not None else "—",
            entry.event_type,
            str(action),
            entry.created_at[:19].replace("T", " "),
        )

    console.print(table)
