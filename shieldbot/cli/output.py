"""
shieldbot CLI - Rich Output

Renders shieldbot state for the terminal. Status lines go through ``done``,
``warn`` and ``fail``; the ``render_*`` functions draw one view each.

Functions:
    done            - Report a completed action
    warn            - Report a condition that needs attention
    fail            - Report an error on stderr
    render_json     - Dump a mapping as JSON (machine-readable output)
    render_fields   - Aligned "name: value" block
    render_plugins  - Loaded handlers plus the files that were skipped
    render_ledger   - First-contact ledger entries
    format_epoch_ms - Format an epoch-milliseconds timestamp
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.table import Table

from shieldbot.plugins import PluginHandle
from shieldbot.storage import ContactLedgerEntry

console = Console()
err_console = Console(stderr=True)


def done(message: str, hint: Optional[str] = None) -> None:
    console.print(f"[bold green]Done:[/bold green] {escape(message)}")
    if hint:
        console.print(f"  [dim]{escape(hint)}[/dim]")


def warn(message: str, reason: Optional[str] = None) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}")
    if reason:
        console.print(f"  [dim]{escape(reason)}[/dim]")


def fail(message: str, hint: Optional[str] = None) -> None:
    """Print an error to stderr, with an optional next step."""
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    if hint:
        err_console.print(f"[yellow]Try:[/yellow] {escape(hint)}")


def render_json(data: Mapping[str, Any]) -> None:
    # soft_wrap: piped output must stay valid JSON.
    console.print(JSON(json.dumps(data, indent=2, default=str)), soft_wrap=True)


def render_fields(title: str, fields: Iterable[tuple[str, Any]]) -> None:
    fields = list(fields)
    console.print(f"[bold]{escape(title)}[/bold]")
    width = max((len(name) for name, _ in fields), default=0)
    for name, value in fields:
        console.print(f"  [cyan]{name.ljust(width)}[/cyan]  {escape(str(value))}")


def render_plugins(
    directory: Path,
    handles: Mapping[str, PluginHandle],
    skipped: Mapping[str, str],
) -> None:
    """Table of loaded handlers, followed by one line per skipped file."""
    if handles:
        table = Table(title=f"Plugins ({directory})")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Handler")
        table.add_column("Filters")
        for name, handle in handles.items():
            handler = handle.handler
            table.add_row(
                name,
                type(handler).__name__,
                "yes" if hasattr(handler, "matches") else "no",
            )
        console.print(table)

    for name, reason in skipped.items():
        warn(f"Skipped {name}", reason)


def render_ledger(path: Path, entries: list[ContactLedgerEntry]) -> None:
    if not entries:
        console.print(f"[dim]Ledger {escape(str(path))} is empty[/dim]")
        return

    table = Table(title=f"First contacts ({len(entries)})")
    table.add_column("Conversation", style="cyan", no_wrap=True)
    table.add_column("First seen", no_wrap=True)
    for entry in entries:
        table.add_row(entry.remote_id, format_epoch_ms(entry.first_seen_at))
    console.print(table)


def format_epoch_ms(value: int) -> str:
    """Format epoch milliseconds as a UTC timestamp."""
    dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")
