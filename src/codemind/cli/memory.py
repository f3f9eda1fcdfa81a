"""codemind memory: inspect or reset a conversation session.

Subcommands:
  stats  Show message counts, token total and summary state
  clear  Evict every message and drop the summary (history is kept on disk)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from codemind.cli.errors import err_no_db, err_session_not_found
from codemind.cli.runtime import DEFAULT_DB, load_cli_config, make_memory, open_db
from codemind.db.repository import Repository
from codemind.rag.memory import SessionNotFoundError

console = Console()

memory_app = typer.Typer(help="Inspect or reset conversation memory.", add_completion=False)


@memory_app.command("stats")
def stats_cmd(
    session: Annotated[str, typer.Option("--session", "-s", help="Session id.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .codemind.db.")] = DEFAULT_DB,
) -> None:
    """Show memory statistics for a session."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    database = open_db(db)
    try:
        stats = make_memory(Repository(database.open()), cfg).get_stats(session)
    except SessionNotFoundError:
        console.print(err_session_not_found(session))
        raise typer.Exit(1)
    finally:
        database.close()

    table = Table(title=f"Session [bold]{session}[/]", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Messages", f"{stats.total_messages:,}")
    table.add_row("In memory", f"{stats.active_messages:,}")
    table.add_row("Tokens", f"{stats.total_tokens:,}")
    table.add_row("Summary", "yes" if stats.has_summary else "no")
    table.add_row("Last active", stats.last_active_at or "-")
    console.print(table)


@memory_app.command("clear")
def clear_cmd(
    session: Annotated[str, typer.Option("--session", "-s", help="Session id.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .codemind.db.")] = DEFAULT_DB,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Clear a session's memory."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    if not yes and not typer.confirm(f"Clear memory of session '{session}'?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    database = open_db(db)
    try:
        make_memory(Repository(database.open()), cfg).clear(session)
    except SessionNotFoundError:
        console.print(err_session_not_found(session))
        raise typer.Exit(1)
    finally:
        database.close()

    console.print(f"[green]✓[/] Memory cleared for session '{session}'.")
