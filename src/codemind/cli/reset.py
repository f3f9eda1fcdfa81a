"""codemind reset: delete every indexed passage of a project.

Conversation sessions are not touched; use ``codemind memory clear`` for
those.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from codemind.cli.errors import err_no_db
from codemind.cli.runtime import DEFAULT_DB, load_cli_config, make_retriever, open_db
from codemind.db.repository import Repository

console = Console()


def reset_cmd(
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id to clear."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .codemind.db."),
    ] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove all indexed passages of a project."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    database = open_db(db)
    try:
        repo = Repository(database.open())
        count = repo.count_passages(project)
        if count == 0:
            console.print(f"[dim]Project '{project}' has no indexed passages.[/]")
            raise typer.Exit(0)

        console.print(f"\nReset project: [bold]{project}[/]  ({count:,} passages)")
        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        deleted = make_retriever(repo, cfg).delete_all_passages(project)
    finally:
        database.close()

    console.print(f"[green]✓[/] Removed {deleted:,} passages from '{project}'.")
