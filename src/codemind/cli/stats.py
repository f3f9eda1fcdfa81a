"""codemind stats: passage counts, token totals and language breakdown for a project."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codemind.cli.errors import err_no_db
from codemind.cli.runtime import DEFAULT_DB, load_cli_config, make_retriever, open_db
from codemind.db.models import ProjectStats
from codemind.db.repository import Repository

console = Console()


def stats_cmd(
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id used at index time."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .codemind.db."),
    ] = DEFAULT_DB,
) -> None:
    """Show what is indexed for a project."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    database = open_db(db)
    try:
        stats = make_retriever(Repository(database.open()), cfg).get_project_stats(project)
    finally:
        database.close()

    _show_stats(project, db, stats)


def _show_stats(project: str, db: Path, stats: ProjectStats) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    console.print(
        Panel(
            f"Project:   [bold]{project}[/]\n"
            f"Database:  {db} ({size_mb:.1f} MB)\n"
            f"Passages:  [bold]{stats.total_chunks:,}[/]  |  "
            f"Tokens: [bold]{stats.total_tokens:,}[/]",
            title="[bold]Index[/]",
            expand=False,
        )
    )

    if not stats.language_breakdown:
        console.print("[dim]Nothing indexed yet.[/]  Run:  codemind index <path> --project " + project)
        return

    table = Table(title="Languages", title_justify="left")
    table.add_column("Language")
    table.add_column("Passages", justify="right")
    for language, count in sorted(
        stats.language_breakdown.items(), key=lambda kv: (-kv[1], kv[0])
    ):
        table.add_row(language, f"{count:,}")
    console.print(table)
