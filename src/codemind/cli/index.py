"""codemind index: chunk, embed and store a local repository.

Walks the checkout, chunks every source file on code boundaries, embeds the
passages through LiteLLM and writes them to the project's passage store.
By default the project's existing passages are replaced.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from codemind.cli.errors import err_dimension_mismatch, err_no_api_key, err_not_a_directory
from codemind.cli.runtime import (
    DEFAULT_DB,
    load_cli_config,
    make_policy,
    make_retriever,
    make_writer,
    open_db,
)
from codemind.db.repository import Repository
from codemind.db.vectors import DimensionMismatchError
from codemind.ingest.indexer import IndexingStats, RepositoryIndexer
from codemind.rag.llm_client import provider_of, validate_api_key

console = Console()


def index_cmd(
    path: Annotated[
        Path,
        typer.Argument(help="Root of the local repository checkout."),
    ],
    project: Annotated[
        str | None,
        typer.Option("--project", "-p", help="Project id (default: directory name)."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .codemind.db (created if missing)."),
    ] = DEFAULT_DB,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
    no_reindex: Annotated[
        bool,
        typer.Option("--no-reindex", help="Keep existing passages instead of replacing them."),
    ] = False,
) -> None:
    """Index a local repository into the CodeMind passage store."""
    if not path.is_dir():
        console.print(err_not_a_directory(str(path)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    project_id = project or path.resolve().name

    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.embedding.model)))
        raise typer.Exit(1)

    database = open_db(db)
    try:
        repo = Repository(database.open())
        retriever = make_retriever(repo, cfg)
        indexer = RepositoryIndexer(make_writer(retriever, cfg), retriever, make_policy(cfg))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Indexing {path} as '{project_id}'…", total=None)
            try:
                stats = indexer.index(
                    project_id, path, reindex=not no_reindex, exclude=exclude or []
                )
            except DimensionMismatchError as exc:
                console.print(err_dimension_mismatch(str(exc)))
                raise typer.Exit(1)
    finally:
        database.close()

    _show_summary(project_id, stats)


def _show_summary(project_id: str, stats: IndexingStats) -> None:
    table = Table(title=f"Indexed [bold]{project_id}[/]", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Files seen", f"{stats.files_seen:,}")
    table.add_row("Files indexed", f"{stats.files_indexed:,}")
    table.add_row("Files skipped", f"{stats.files_skipped:,}")
    table.add_row("Passages", f"{stats.passages:,}")
    console.print(table)

    for rel, message in stats.errors:
        console.print(f"  [yellow]✗[/] {rel}: {message}")
    if stats.files_indexed == 0:
        console.print("[yellow]No source files were indexed.[/]")
