"""codemind search: list the passages most similar to a query, page by page."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from codemind.cli.errors import (
    err_dimension_mismatch,
    err_invalid_cursor,
    err_no_api_key,
    err_no_db,
)
from codemind.cli.runtime import DEFAULT_DB, load_cli_config, make_retriever, make_writer, open_db
from codemind.db.repository import Repository
from codemind.db.vectors import DimensionMismatchError
from codemind.rag.llm_client import provider_of, validate_api_key
from codemind.rag.retriever import InvalidCursorError

console = Console()


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language or code query.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id used at index time."),
    ],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Passages per page."),
    ] = 10,
    cursor: Annotated[
        str | None,
        typer.Option("--cursor", help="Cursor printed by the previous page."),
    ] = None,
    language: Annotated[
        list[str] | None,
        typer.Option("--language", "-l", help="Only passages in this language (repeatable)."),
    ] = None,
    path: Annotated[
        list[str] | None,
        typer.Option("--path", help="Only files under this path prefix (repeatable)."),
    ] = None,
    min_similarity: Annotated[
        float | None,
        typer.Option("--min-similarity", help="Similarity floor (default from config)."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .codemind.db."),
    ] = DEFAULT_DB,
) -> None:
    """Show passages ranked by similarity to QUERY."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.embedding.model)))
        raise typer.Exit(1)

    database = open_db(db)
    try:
        repo = Repository(database.open())
        retriever = make_retriever(repo, cfg)
        writer = make_writer(retriever, cfg)
        try:
            page = retriever.query_top_k_paginated(
                project,
                writer.embed_query(query),
                limit=limit,
                cursor=cursor,
                min_similarity=(
                    cfg.retrieval.min_similarity if min_similarity is None else min_similarity
                ),
                languages=language or None,
                paths=path or None,
            )
        except InvalidCursorError:
            console.print(err_invalid_cursor(cursor or ""))
            raise typer.Exit(1)
        except DimensionMismatchError as exc:
            console.print(err_dimension_mismatch(str(exc)))
            raise typer.Exit(1)
    finally:
        database.close()

    if not page.passages:
        console.print("[yellow]No matching passages.[/]")
        return

    table = Table(title=f"Results for [bold]{query}[/]", title_justify="left")
    table.add_column("Similarity", justify="right")
    table.add_column("File")
    table.add_column("Lines")
    table.add_column("Language")
    for rp in page.passages:
        p = rp.passage
        table.add_row(f"{rp.similarity:.3f}", p.path, f"{p.start_line}-{p.end_line}", p.language)
    console.print(table)

    if page.has_more:
        console.print(f"[dim]More results:[/] --cursor {page.next_cursor}")
