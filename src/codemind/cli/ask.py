"""codemind ask: answer a question about an indexed project.

Retrieves the most similar passages, loads the session's conversation memory,
asks the generation model and stores the turn. Pass --session to continue a
conversation; without it a new session is started and its id printed. With
--stream the answer is printed as the model generates it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from codemind.cli.errors import (
    err_dimension_mismatch,
    err_empty_project,
    err_no_api_key,
    err_no_db,
)
from codemind.cli.runtime import DEFAULT_DB, load_cli_config, make_answerer, open_db
from codemind.db.repository import Repository
from codemind.db.vectors import DimensionMismatchError
from codemind.rag.llm_client import provider_of, validate_api_key
from codemind.rag.pipeline import Answer, QueryOptions, SourceRef, StreamingAnswer

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about the codebase.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project id used at index time."),
    ],
    session: Annotated[
        str | None,
        typer.Option("--session", "-s", help="Continue an existing conversation."),
    ] = None,
    language: Annotated[
        list[str] | None,
        typer.Option("--language", "-l", help="Only search passages in this language (repeatable)."),
    ] = None,
    path: Annotated[
        list[str] | None,
        typer.Option("--path", help="Only search files under this path prefix (repeatable)."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of passages to retrieve."),
    ] = None,
    stream: Annotated[
        bool,
        typer.Option("--stream", help="Print the answer as it is generated."),
    ] = False,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .codemind.db."),
    ] = DEFAULT_DB,
) -> None:
    """Ask a question about an indexed codebase."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    for model in (cfg.embedding.model, cfg.generation.model):
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model)))
            raise typer.Exit(1)

    options = QueryOptions(
        top_k=top_k or cfg.retrieval.top_k,
        min_similarity=cfg.retrieval.min_similarity,
        languages=language or None,
        paths=path or None,
    )

    database = open_db(db)
    try:
        repo = Repository(database.open())
        if repo.count_passages(project) == 0:
            console.print(err_empty_project(project))
            raise typer.Exit(1)
        answerer = make_answerer(repo, cfg, project)
        try:
            if stream:
                streaming = answerer.ask_stream(question, project, session, options)
            else:
                answer = answerer.ask(question, project, session, options)
        except DimensionMismatchError as exc:
            console.print(err_dimension_mismatch(str(exc)))
            raise typer.Exit(1)
        if stream:
            # The turn is saved once the stream is exhausted.
            _show_stream(streaming)
            return
    finally:
        database.close()

    _show_answer(answer)


def _show_answer(answer: Answer) -> None:
    console.print(Markdown(answer.content))
    _show_sources(answer.sources)
    console.print(
        f"[dim]Session:[/] {answer.session_id}  "
        f"[dim]({answer.total_tokens:,} tokens, continue with --session {answer.session_id})[/]"
    )


def _show_stream(answer: StreamingAnswer) -> None:
    for delta in answer:
        console.print(delta, end="", markup=False, highlight=False)
    console.print()
    _show_sources(answer.sources)
    console.print(
        f"[dim]Session:[/] {answer.session_id}  "
        f"[dim](continue with --session {answer.session_id})[/]"
    )


def _show_sources(sources: list[SourceRef]) -> None:
    if not sources:
        console.print("[dim]No matching code passages.[/]")
        return

    table = Table(title="Sources", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("File")
    table.add_column("Lines")
    table.add_column("Language")
    table.add_column("Similarity", justify="right")
    for i, src in enumerate(sources, start=1):
        table.add_row(
            str(i),
            src.path,
            f"{src.start_line}-{src.end_line}",
            src.language,
            f"{src.similarity:.3f}",
        )
    console.print(table)
