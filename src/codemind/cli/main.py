"""CodeMind CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from codemind.cli.ask import ask_cmd
from codemind.cli.index import index_cmd
from codemind.cli.memory import memory_app
from codemind.cli.reset import reset_cmd
from codemind.cli.search import search_cmd
from codemind.cli.stats import stats_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("codemind")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codemind {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="codemind",
    help=(
        "CodeMind: chat with a codebase.\n\n"
        "  codemind index   Chunk and embed a local repository.\n"
        "  codemind ask     Ask a question; answers cite file paths and lines."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """CodeMind: chat with a codebase."""


app.command("index")(index_cmd)
app.command("ask")(ask_cmd)
app.command("search")(search_cmd)
app.command("stats")(stats_cmd)
app.command("reset")(reset_cmd)
app.add_typer(memory_app, name="memory")


@app.command("version")
def version_cmd() -> None:
    """Show the installed CodeMind version."""
    typer.echo(f"codemind {_installed_version()}")


if __name__ == "__main__":
    app()
