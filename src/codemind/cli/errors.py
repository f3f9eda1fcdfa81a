"""CodeMind rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from codemind.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from codemind.rag.llm_client import provider_env_var


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = provider_env_var(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".codemind.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  codemind index <path> --project <name>"
    )


def err_not_a_directory(path: str) -> str:
    return (
        f"[red]Error:[/] Repository path is not a directory: '{path}'\n"
        "  Pass the root of a local checkout, e.g.  codemind index ./my-repo"
    )


def err_empty_project(project_id: str) -> str:
    """Project has no indexed passages."""
    return (
        f"[red]Error:[/] Project '{project_id}' has no indexed code.\n"
        f"  Run:  codemind index <path> --project {project_id}"
    )


def err_session_not_found(session_id: str) -> str:
    return (
        f"[red]Error:[/] Session '{session_id}' not found.\n"
        "  Omit --session to start a new conversation."
    )


def err_invalid_cursor(cursor: str) -> str:
    return (
        f"[red]Error:[/] Invalid page cursor: '{cursor}'\n"
        "  Use the cursor printed by the previous  codemind search  call, or omit --cursor."
    )


def err_dimension_mismatch(detail: str) -> str:
    """Embedding length does not match the configured dimension."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch: {detail}\n"
        "  Set embedding.dimensions in codemind.yaml to the model's output size,\n"
        "  then re-index:  codemind index <path> --project <name>"
    )


def err_config(detail: str) -> str:
    """Config file contains an invalid or forbidden value."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix codemind.yaml (or ~/.codemind/config.yaml) and run the command again."
    )
