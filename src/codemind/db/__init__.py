"""CodeMind database layer."""

from codemind.db.connection import Database
from codemind.db.migrations import MIGRATIONS, run_migrations
from codemind.db.repository import Repository
from codemind.db.schema import initialize
from codemind.db.vectors import DimensionMismatchError, check_dimensions, to_blob

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "DimensionMismatchError",
    "check_dimensions",
    "to_blob",
]
