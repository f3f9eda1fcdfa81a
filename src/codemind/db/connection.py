"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from codemind.db.schema import initialize


class Database:
    """Per-project SQLite database with sqlite-vec vector functions.

    The handle is constructed explicitly at startup and closed at shutdown;
    components receive the connection (or a Repository wrapping it) rather
    than looking one up globally.
    """

    def __init__(self, db_path: Path | str, *, check_same_thread: bool = True) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
                Use ":memory:" for a throwaway in-memory database.
            check_same_thread: Passed through to sqlite3.connect(). Set False
                when one connection is shared by worker threads.
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self._check_same_thread = check_same_thread
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection."""
        conn = sqlite3.connect(self.db_path, check_same_thread=self._check_same_thread)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def open(self) -> sqlite3.Connection:
        """Connect and apply pending migrations. Returns the owned connection."""
        if self._conn is None:
            self._conn = self.connect()
            initialize(self._conn)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        return self.open()

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        self.close()
