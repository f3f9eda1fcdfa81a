"""Tests for the Database connection layer."""

from __future__ import annotations

from pathlib import Path

import pytest

from codemind.db.connection import Database


def test_connect_creates_file(tmp_path):
    db_path = tmp_path / ".codemind.db"
    db = Database(db_path)
    conn = db.connect()
    conn.close()
    assert db_path.exists()


def test_sqlite_vec_loads(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    conn = db.connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    conn.close()
    assert version.startswith("v")


def test_foreign_keys_enabled(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    conn = db.connect()
    result = conn.execute("PRAGMA foreign_keys").fetchone()[0]
    conn.close()
    assert result == 1


def test_wal_journal_mode(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    conn = db.connect()
    mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    conn.close()
    assert mode == "wal"


def test_open_applies_schema(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    conn = db.open()
    tables = {
        r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    }
    db.close()
    assert {"passages", "sessions", "messages"} <= tables


def test_open_is_idempotent(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    assert db.open() is db.open()
    db.close()


def test_in_memory_database():
    db = Database(":memory:")
    assert db.db_path == ":memory:"
    with db as conn:
        assert conn.execute("SELECT COUNT(*) FROM passages").fetchone()[0] == 0


def test_context_manager_closes_connection(tmp_path):
    db = Database(tmp_path / ".codemind.db")
    with db as conn:
        conn.execute("SELECT 1")
    with pytest.raises(Exception):
        conn.execute("SELECT 1")


def test_context_manager_accepts_path_str(tmp_path):
    db = Database(str(tmp_path / ".codemind.db"))
    assert isinstance(db.db_path, Path)
    with db as conn:
        result = conn.execute("SELECT 1").fetchone()[0]
    assert result == 1


def test_close_without_open_is_noop(tmp_path):
    Database(tmp_path / ".codemind.db").close()
