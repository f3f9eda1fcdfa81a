"""Fixtures shared by the CLI command tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from codemind.db.connection import Database
from codemind.db.models import Passage
from codemind.db.repository import Repository
from codemind.rag.retriever import PassageRetriever

QUERY_VEC = [1.0, 0.0, 0.0]


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    """CWD with a codemind.yaml for 3-dimensional embeddings and no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("codemind.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for var in ("CODEMIND_GENERATION_MODEL", "CODEMIND_EMBEDDING_MODEL", "CODEMIND_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "codemind.yaml").write_text(
        "embedding:\n  dimensions: 3\nchunking:\n  min_chunk_size: 1\n", encoding="utf-8"
    )
    return tmp_path


@pytest.fixture
def fake_embed():
    with patch(
        "codemind.ingest.embedding_writer.embed_texts",
        side_effect=lambda model, texts: [QUERY_VEC for _ in texts],
    ) as mock_embed:
        yield mock_embed


@pytest.fixture
def db_path(workdir: Path) -> Path:
    return workdir / ".codemind.db"


@pytest.fixture
def indexed_db(db_path: Path) -> Path:
    """Database with three passages in project 'demo'."""
    with Database(db_path) as conn:
        retriever = PassageRetriever(Repository(conn), dimensions=3)
        retriever.insert_passages(
            "demo",
            [
                (
                    Passage(
                        path=f"src/mod{i}.py",
                        content=f"def f{i}():\n    return {i}",
                        start_line=1,
                        end_line=2,
                        language="python",
                        token_count=6,
                    ),
                    QUERY_VEC,
                )
                for i in range(3)
            ],
        )
    return db_path
