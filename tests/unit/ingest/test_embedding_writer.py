"""Tests for EmbeddingWriter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from codemind.db.models import Passage
from codemind.db.repository import Repository
from codemind.ingest.embedding_writer import EmbeddingConfig, EmbeddingWriter
from codemind.rag.retriever import PassageRetriever


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


@pytest.fixture
def retriever(tmp_db):
    return PassageRetriever(Repository(tmp_db), dimensions=3)


def _passage(i: int) -> Passage:
    return Passage(path=f"src/f{i}.py", content=f"def f{i}():\n    return {i}", start_line=1, end_line=2, language="python")


def _fake_embed(model, texts):
    return [[1.0, float(len(t)), 0.5] for t in texts]


# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------


def test_embedding_config_defaults():
    cfg = EmbeddingConfig()
    assert cfg.model == "openai/text-embedding-3-small"
    assert cfg.dimensions == 1536
    assert cfg.batch_size == 64


# ------------------------------------------------------------------
# embed()
# ------------------------------------------------------------------


def test_embed_batches_requests(retriever):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3, batch_size=2))
    with patch(
        "codemind.ingest.embedding_writer.embed_texts", side_effect=_fake_embed
    ) as mock_embed:
        vectors = writer.embed(["a", "bb", "ccc", "dddd", "eeeee"])

    assert [call.args[1] for call in mock_embed.call_args_list] == [
        ["a", "bb"], ["ccc", "dddd"], ["eeeee"],
    ]
    assert [v[1] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]


def test_embed_count_mismatch_raises(retriever):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    with patch("codemind.ingest.embedding_writer.embed_texts", return_value=[[1.0, 0.0, 0.0]]):
        with pytest.raises(RuntimeError, match="returned 1 vectors for 2 inputs"):
            writer.embed(["a", "b"])


def test_embed_query(retriever):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    with patch("codemind.ingest.embedding_writer.embed_texts", side_effect=_fake_embed):
        assert writer.embed_query("abcd") == [1.0, 4.0, 0.5]


def test_missing_api_key_raises_before_calling_provider(retriever, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    writer = EmbeddingWriter(retriever)
    with patch("codemind.ingest.embedding_writer.embed_texts") as mock_embed:
        with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
            writer.embed(["a"])
    mock_embed.assert_not_called()


def test_api_key_checked_once(retriever):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    with patch("codemind.ingest.embedding_writer.validate_api_key") as mock_check, patch(
        "codemind.ingest.embedding_writer.embed_texts", side_effect=_fake_embed
    ):
        writer.embed(["a"])
        writer.embed(["b"])
    mock_check.assert_called_once_with("openai/text-embedding-3-small")


# ------------------------------------------------------------------
# write()
# ------------------------------------------------------------------


def test_write_stores_passages(retriever):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    with patch("codemind.ingest.embedding_writer.embed_texts", side_effect=_fake_embed):
        written = writer.write("proj", [_passage(i) for i in range(3)])
    assert written == 3
    assert retriever.get_project_stats("proj").total_chunks == 3


def test_write_empty_is_noop():
    retriever = MagicMock()
    writer = EmbeddingWriter(retriever)
    assert writer.write("proj", []) == 0
    retriever.insert_passages.assert_not_called()


def test_write_pairs_passages_with_vectors():
    retriever = MagicMock()
    retriever.insert_passages.return_value = 2
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    passages = [_passage(1), _passage(2)]
    with patch("codemind.ingest.embedding_writer.embed_texts", side_effect=_fake_embed):
        writer.write("proj", passages)
    project_id, items = retriever.insert_passages.call_args.args
    assert project_id == "proj"
    assert [p for p, _ in items] == passages
    assert all(len(v) == 3 for _, v in items)
