"""Tests for the question answering pipeline."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from codemind.db.models import Passage
from codemind.db.repository import Repository
from codemind.ingest.embedding_writer import EmbeddingConfig, EmbeddingWriter
from codemind.rag.llm_client import Completion
from codemind.rag.memory import MemoryManager
from codemind.rag.pipeline import QueryOptions, QuestionAnswerer
from codemind.rag.retriever import PassageRetriever

_VEC = [1.0, 0.0, 0.0]


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


@pytest.fixture(autouse=True)
def _fake_embeddings():
    with patch(
        "codemind.ingest.embedding_writer.embed_texts",
        side_effect=lambda model, texts: [_VEC for _ in texts],
    ) as mock_embed:
        yield mock_embed


@pytest.fixture
def mock_complete():
    with patch(
        "codemind.rag.pipeline.complete",
        return_value=Completion(content="It paginates.", prompt_tokens=120, completion_tokens=8),
    ) as mock:
        yield mock


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def retriever(repo):
    r = PassageRetriever(repo, dimensions=3)
    r.insert_passages(
        "proj",
        [
            (
                Passage(
                    path="src/pager.py",
                    content="def next_page(cursor):\n    ...",
                    start_line=10,
                    end_line=11,
                    language="python",
                    token_count=8,
                ),
                _VEC,
            ),
            (
                Passage(
                    path="web/app.ts",
                    content="export const x = 1;",
                    start_line=1,
                    end_line=1,
                    language="typescript",
                    token_count=5,
                ),
                _VEC,
            ),
        ],
    )
    return r


@pytest.fixture
def memory(repo):
    return MemoryManager(repo)


@pytest.fixture
def answerer(retriever, memory):
    writer = EmbeddingWriter(retriever, EmbeddingConfig(dimensions=3))
    return QuestionAnswerer(retriever, writer, memory)


def test_ask_returns_answer_with_sources(answerer, mock_complete):
    answer = answerer.ask("How does paging work?", "proj", session_id="s1")

    assert answer.content == "It paginates."
    assert answer.session_id == "s1"
    assert {s.path for s in answer.sources} == {"src/pager.py", "web/app.ts"}
    pager = next(s for s in answer.sources if s.path == "src/pager.py")
    assert (pager.start_line, pager.end_line, pager.language) == (10, 11, "python")
    assert pager.similarity == pytest.approx(1.0, abs=1e-4)
    assert answer.total_tokens == 128


def test_ask_persists_turn(answerer, memory, repo, mock_complete):
    answerer.ask("  How does paging work?  ", "proj", session_id="s1")

    assert repo.count_messages("s1") == 2
    context = memory.load_context("s1")
    assert [(e.role, e.content) for e in context.entries] == [
        ("user", "How does paging work?"),
        ("assistant", "It paginates."),
    ]


def test_ask_without_session_starts_one(answerer, repo, mock_complete):
    answer = answerer.ask("question?", "proj")
    assert answer.session_id
    assert repo.get_session(answer.session_id) is not None
    assert repo.count_messages(answer.session_id) == 2


def test_history_is_sent_on_follow_up(answerer, mock_complete):
    answerer.ask("first question", "proj", session_id="s1")
    answerer.ask("second question", "proj", session_id="s1")

    messages = mock_complete.call_args_list[-1].args[1]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1]["content"] == "first question"
    assert messages[-1]["content"] == "second question"


def test_generation_settings_forwarded(answerer, mock_complete):
    answerer.generation.model = "anthropic/claude-test"
    answerer.generation.max_tokens = 321
    answerer.ask("q", "proj", session_id="s1")

    args, kwargs = mock_complete.call_args
    assert args[0] == "anthropic/claude-test"
    assert kwargs["max_tokens"] == 321
    assert kwargs["temperature"] == 0.2


def test_query_options_filter_sources(answerer, mock_complete):
    answer = answerer.ask(
        "q", "proj", session_id="s1", options=QueryOptions(languages=["typescript"])
    )
    assert [s.path for s in answer.sources] == ["web/app.ts"]


def test_no_matches_still_answers(answerer, mock_complete):
    answer = answerer.ask("q", "other-project", session_id="s1")
    assert answer.sources == []
    system_prompt = mock_complete.call_args.args[1][0]["content"]
    assert "no relevant code was found" in system_prompt


@pytest.mark.parametrize("question", ["", "   \n"])
def test_empty_question_raises(answerer, mock_complete, question):
    with pytest.raises(ValueError):
        answerer.ask(question, "proj")
    mock_complete.assert_not_called()


def test_memory_load_failure_is_invisible(answerer, repo, mock_complete):
    answerer.ask("first", "proj", session_id="s1")
    with patch.object(repo, "list_recent_messages", side_effect=RuntimeError("disk")):
        answer = answerer.ask("second", "proj", session_id="s1")

    assert answer.content == "It paginates."
    messages = mock_complete.call_args.args[1]
    assert [m["role"] for m in messages] == ["system", "user"]
    assert repo.count_messages("s1") == 4


def test_retrieval_failure_propagates(answerer, retriever, repo, mock_complete):
    with patch.object(retriever, "query_top_k", side_effect=RuntimeError("store down")):
        with pytest.raises(RuntimeError, match="store down"):
            answerer.ask("q", "proj", session_id="s1")
    mock_complete.assert_not_called()
    assert repo.count_messages("s1") == 0


def test_generation_failure_saves_nothing(answerer, repo, mock_complete):
    mock_complete.side_effect = RuntimeError("rate limited")
    with pytest.raises(RuntimeError):
        answerer.ask("q", "proj", session_id="s1")
    assert repo.count_messages("s1") == 0


def test_prepare_does_not_generate(answerer, mock_complete):
    prompt = answerer.prepare("q", "proj", "s1")
    assert len(prompt.passages) == 2
    assert prompt.messages[-1] == {"role": "user", "content": "q"}
    mock_complete.assert_not_called()


# ------------------------------------------------------------------
# ask_stream
# ------------------------------------------------------------------


@pytest.fixture
def mock_stream():
    with patch(
        "codemind.rag.pipeline.complete_stream",
        side_effect=lambda *args, **kwargs: iter(["It ", "pagi", "nates."]),
    ) as mock:
        yield mock


def test_ask_stream_yields_deltas_then_persists(answerer, repo, mock_stream):
    streaming = answerer.ask_stream("How does paging work?", "proj", session_id="s1")

    assert streaming.session_id == "s1"
    assert {s.path for s in streaming.sources} == {"src/pager.py", "web/app.ts"}
    assert repo.count_messages("s1") == 0

    assert list(streaming) == ["It ", "pagi", "nates."]
    assert streaming.content == "It paginates."
    stored = [m.content for m in repo.list_recent_messages("s1", 10)]
    assert sorted(stored) == ["How does paging work?", "It paginates."]


def test_ask_stream_forwards_generation_settings(answerer, mock_stream):
    answerer.generation.max_tokens = 77
    list(answerer.ask_stream("q", "proj", session_id="s1"))

    args, kwargs = mock_stream.call_args
    assert args[0] == answerer.generation.model
    assert args[1][-1] == {"role": "user", "content": "q"}
    assert kwargs["max_tokens"] == 77


def test_abandoned_stream_saves_nothing(answerer, repo, mock_stream):
    streaming = answerer.ask_stream("q", "proj", session_id="s1")
    deltas = iter(streaming)
    assert next(deltas) == "It "
    deltas.close()

    assert streaming.content is None
    assert repo.count_messages("s1") == 0


def test_stream_cannot_be_replayed(answerer, mock_stream):
    streaming = answerer.ask_stream("q", "proj", session_id="s1")
    list(streaming)
    with pytest.raises(RuntimeError, match="already consumed"):
        list(streaming)


def test_ask_stream_without_session_starts_one(answerer, repo, mock_stream):
    streaming = answerer.ask_stream("q", "proj")
    list(streaming)
    assert repo.count_messages(streaming.session_id) == 2


def test_ask_stream_empty_question_raises(answerer, mock_stream):
    with pytest.raises(ValueError):
        answerer.ask_stream("  ", "proj")
    mock_stream.assert_not_called()
