"""Question answering pipeline: retrieve -> remember -> assemble -> generate -> save.

A retrieval failure aborts the request. A memory-load failure only costs
history (see LoadErrorPolicy). Saving the finished turn must succeed or the
error propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from codemind.ingest.embedding_writer import EmbeddingWriter
from codemind.rag.assembler import AssembledPrompt, AssemblerConfig, assemble
from codemind.rag.llm_client import complete, complete_stream
from codemind.rag.memory import MemoryManager
from codemind.rag.retriever import DEFAULT_MIN_SIMILARITY, PassageRetriever

logger = logging.getLogger(__name__)


@dataclass
class GenerationConfig:
    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.2


@dataclass
class SourceRef:
    path: str
    start_line: int
    end_line: int
    language: str
    similarity: float


@dataclass
class Answer:
    content: str
    session_id: str
    sources: list[SourceRef] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class StreamingAnswer:
    """Iterable of answer text deltas for one question.

    Iterating to the end joins the deltas into ``content`` and saves the turn
    to conversation memory. An answer abandoned part way is not saved.
    """

    def __init__(
        self,
        session_id: str,
        sources: list[SourceRef],
        deltas: Iterable[str],
        on_complete: Callable[[str], None],
    ) -> None:
        self.session_id = session_id
        self.sources = sources
        self.content: str | None = None
        self._deltas = deltas
        self._on_complete = on_complete

    def __iter__(self) -> Iterator[str]:
        if self.content is not None:
            raise RuntimeError("answer stream was already consumed")
        parts: list[str] = []
        for delta in self._deltas:
            parts.append(delta)
            yield delta
        self.content = "".join(parts)
        self._on_complete(self.content)


@dataclass
class QueryOptions:
    top_k: int = 8
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    languages: Sequence[str] | None = None
    paths: Sequence[str] | None = None


class QuestionAnswerer:
    """Wire the retrieval engine, memory manager and language model together.

    Args:
        retriever: PassageRetriever for the project store.
        embedder: EmbeddingWriter used to embed the question.
        memory: MemoryManager for conversation history.
        generation: Model settings for the answer.
        assembler: Prompt assembly settings.
    """

    def __init__(
        self,
        retriever: PassageRetriever,
        embedder: EmbeddingWriter,
        memory: MemoryManager,
        generation: GenerationConfig | None = None,
        assembler: AssemblerConfig | None = None,
    ) -> None:
        self._retriever = retriever
        self._embedder = embedder
        self._memory = memory
        self.generation = generation or GenerationConfig()
        self.assembler = assembler or AssemblerConfig()

    def prepare(
        self,
        question: str,
        project_id: str,
        session_id: str,
        options: QueryOptions | None = None,
    ) -> AssembledPrompt:
        """Retrieve passages and history and assemble the prompt (no generation)."""
        options = options or QueryOptions()
        query_vector = self._embedder.embed_query(question)
        passages = self._retriever.query_top_k(
            project_id,
            query_vector,
            limit=options.top_k,
            min_similarity=options.min_similarity,
            languages=options.languages,
            paths=options.paths,
        )
        history = self._memory.load_context(session_id)
        return assemble(question, passages, history, self.assembler)

    def ask(
        self,
        question: str,
        project_id: str,
        session_id: str | None = None,
        options: QueryOptions | None = None,
    ) -> Answer:
        """Answer *question* about *project_id*, continuing *session_id* if given."""
        question, session_id = self._begin(question, session_id)
        prompt = self.prepare(question, project_id, session_id, options)
        completion = complete(
            self.generation.model,
            prompt.messages,
            max_tokens=self.generation.max_tokens,
            temperature=self.generation.temperature,
        )
        self._memory.append_turn(session_id, question, completion.content)

        logger.info(
            "answered question for project %s in session %s (%d sources, %d tokens)",
            project_id, session_id, len(prompt.passages), completion.total_tokens,
        )
        return Answer(
            content=completion.content,
            session_id=session_id,
            sources=_sources(prompt),
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
        )

    def ask_stream(
        self,
        question: str,
        project_id: str,
        session_id: str | None = None,
        options: QueryOptions | None = None,
    ) -> StreamingAnswer:
        """Like ask(), but the answer text arrives as the model produces it.

        Retrieval and history loading happen before this returns. The turn is
        saved once the returned StreamingAnswer has been iterated to the end.
        """
        question, session_id = self._begin(question, session_id)
        prompt = self.prepare(question, project_id, session_id, options)
        deltas = complete_stream(
            self.generation.model,
            prompt.messages,
            max_tokens=self.generation.max_tokens,
            temperature=self.generation.temperature,
        )

        def finish(content: str) -> None:
            self._memory.append_turn(session_id, question, content)
            logger.info(
                "streamed answer for project %s in session %s (%d sources, %d chars)",
                project_id, session_id, len(prompt.passages), len(content),
            )

        return StreamingAnswer(session_id, _sources(prompt), deltas, finish)

    def _begin(self, question: str, session_id: str | None) -> tuple[str, str]:
        question = question.strip()
        if not question:
            raise ValueError("question must not be empty")
        if session_id is None:
            session_id = self._memory.start_session().id
        return question, session_id


def _sources(prompt: AssembledPrompt) -> list[SourceRef]:
    return [
        SourceRef(
            path=rp.passage.path,
            start_line=rp.passage.start_line,
            end_line=rp.passage.end_line,
            language=rp.passage.language,
            similarity=rp.similarity,
        )
        for rp in prompt.passages
    ]
