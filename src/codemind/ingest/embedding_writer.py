"""Embedding writer: batch LiteLLM embeddings for passages and queries.

For each batch of passages:
1. Embed the passage contents via ``litellm.embedding()``.
2. Hand ``(passage, vector)`` pairs to ``PassageRetriever.insert_passages()``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from codemind.db.models import Passage
from codemind.rag.llm_client import embed_texts, validate_api_key
from codemind.rag.retriever import PassageRetriever

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 64


class EmbeddingWriter:
    """Embed passages and persist them through the retrieval engine.

    Args:
        retriever: PassageRetriever that owns passage storage.
        config: Embedding configuration (model, dimensions, batch size).
    """

    def __init__(
        self, retriever: PassageRetriever, config: EmbeddingConfig | None = None
    ) -> None:
        self._retriever = retriever
        self._config = config or EmbeddingConfig()
        self._key_checked = False

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in batches of ``batch_size``; output order matches input."""
        self._check_api_key()
        vectors: list[list[float]] = []
        size = max(1, self._config.batch_size)
        for i in range(0, len(texts), size):
            batch = list(texts[i : i + size])
            result = embed_texts(self._config.model, batch)
            if len(result) != len(batch):
                raise RuntimeError(
                    f"Embedding provider returned {len(result)} vectors for {len(batch)} inputs."
                )
            vectors.extend(result)
        return vectors

    def embed_query(self, text: str) -> list[float]:
        return self.embed([text])[0]

    def write(self, project_id: str, passages: Sequence[Passage]) -> int:
        """Embed *passages* and insert them for *project_id*. Returns rows written."""
        if not passages:
            return 0
        vectors = self.embed([p.content for p in passages])
        written = self._retriever.insert_passages(project_id, list(zip(passages, vectors)))
        logger.debug("embedded and stored %d passages for %s", written, project_id)
        return written

    def _check_api_key(self) -> None:
        """Raise EnvironmentError once if no API key is set for the embedding provider."""
        if not self._key_checked:
            validate_api_key(self._config.model)
            self._key_checked = True
