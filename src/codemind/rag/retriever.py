"""Similarity retrieval engine over embedded passages.

Ranking:
  similarity(p) = 1 - cosine_distance(p.embedding, query)

Passages are scoped by project, filtered by a minimum similarity, an
optional language set and optional path prefixes, then ordered by
similarity descending with (path, start_line, id) as tie-breakers so
offset pagination is stable between calls.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from codemind.db.models import EmbeddingRecord, Passage, ProjectStats, RetrievedPassage
from codemind.db.repository import Repository
from codemind.db.vectors import check_dimensions

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_MIN_SIMILARITY = 0.1

_CURSOR_PREFIX = "offset:"


class InvalidCursorError(ValueError):
    """Raised when a pagination cursor cannot be decoded."""


@dataclass
class PassagePage:
    """One page of ranked passages.

    Attributes:
        passages: At most ``limit`` passages, best first.
        next_cursor: Opaque cursor for the following page (None on the last page).
        has_more: Whether another page exists.
    """

    passages: list[RetrievedPassage] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


def encode_cursor(offset: int) -> str:
    raw = f"{_CURSOR_PREFIX}{offset}".encode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> int:
    """Return the offset encoded in *cursor*.

    Raises:
        InvalidCursorError: If the cursor was not produced by encode_cursor().
    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}") from exc
    if not raw.startswith(_CURSOR_PREFIX) or not raw[len(_CURSOR_PREFIX):].isdigit():
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}")
    return int(raw[len(_CURSOR_PREFIX):])


class PassageRetriever:
    """Persist embedded passages and serve ranked, filtered, paginated queries.

    Store and dimension errors propagate to the caller; nothing is retried
    here.

    Args:
        repo: Open Repository instance.
        dimensions: Embedding dimension for this deployment. When set, every
            inserted and query vector is checked against it.
        batch_size: Default number of passages written per transaction.
    """

    def __init__(
        self,
        repo: Repository,
        dimensions: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._repo = repo
        self.dimensions = dimensions
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_passages(
        self,
        project_id: str,
        items: Sequence[tuple[Passage, Sequence[float]]],
        batch_size: int | None = None,
    ) -> int:
        """Write ``(passage, embedding)`` pairs in sequential batches.

        Every vector is checked before the first batch is written. Each batch
        commits on its own, so a store failure part-way leaves earlier
        batches in place; because rows are upserted on a deterministic key,
        retrying the whole call is safe.

        Returns:
            Number of passages written.

        Raises:
            DimensionMismatchError: If any embedding has the wrong length.
        """
        if batch_size is None:
            batch_size = self.batch_size
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not items:
            logger.debug("no passages to insert for project %s", project_id)
            return 0

        records = []
        for passage, embedding in items:
            check_dimensions(embedding, self.dimensions)
            records.append(EmbeddingRecord(project_id, passage, list(embedding)))

        logger.info(
            "inserting %d passages for project %s (batch size %d)",
            len(records), project_id, batch_size,
        )
        written = 0
        for i in range(0, len(records), batch_size):
            written += self._repo.upsert_passages(records[i : i + batch_size])
            logger.debug("batch %d written for project %s", i // batch_size, project_id)
        return written

    def delete_all_passages(self, project_id: str) -> int:
        """Remove every passage of *project_id* (used before a full re-index)."""
        deleted = self._repo.delete_all_passages(project_id)
        logger.info("deleted %d passages for project %s", deleted, project_id)
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_top_k(
        self,
        project_id: str,
        query_vector: Sequence[float],
        *,
        limit: int = 10,
        offset: int = 0,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        languages: Sequence[str] | None = None,
        paths: Sequence[str] | None = None,
    ) -> list[RetrievedPassage]:
        """Return up to *limit* passages most similar to *query_vector*.

        Args:
            languages: Keep only passages whose language is in this set.
            paths: Keep only passages whose path starts with one of these
                prefixes.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        check_dimensions(query_vector, self.dimensions)

        results = self._repo.query_passages_by_vector(
            project_id,
            query_vector,
            min_similarity=min_similarity,
            languages=languages,
            path_prefixes=paths,
            limit=limit,
            offset=offset,
        )
        logger.debug(
            "query for project %s returned %d passages (limit=%d offset=%d)",
            project_id, len(results), limit, offset,
        )
        return results

    def query_top_k_paginated(
        self,
        project_id: str,
        query_vector: Sequence[float],
        *,
        limit: int = 10,
        cursor: str | None = None,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        languages: Sequence[str] | None = None,
        paths: Sequence[str] | None = None,
    ) -> PassagePage:
        """Cursor-paginated variant of :meth:`query_top_k`.

        Fetches ``limit + 1`` rows to learn whether another page exists
        without a separate count query.
        """
        offset = decode_cursor(cursor) if cursor else 0
        rows = self.query_top_k(
            project_id,
            query_vector,
            limit=limit + 1,
            offset=offset,
            min_similarity=min_similarity,
            languages=languages,
            paths=paths,
        )
        has_more = len(rows) > limit
        return PassagePage(
            passages=rows[:limit],
            next_cursor=encode_cursor(offset + limit) if has_more else None,
            has_more=has_more,
        )

    def get_project_stats(self, project_id: str) -> ProjectStats:
        return self._repo.aggregate_passages(project_id)
