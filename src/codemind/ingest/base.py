"""Base chunker interface and chunking policy."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from codemind.db.models import Passage

# Code averages slightly more characters per token than English prose.
CHARS_PER_TOKEN = 4.5


@dataclass(frozen=True)
class ChunkingPolicy:
    """Per-call chunking limits. Not persisted.

    Attributes:
        max_lines: Upper bound on lines per passage.
        max_tokens: Upper bound on estimated tokens per passage; larger
            slices are re-split line by line.
        overlap_lines: Lines shared between consecutive passages.
        preserve_boundaries: Prefer cut points at language boundaries.
        min_chunk_size: Slices shorter than this many lines are dropped.
    """

    max_lines: int = 200
    max_tokens: int = 1000
    overlap_lines: int = 20
    preserve_boundaries: bool = True
    min_chunk_size: int = 10

    def __post_init__(self) -> None:
        if self.max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.overlap_lines < 0:
            raise ValueError("overlap_lines must be >= 0")
        if self.min_chunk_size < 0:
            raise ValueError("min_chunk_size must be >= 0")


@dataclass
class ChunkingResult:
    chunks: list[Passage] = field(default_factory=list)
    total_lines: int = 0

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def avg_chunk_size(self) -> float:
        """Mean of ``end_line - start_line`` over emitted passages (0 if none)."""
        if not self.chunks:
            return 0.0
        return sum(c.end_line - c.start_line for c in self.chunks) / len(self.chunks)


def estimate_tokens(text: str) -> int:
    """Approximate token count for source code: ceil(chars / 4.5)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class BaseChunker(ABC):
    """Abstract base for chunkers.

    Subclasses implement ``chunk()`` and may use ``_split_by_token_limit()``
    as the boundary-unaware fallback for oversized slices.
    """

    def __init__(self, policy: ChunkingPolicy | None = None) -> None:
        self.policy = policy or ChunkingPolicy()

    @abstractmethod
    def chunk(self, content: str, path: str) -> ChunkingResult:
        """Split *content* of the file at *path* into ordered passages."""

    def _split_by_token_limit(
        self, lines: list[str], first_line: int, path: str, language: str
    ) -> list[Passage]:
        """Split *lines* into consecutive passages of at most ``max_tokens``.

        Pure cumulative accumulation, no boundary awareness. Each line is
        charged with its trailing newline so the running sum never
        underestimates the joined text. A single line above the cap becomes
        a passage of its own.

        Args:
            lines: The oversized slice.
            first_line: 0-based index of ``lines[0]`` in the file.
        """
        limit = self.policy.max_tokens
        passages: list[Passage] = []
        current_start = 0
        current_tokens = 0

        for i, line in enumerate(lines):
            line_tokens = estimate_tokens(line + "\n")
            if current_tokens + line_tokens > limit and i > current_start:
                passages.append(
                    self._make_passage(
                        lines[current_start:i], first_line + current_start, path, language
                    )
                )
                current_start = i
                current_tokens = line_tokens
            else:
                current_tokens += line_tokens

        if current_start < len(lines):
            passages.append(
                self._make_passage(lines[current_start:], first_line + current_start, path, language)
            )
        return passages

    @staticmethod
    def _make_passage(lines: list[str], first_line: int, path: str, language: str) -> Passage:
        content = "\n".join(lines)
        return Passage(
            path=path,
            content=content,
            start_line=first_line + 1,
            end_line=first_line + len(lines),
            language=language,
            token_count=estimate_tokens(content),
        )
