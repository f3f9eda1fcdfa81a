"""Boundary-aware source code chunker.

Walks the file in windows of at most ``max_lines`` lines. When boundary
preservation is on, each window is cut back to the last language boundary
(closing brace, ``def``/``class``) found in its final 30 %, or to a blank
line past its midpoint. Consecutive passages share ``overlap_lines`` lines.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from codemind.db.models import Passage
from codemind.ingest.base import BaseChunker, ChunkingPolicy, ChunkingResult, estimate_tokens
from codemind.ingest.languages import boundary_patterns, detect_language, is_boundary

logger = logging.getLogger(__name__)


class CodeChunker(BaseChunker):
    """Split a source file into bounded, overlapping, boundary-aware passages.

    Never raises for well-formed text. Decoding is the caller's concern.
    """

    def chunk(self, content: str, path: str) -> ChunkingResult:
        policy = self.policy
        lines = content.split("\n")
        total = len(lines)
        language = detect_language(path)
        passages: list[Passage] = []

        logger.debug(
            "chunking %s (%s, %d lines, max_lines=%d, max_tokens=%d)",
            path, language, total, policy.max_lines, policy.max_tokens,
        )

        start = 0
        while start < total:
            end = self._find_chunk_end(lines, start, language)

            if end - start < policy.min_chunk_size:
                start = end
                continue

            window = lines[start:end]
            text = "\n".join(window)
            tokens = estimate_tokens(text)

            if tokens > policy.max_tokens:
                passages.extend(self._split_by_token_limit(window, start, path, language))
            else:
                passages.append(
                    Passage(
                        path=path,
                        content=text,
                        start_line=start + 1,
                        end_line=end,
                        language=language,
                        token_count=tokens,
                    )
                )

            # The tail is covered once a passage reaches the last line.
            if end >= total:
                break
            start = max(end - policy.overlap_lines, start + 1)

        result = ChunkingResult(chunks=passages, total_lines=total)
        logger.debug(
            "chunked %s into %d passages (avg %.1f lines)",
            path, result.total_chunks, result.avg_chunk_size,
        )
        return result

    def _find_chunk_end(self, lines: list[str], start: int, language: str) -> int:
        """Return the exclusive end index of the passage starting at *start*."""
        max_lines = self.policy.max_lines
        max_end = min(start + max_lines, len(lines))

        if not self.policy.preserve_boundaries:
            return max_end

        patterns = boundary_patterns(language)
        floor_boundary = start + int(max_lines * 0.7)
        floor_blank = start + int(max_lines * 0.5)

        for i in range(max_end - 1, floor_boundary, -1):
            line = lines[i]
            if is_boundary(line, patterns):
                return i + 1
            if not line.strip() and i > floor_blank:
                return i

        return max_end


def chunk_file(
    content: str, path: str, policy: ChunkingPolicy | None = None
) -> ChunkingResult:
    """Chunk one file's text. See :class:`CodeChunker`."""
    return CodeChunker(policy).chunk(content, path)


@dataclass
class BatchChunkingResult:
    results: dict[str, ChunkingResult] = field(default_factory=dict)

    @property
    def total_chunks(self) -> int:
        return sum(r.total_chunks for r in self.results.values())


def chunk_files(
    files: Iterable[tuple[str, str]], policy: ChunkingPolicy | None = None
) -> BatchChunkingResult:
    """Chunk many ``(path, content)`` pairs with one policy."""
    chunker = CodeChunker(policy)
    batch = BatchChunkingResult()
    for path, content in files:
        batch.results[path] = chunker.chunk(content, path)
    logger.info(
        "chunked %d files into %d passages", len(batch.results), batch.total_chunks
    )
    return batch
