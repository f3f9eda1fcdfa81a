"""Repository indexer: local checkout -> passages -> embeddings -> store.

Directory walk rules:
  - hidden entries and dependency/build directories are skipped
  - files whose extension maps to no known language are skipped
  - files above MAX_FILE_BYTES, binary files and non-UTF-8 files are skipped
  - --exclude glob patterns are matched against each entry name
Unreadable files are recorded in IndexingStats.errors; embedding and store
errors abort the run.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from codemind.db.models import Passage
from codemind.ingest.base import ChunkingPolicy
from codemind.ingest.code_chunker import chunk_files
from codemind.ingest.embedding_writer import EmbeddingWriter
from codemind.ingest.languages import DEFAULT_LANGUAGE, detect_language
from codemind.rag.retriever import PassageRetriever

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 500 * 1024
_SKIP_DIRS = frozenset(
    ["node_modules", "__pycache__", "dist", "build", "venv", ".venv", "target", "vendor"]
)
_FLUSH_FILES = 64


@dataclass
class IndexingStats:
    files_seen: int = 0
    files_indexed: int = 0
    files_skipped: int = 0
    passages: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)  # (path, message)


def scan_repository(
    root: Path, exclude: Sequence[str] = (), max_depth: int = 20
) -> Iterator[Path]:
    """Yield candidate files under *root* in sorted, depth-first order."""
    yield from _scan_dir(root, list(exclude), depth=0, max_depth=max_depth)


def _scan_dir(directory: Path, exclude: list[str], depth: int, max_depth: int) -> Iterator[Path]:
    if depth > max_depth:
        return
    try:
        entries = sorted(directory.iterdir())
    except PermissionError:
        logger.warning("permission denied: %s", directory)
        return
    for entry in entries:
        if entry.name.startswith(".") or any(fnmatch.fnmatch(entry.name, p) for p in exclude):
            continue
        if entry.is_dir():
            if entry.name not in _SKIP_DIRS:
                yield from _scan_dir(entry, exclude, depth + 1, max_depth)
        elif entry.is_file():
            yield entry


class RepositoryIndexer:
    """Chunk, embed and store every eligible file of a local repository.

    Args:
        writer: EmbeddingWriter used to embed and persist passages.
        retriever: PassageRetriever (used to clear the project on re-index).
        policy: Chunking limits applied to every file.
    """

    def __init__(
        self,
        writer: EmbeddingWriter,
        retriever: PassageRetriever,
        policy: ChunkingPolicy | None = None,
    ) -> None:
        self._writer = writer
        self._retriever = retriever
        self._policy = policy

    def index(
        self,
        project_id: str,
        root: Path | str,
        *,
        reindex: bool = True,
        exclude: Sequence[str] = (),
    ) -> IndexingStats:
        """Index the checkout at *root* under *project_id*.

        With *reindex* the project's existing passages are deleted first, so
        passages of changed or removed files do not linger.
        """
        root = Path(root)
        if not root.is_dir():
            raise ValueError(f"Repository path is not a directory: {root}")

        stats = IndexingStats()
        if reindex:
            self._retriever.delete_all_passages(project_id)

        sources: list[tuple[str, str]] = []
        for file_path in scan_repository(root, exclude):
            stats.files_seen += 1
            rel = file_path.relative_to(root).as_posix()
            content = self._read_source(file_path, rel, stats)
            if content is None:
                stats.files_skipped += 1
                continue

            sources.append((rel, content))
            stats.files_indexed += 1

            if len(sources) >= _FLUSH_FILES:
                stats.passages += self._flush(project_id, sources)
                sources = []

        if sources:
            stats.passages += self._flush(project_id, sources)

        logger.info(
            "indexed %s: %d/%d files, %d passages, %d errors",
            project_id, stats.files_indexed, stats.files_seen, stats.passages, len(stats.errors),
        )
        return stats

    def _flush(self, project_id: str, sources: list[tuple[str, str]]) -> int:
        """Chunk a group of ``(path, content)`` pairs and embed their passages."""
        batch = chunk_files(sources, self._policy)
        passages: list[Passage] = [
            p for result in batch.results.values() for p in result.chunks
        ]
        return self._writer.write(project_id, passages)

    @staticmethod
    def _read_source(path: Path, rel: str, stats: IndexingStats) -> str | None:
        """Return decoded file text, or None if the file should be skipped."""
        if detect_language(rel) == DEFAULT_LANGUAGE:
            return None
        try:
            if path.stat().st_size > MAX_FILE_BYTES:
                logger.debug("skipping %s: larger than %d bytes", rel, MAX_FILE_BYTES)
                return None
            data = path.read_bytes()
        except OSError as exc:
            stats.errors.append((rel, str(exc)))
            logger.warning("could not read %s: %s", rel, exc)
            return None
        if b"\x00" in data:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("skipping %s: not valid UTF-8", rel)
            return None
