"""Domain models for the CodeMind database layer."""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class Passage:
    """A bounded, contiguous slice of a source file.

    Line numbers are 1-based and inclusive. Passages are immutable: a changed
    file is re-chunked into a fresh set rather than edited in place.
    """

    path: str
    content: str
    start_line: int
    end_line: int
    language: str = "text"
    token_count: int = 0

    def __post_init__(self) -> None:
        if self.start_line < 1:
            raise ValueError(f"start_line must be >= 1, got {self.start_line}")
        if self.end_line < self.start_line:
            raise ValueError(
                f"end_line ({self.end_line}) must be >= start_line ({self.start_line})"
            )
        if self.token_count < 0:
            raise ValueError(f"token_count must be >= 0, got {self.token_count}")

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        return asdict(self)


def passage_key(project_id: str, passage: Passage) -> str:
    """Deterministic identity for a passage within a project.

    Two inserts of the same passage for the same project produce the same key,
    which lets re-indexing upsert instead of appending duplicates.
    """
    raw = "\x1f".join(
        [
            project_id,
            passage.path,
            str(passage.start_line),
            str(passage.end_line),
            passage.content_hash,
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EmbeddingRecord:
    project_id: str
    passage: Passage
    embedding: list[float]

    @property
    def id(self) -> str:
        return passage_key(self.project_id, self.passage)


@dataclass
class RetrievedPassage:
    """A passage returned from a similarity query, with its score."""

    id: str
    project_id: str
    passage: Passage
    similarity: float


@dataclass
class ProjectStats:
    total_chunks: int = 0
    total_tokens: int = 0
    language_breakdown: dict[str, int] = field(default_factory=dict)


@dataclass
class ConversationSession:
    id: str
    summary: str | None = None
    total_tokens: int = 0
    message_count: int = 0
    last_active_at: str | None = None
    created_at: str | None = None


ROLES = ("user", "assistant", "system")


@dataclass
class ConversationMessage:
    id: str
    session_id: str
    role: str
    content: str
    token_count: int = 0
    included_in_memory: bool = True
    created_at: str | None = None
