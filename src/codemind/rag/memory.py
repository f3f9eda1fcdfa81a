"""Rolling conversational memory under a token budget.

Session lifecycle:
  EMPTY -> ACTIVE        first append_turn()
  ACTIVE -> SUMMARIZED   total_tokens crosses summary_threshold
  ACTIVE/SUMMARIZED -> CLEARED   clear()
  CLEARED -> ACTIVE      next append_turn()

Messages are never deleted. Summarization and clear() flip
``included_in_memory`` off instead, which keeps the audit trail while
load_context() only reads the active set.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
import weakref
from dataclasses import dataclass, field
from enum import Enum

from codemind.db.models import ConversationMessage, ConversationSession
from codemind.db.repository import Repository
from codemind.rag.summarizer import summarize_messages

logger = logging.getLogger(__name__)

SUMMARY_PREFIX = "Previous conversation summary: "
CHARS_PER_TOKEN = 4


class SessionNotFoundError(LookupError):
    """Raised when an operation needs a session that does not exist."""


class LoadErrorPolicy(str, Enum):
    """What load_context() does when the store fails.

    DEGRADE logs the error and returns an empty context so the chat keeps
    working with less history. RAISE propagates the error.
    """

    DEGRADE = "degrade"
    RAISE = "raise"


@dataclass
class MemoryConfig:
    """Memory manager limits.

    Attributes:
        max_tokens: Token budget for the context returned by load_context().
        max_messages: Most recent messages fetched before trimming.
        summary_threshold: total_tokens above which older turns are summarized.
        include_system_messages: Keep stored system-role messages in context.
        on_load_error: Store-failure policy for load_context().
        resummarize: Fold an existing summary and further old turns into a
            new summary whenever the active turns exceed the threshold again.
            Off by default, which summarizes at most once per session.
        min_messages_to_summarize: Smallest batch worth summarizing.
    """

    max_tokens: int = 4000
    max_messages: int = 20
    summary_threshold: int = 2000
    include_system_messages: bool = False
    on_load_error: LoadErrorPolicy = LoadErrorPolicy.DEGRADE
    resummarize: bool = False
    min_messages_to_summarize: int = 4

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.max_messages < 1:
            raise ValueError("max_messages must be >= 1")
        if self.summary_threshold < 1:
            raise ValueError("summary_threshold must be >= 1")
        self.on_load_error = LoadErrorPolicy(self.on_load_error)


@dataclass
class ContextEntry:
    role: str
    content: str
    token_count: int
    message_id: str | None = None  # None for the synthetic summary entry


@dataclass
class MemoryContext:
    """Trimmed history ready for a prompt, oldest first."""

    summary: str | None = None
    entries: list[ContextEntry] = field(default_factory=list)
    total_tokens: int = 0

    @property
    def messages(self) -> list[ContextEntry]:
        """Stored messages only, without the synthetic summary entry."""
        return [e for e in self.entries if e.message_id is not None]

    def as_chat_messages(self) -> list[dict[str, str]]:
        return [{"role": e.role, "content": e.content} for e in self.entries]


@dataclass
class MemoryStats:
    session_id: str
    total_messages: int
    active_messages: int
    total_tokens: int
    has_summary: bool
    last_active_at: str | None


def estimate_tokens(text: str) -> int:
    """Approximate token count for conversational text: ceil(chars / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class MemoryManager:
    """Persist conversation turns and serve budget-trimmed history.

    Writes for one session (append, summarize, clear) are serialized by a
    per-session lock; the session counters are additionally updated with
    in-place SQL increments. Locks are held weakly, so a session's lock
    is dropped once no call is using it.

    Args:
        repo: Open Repository instance.
        config: Memory limits and policies.
    """

    def __init__(self, repo: Repository, config: MemoryConfig | None = None) -> None:
        self._repo = repo
        self.config = config or MemoryConfig()
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start_session(self, session_id: str | None = None) -> ConversationSession:
        return self._repo.create_session(session_id or str(uuid.uuid4()))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_context(self, session_id: str) -> MemoryContext:
        """Return the session's summary plus the newest messages that fit the budget.

        Store failures follow ``config.on_load_error``.
        """
        try:
            session = self._repo.get_session(session_id)
            if session is None:
                logger.warning("session %s not found while loading memory", session_id)
                return MemoryContext()

            recent = self._repo.list_recent_messages(session_id, self.config.max_messages)
            chronological = list(reversed(recent))
            if not self.config.include_system_messages:
                chronological = [m for m in chronological if m.role != "system"]

            context = self._trim_to_budget(chronological, session.summary)
            self._repo.touch_session(session_id)
        except Exception:
            if self.config.on_load_error is LoadErrorPolicy.RAISE:
                raise
            logger.warning(
                "failed to load memory for session %s; continuing without history",
                session_id,
                exc_info=True,
            )
            return MemoryContext()

        logger.debug(
            "loaded %d messages (%d tokens) for session %s",
            len(context.messages), context.total_tokens, session_id,
        )
        return context

    def _trim_to_budget(
        self, messages: list[ConversationMessage], summary: str | None
    ) -> MemoryContext:
        budget = self.config.max_tokens
        leading: list[ContextEntry] = []
        total = 0

        if summary:
            # A summary larger than the whole budget is cut to fit.
            content = (SUMMARY_PREFIX + summary)[: budget * CHARS_PER_TOKEN]
            tokens = estimate_tokens(content)
            leading.append(ContextEntry(role="system", content=content, token_count=tokens))
            total += tokens

        kept: list[ContextEntry] = []
        for message in reversed(messages):
            tokens = estimate_tokens(message.content)
            if total + tokens > budget:
                break
            kept.append(
                ContextEntry(
                    role=message.role,
                    content=message.content,
                    token_count=tokens,
                    message_id=message.id,
                )
            )
            total += tokens

        kept.reverse()
        return MemoryContext(summary=summary, entries=leading + kept, total_tokens=total)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append_turn(
        self, session_id: str, user_text: str, assistant_text: str
    ) -> tuple[ConversationMessage, ConversationMessage]:
        """Persist a user/assistant exchange and run the summarization check.

        The session is created on its first turn. Store errors propagate.
        """
        user_msg = ConversationMessage(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role="user",
            content=user_text,
            token_count=estimate_tokens(user_text),
        )
        assistant_msg = ConversationMessage(
            id=str(uuid.uuid4()),
            session_id=session_id,
            role="assistant",
            content=assistant_text,
            token_count=estimate_tokens(assistant_text),
        )

        with self._lock_for(session_id):
            self._repo.create_session(session_id)
            self._repo.append_messages(session_id, [user_msg, assistant_msg])
            logger.debug(
                "saved turn for session %s (%d + %d tokens)",
                session_id, user_msg.token_count, assistant_msg.token_count,
            )
            self.maybe_summarize(session_id)

        return user_msg, assistant_msg

    def maybe_summarize(self, session_id: str) -> bool:
        """Summarize and evict the oldest half of the active messages if due.

        Best-effort: failures are logged and swallowed.

        Returns:
            True if a summary was written.
        """
        cfg = self.config
        with self._lock_for(session_id):
            try:
                session = self._repo.get_session(session_id)
                if session is None:
                    return False

                included = self._repo.list_included_messages(session_id)
                if session.summary is None:
                    if session.total_tokens <= cfg.summary_threshold:
                        return False
                elif not cfg.resummarize:
                    return False
                elif sum(m.token_count for m in included) <= cfg.summary_threshold:
                    return False

                oldest_half = included[: len(included) // 2]
                if len(oldest_half) < cfg.min_messages_to_summarize:
                    return False

                summary = summarize_messages(oldest_half, previous_summary=session.summary)
                self._repo.store_summary(session_id, summary, [m.id for m in oldest_half])
            except Exception:
                logger.warning(
                    "summarization failed for session %s", session_id, exc_info=True
                )
                return False

        logger.info(
            "summarized %d messages for session %s (%d chars)",
            len(oldest_half), session_id, len(summary),
        )
        return True

    def clear(self, session_id: str) -> None:
        """Logically reset the session: evict all messages, drop the summary,
        zero total_tokens. Errors propagate.
        """
        with self._lock_for(session_id):
            if self._repo.get_session(session_id) is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            self._repo.clear_session(session_id)
        logger.info("cleared memory for session %s", session_id)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self, session_id: str) -> MemoryStats:
        session = self._repo.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return MemoryStats(
            session_id=session_id,
            total_messages=self._repo.count_messages(session_id),
            active_messages=self._repo.count_messages(session_id, included_only=True),
            total_tokens=session.total_tokens,
            has_summary=session.summary is not None,
            last_active_at=session.last_active_at,
        )
