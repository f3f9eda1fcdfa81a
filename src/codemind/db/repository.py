"""Repository pattern for all CodeMind database operations.

Single interface for: embedded passages (vector search + aggregates),
conversation sessions, and conversation messages.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Sequence

from codemind.db.models import (
    ConversationMessage,
    ConversationSession,
    EmbeddingRecord,
    Passage,
    ProjectStats,
    RetrievedPassage,
)
from codemind.db.vectors import to_blob

_LIKE_ESCAPE = "\\"

# sqlite-vec computes cosine distance in float32; an exact match can score
# 0.99999994.
_SIMILARITY_TOLERANCE = 1e-6


class Repository:
    """Data access layer for all CodeMind database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    (see codemind.db.connection.Database) and must be closed after use.
    Multi-statement writes run inside ``with self._conn:`` so they commit or
    roll back as one unit.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see codemind.db.schema.initialize).
        """
        self._conn = conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Passages
    # ------------------------------------------------------------------

    def upsert_passages(self, records: Sequence[EmbeddingRecord]) -> int:
        """Insert or replace a batch of embedded passages in one transaction.

        Rows are keyed by the deterministic passage id, so writing the same
        passage twice leaves one row.

        Returns:
            Number of records written.
        """
        rows = [
            (
                r.id,
                r.project_id,
                r.passage.path,
                r.passage.content,
                r.passage.start_line,
                r.passage.end_line,
                r.passage.language,
                r.passage.token_count,
                r.passage.content_hash,
                to_blob(r.embedding),
            )
            for r in records
        ]
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO passages
                    (id, project_id, path, content, start_line, end_line,
                     language, token_count, content_hash, embedding)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    language = excluded.language,
                    token_count = excluded.token_count,
                    embedding = excluded.embedding
                """,
                rows,
            )
        return len(rows)

    def query_passages_by_vector(
        self,
        project_id: str,
        vector: Sequence[float],
        *,
        min_similarity: float = 0.0,
        languages: Sequence[str] | None = None,
        path_prefixes: Sequence[str] | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[RetrievedPassage]:
        """Rank a project's passages by cosine similarity to *vector*.

        similarity = 1 - vec_distance_cosine(embedding, vector). Ties are
        broken by (path, start_line, id) so offsets page deterministically.
        The *min_similarity* floor allows _SIMILARITY_TOLERANCE of float32
        rounding, so an exact match passes a floor of 1.0.

        Raises:
            sqlite3.OperationalError: If stored and query vectors differ in
                dimension (raised by sqlite-vec).
        """
        conditions = ["project_id = ?"]
        params: list[object] = [to_blob(vector), project_id]

        if languages:
            conditions.append(f"language IN ({','.join('?' * len(languages))})")
            params.extend(languages)

        if path_prefixes:
            conditions.append(
                "(" + " OR ".join(f"path LIKE ? ESCAPE '{_LIKE_ESCAPE}'" for _ in path_prefixes) + ")"
            )
            params.extend(_like_prefix(p) for p in path_prefixes)

        params.extend([min_similarity - _SIMILARITY_TOLERANCE, limit, offset])

        sql = f"""
            SELECT id, project_id, path, content, start_line, end_line,
                   language, token_count, similarity
            FROM (
                SELECT id, project_id, path, content, start_line, end_line,
                       language, token_count,
                       1.0 - vec_distance_cosine(embedding, ?) AS similarity
                FROM passages
                WHERE {' AND '.join(conditions)}
            )
            WHERE similarity >= ?
            ORDER BY similarity DESC, path, start_line, id
            LIMIT ? OFFSET ?
        """  # noqa: S608
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_retrieved(r) for r in rows]

    def aggregate_passages(self, project_id: str) -> ProjectStats:
        """Return passage count, summed tokens and a per-language histogram."""
        total = self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(token_count), 0) FROM passages WHERE project_id = ?",
            (project_id,),
        ).fetchone()
        breakdown = {
            r["language"]: r["n"]
            for r in self._conn.execute(
                """
                SELECT language, COUNT(*) AS n FROM passages
                WHERE project_id = ? GROUP BY language ORDER BY language
                """,
                (project_id,),
            ).fetchall()
        }
        return ProjectStats(
            total_chunks=total[0],
            total_tokens=total[1],
            language_breakdown=breakdown,
        )

    def count_passages(self, project_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM passages WHERE project_id = ?", (project_id,)
        ).fetchone()[0]

    def delete_all_passages(self, project_id: str) -> int:
        """Delete every passage of *project_id*. Returns the number of rows removed."""
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM passages WHERE project_id = ?", (project_id,)
            )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session_id: str | None = None) -> ConversationSession:
        """Create a session (no-op if it already exists) and return it."""
        session_id = session_id or str(uuid.uuid4())
        with self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO sessions (id) VALUES (?)", (session_id,)
            )
            session = self.get_session(session_id)
        if session is None:
            raise sqlite3.IntegrityError(f"Session {session_id!r} was not stored")
        return session

    def get_session(self, session_id: str) -> ConversationSession | None:
        row = self._conn.execute(
            """
            SELECT id, summary, total_tokens, message_count, last_active_at, created_at
            FROM sessions WHERE id = ?
            """,
            (session_id,),
        ).fetchone()
        return _row_to_session(row) if row else None

    def touch_session(self, session_id: str) -> None:
        """Set last_active_at to now."""
        with self._conn:
            self._conn.execute(
                "UPDATE sessions SET last_active_at = datetime('now') WHERE id = ?",
                (session_id,),
            )

    def set_summary(self, session_id: str, summary: str | None) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE sessions SET summary = ? WHERE id = ?", (summary, session_id)
            )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_messages(
        self, session_id: str, messages: Sequence[ConversationMessage]
    ) -> None:
        """Persist *messages* and bump the session counters atomically.

        The counters use in-place SQL increments, so concurrent writers never
        overwrite each other's totals.
        """
        added_tokens = sum(m.token_count for m in messages)
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO messages
                    (id, session_id, role, content, token_count, included_in_memory)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (m.id, session_id, m.role, m.content, m.token_count, int(m.included_in_memory))
                    for m in messages
                ],
            )
            self._conn.execute(
                """
                UPDATE sessions SET
                    total_tokens = total_tokens + ?,
                    message_count = message_count + ?,
                    last_active_at = datetime('now')
                WHERE id = ?
                """,
                (added_tokens, len(messages), session_id),
            )

    def list_recent_messages(
        self, session_id: str, limit: int, *, included_only: bool = True
    ) -> list[ConversationMessage]:
        """Return up to *limit* most recent messages, newest first."""
        where = "session_id = ?"
        if included_only:
            where += " AND included_in_memory = 1"
        rows = self._conn.execute(
            f"""
            SELECT id, session_id, role, content, token_count, included_in_memory, created_at
            FROM messages WHERE {where}
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,  # noqa: S608
            (session_id, limit),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def list_included_messages(self, session_id: str) -> list[ConversationMessage]:
        """Return all messages still flagged in memory, oldest first."""
        rows = self._conn.execute(
            """
            SELECT id, session_id, role, content, token_count, included_in_memory, created_at
            FROM messages WHERE session_id = ? AND included_in_memory = 1
            ORDER BY created_at, rowid
            """,
            (session_id,),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def count_messages(self, session_id: str, *, included_only: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM messages WHERE session_id = ?"
        if included_only:
            sql += " AND included_in_memory = 1"
        return self._conn.execute(sql, (session_id,)).fetchone()[0]

    def set_inclusion(self, message_ids: Sequence[str], included: bool) -> None:
        """Flip the in-memory flag on the given messages."""
        if not message_ids:
            return
        placeholders = ",".join("?" * len(message_ids))
        with self._conn:
            self._conn.execute(
                f"UPDATE messages SET included_in_memory = ? WHERE id IN ({placeholders})",  # noqa: S608
                [int(included), *message_ids],
            )

    def store_summary(
        self, session_id: str, summary: str, summarized_ids: Sequence[str]
    ) -> None:
        """Write the session summary and evict the summarized messages together."""
        placeholders = ",".join("?" * len(summarized_ids))
        with self._conn:
            self._conn.execute(
                "UPDATE sessions SET summary = ? WHERE id = ?", (summary, session_id)
            )
            if summarized_ids:
                self._conn.execute(
                    f"""
                    UPDATE messages SET included_in_memory = 0
                    WHERE session_id = ? AND id IN ({placeholders})
                    """,  # noqa: S608
                    [session_id, *summarized_ids],
                )

    def clear_session(self, session_id: str) -> None:
        """Evict every message, drop the summary, and zero total_tokens.

        Messages are kept for audit; message_count is left untouched.
        """
        with self._conn:
            self._conn.execute(
                "UPDATE messages SET included_in_memory = 0 WHERE session_id = ?",
                (session_id,),
            )
            self._conn.execute(
                "UPDATE sessions SET summary = NULL, total_tokens = 0 WHERE id = ?",
                (session_id,),
            )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _like_prefix(prefix: str) -> str:
    escaped = (
        prefix.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )
    return escaped + "%"


def _row_to_retrieved(row: sqlite3.Row) -> RetrievedPassage:
    return RetrievedPassage(
        id=row["id"],
        project_id=row["project_id"],
        passage=Passage(
            path=row["path"],
            content=row["content"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            language=row["language"],
            token_count=row["token_count"],
        ),
        similarity=row["similarity"],
    )


def _row_to_session(row: sqlite3.Row) -> ConversationSession:
    return ConversationSession(
        id=row["id"],
        summary=row["summary"],
        total_tokens=row["total_tokens"],
        message_count=row["message_count"],
        last_active_at=row["last_active_at"],
        created_at=row["created_at"],
    )


def _row_to_message(row: sqlite3.Row) -> ConversationMessage:
    return ConversationMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        token_count=row["token_count"],
        included_in_memory=bool(row["included_in_memory"]),
        created_at=row["created_at"],
    )
