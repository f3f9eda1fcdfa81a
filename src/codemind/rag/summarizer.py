"""Extractive conversation summarizer.

Produces a short, deterministic summary of older turns without calling a
model: the most frequent content words of the user's messages plus the
opening sentence of a few longer questions.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

from codemind.db.models import ConversationMessage

MAX_SUMMARY_CHARS = 500
MAX_TOPICS = 5
MAX_KEY_POINTS = 3

_MIN_WORD_LEN = 5
_KEY_POINT_MIN_MESSAGE = 50
_KEY_POINT_MAX_SENTENCE = 100

_WORD_RE = re.compile(r"[a-z][a-z0-9_]*")
_STOP_WORDS = frozenset(
    [
        "about", "after", "again", "also", "because", "before", "being",
        "below", "between", "could", "doesn", "every", "find", "first",
        "there", "their", "these", "thing", "things", "those", "through",
        "under", "where", "which", "while", "would", "should", "other",
        "please", "still", "think", "using", "what", "when", "whose",
    ]
)


def summarize_messages(
    messages: Sequence[ConversationMessage], previous_summary: str | None = None
) -> str:
    """Summarize *messages*, optionally folding in an earlier summary.

    Returns:
        A string of at most MAX_SUMMARY_CHARS characters.
    """
    user_texts = [m.content for m in messages if m.role == "user"]

    counts: Counter[str] = Counter()
    for text in user_texts:
        counts.update(
            w for w in _WORD_RE.findall(text.lower())
            if len(w) >= _MIN_WORD_LEN and w not in _STOP_WORDS
        )
    topics = [w for w, _ in counts.most_common(MAX_TOPICS)]

    key_points: list[str] = []
    for text in user_texts:
        if len(key_points) == MAX_KEY_POINTS:
            break
        if len(text) <= _KEY_POINT_MIN_MESSAGE:
            continue
        sentence = text.split(".")[0].strip() + "."
        if len(sentence) < _KEY_POINT_MAX_SENTENCE:
            key_points.append(f"User asked: {sentence}")

    parts: list[str] = []
    if previous_summary:
        parts.append(previous_summary.strip())
    if topics:
        parts.append(f"Conversation covered topics: {', '.join(topics)}.")
    parts.extend(key_points)
    if not parts:
        parts.append(f"Conversation of {len(messages)} messages.")

    return " ".join(parts)[:MAX_SUMMARY_CHARS]
