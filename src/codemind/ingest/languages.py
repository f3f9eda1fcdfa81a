"""File-extension language detection and per-language boundary patterns."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

DEFAULT_LANGUAGE = "text"

EXTENSION_LANGUAGES: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "cc": "cpp",
    "hpp": "cpp",
    "c": "c",
    "h": "c",
    "cs": "csharp",
    "php": "php",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "kt": "kotlin",
    "swift": "swift",
    "scala": "scala",
    "sh": "bash",
    "sql": "sql",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "md": "markdown",
}

_BRACE_CLOSERS = [
    re.compile(r"^\s*}\s*$"),
    re.compile(r"^\s*};\s*$"),
    re.compile(r"^\s*},?\s*$"),
    re.compile(r"^\s*}\)\s*$"),
]

# Matched against the stripped line. A brace pattern ends the passage after
# the matching line.
BOUNDARY_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "javascript": _BRACE_CLOSERS,
    "typescript": _BRACE_CLOSERS,
    "python": [
        re.compile(r"^\s*def\s+\w+"),
        re.compile(r"^\s*class\s+\w+"),
        re.compile(r"^\s*async\s+def\s+\w+"),
    ],
    "java": [
        re.compile(r"^\s*}\s*$"),
        re.compile(r"^\s*public\s+class"),
        re.compile(r"^\s*private\s+class"),
        re.compile(r"^\s*protected\s+class"),
    ],
    "cpp": [
        re.compile(r"^\s*}\s*$"),
        re.compile(r"^\s*};\s*$"),
        re.compile(r"^\s*namespace"),
        re.compile(r"^\s*class"),
    ],
    "c": [
        re.compile(r"^\s*}\s*$"),
        re.compile(r"^\s*};\s*$"),
        re.compile(r"^\s*struct"),
        re.compile(r"^\s*typedef"),
    ],
}

_FALLBACK_PATTERNS: list[re.Pattern[str]] = [re.compile(r"^\s*}\s*$")]


def detect_language(path: str) -> str:
    """Map *path*'s extension to a language name, defaulting to ``"text"``."""
    ext = PurePosixPath(path.replace("\\", "/")).suffix.lstrip(".").lower()
    return EXTENSION_LANGUAGES.get(ext, DEFAULT_LANGUAGE)


def boundary_patterns(language: str) -> list[re.Pattern[str]]:
    """Return the boundary patterns for *language* (closing brace if unknown)."""
    return BOUNDARY_PATTERNS.get(language, _FALLBACK_PATTERNS)


def is_boundary(line: str, patterns: list[re.Pattern[str]]) -> bool:
    stripped = line.strip()
    return any(p.search(stripped) for p in patterns)
