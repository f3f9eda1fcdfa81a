"""CodeMind configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CODEMIND_EMBEDDING_MODEL, CODEMIND_GENERATION_MODEL,
                             CODEMIND_LOG_LEVEL)
  3. Per-project codemind.yaml  (in the working directory)
  4. Global ~/.codemind/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".codemind"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "codemind.yaml"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or token_budget.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "chunking", "retrieval", "memory", "logging"]
)

_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
_LOAD_ERROR_POLICIES: frozenset[str] = frozenset(["degrade", "raise"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (codemind.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 64


@dataclass
class GenerationCfg:
    """Answer generation configuration (codemind.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.2


@dataclass
class ChunkingCfg:
    """Chunking limits (codemind.yaml: chunking:)."""

    max_lines: int = 200
    max_tokens: int = 1000
    overlap_lines: int = 20
    preserve_boundaries: bool = True
    min_chunk_size: int = 10


@dataclass
class RetrievalCfg:
    """Retrieval configuration (codemind.yaml: retrieval:)."""

    top_k: int = 8
    min_similarity: float = 0.1
    insert_batch_size: int = 100
    context_token_budget: int = 6_000


@dataclass
class MemoryCfg:
    """Conversation memory configuration (codemind.yaml: memory:)."""

    max_tokens: int = 4000
    max_messages: int = 20
    summary_threshold: int = 2000
    include_system_messages: bool = False
    on_load_error: str = "degrade"  # degrade | raise
    resummarize: bool = False


@dataclass
class LoggingCfg:
    """Log output configuration (codemind.yaml: logging:)."""

    level: str = "WARNING"


@dataclass
class CodemindConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    memory: MemoryCfg = field(default_factory=MemoryCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    return raw


def _int(raw: dict[str, Any], key: str, default: int, section: str, minimum: int = 0) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}.")
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}.") from None
    if result < minimum:
        raise ConfigError(f"{section}.{key} must be >= {minimum}, got {result}.")
    return result


def _float(raw: dict[str, Any], key: str, default: float, section: str) -> float:
    value = raw.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}.") from None


def _bool(raw: dict[str, Any], key: str, default: bool, section: str) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be true or false, got {value!r}.")
    return value


def _log_level(value: Any) -> str:
    level = str(value).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, got {value!r}."
        )
    return level


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> CodemindConfig:
    """Build a *CodemindConfig* from a merged raw YAML dict."""
    cfg = CodemindConfig()

    e = _section(data, "embedding")
    cfg.embedding = EmbeddingCfg(
        model=str(e.get("model", cfg.embedding.model)),
        dimensions=_int(e, "dimensions", cfg.embedding.dimensions, "embedding", minimum=1),
        batch_size=_int(e, "batch_size", cfg.embedding.batch_size, "embedding", minimum=1),
    )

    g = _section(data, "generation")
    cfg.generation = GenerationCfg(
        model=str(g.get("model", cfg.generation.model)),
        max_tokens=_int(g, "max_tokens", cfg.generation.max_tokens, "generation", minimum=1),
        temperature=_float(g, "temperature", cfg.generation.temperature, "generation"),
    )

    c = _section(data, "chunking")
    cfg.chunking = ChunkingCfg(
        max_lines=_int(c, "max_lines", cfg.chunking.max_lines, "chunking", minimum=1),
        max_tokens=_int(c, "max_tokens", cfg.chunking.max_tokens, "chunking", minimum=1),
        overlap_lines=_int(c, "overlap_lines", cfg.chunking.overlap_lines, "chunking"),
        preserve_boundaries=_bool(
            c, "preserve_boundaries", cfg.chunking.preserve_boundaries, "chunking"
        ),
        min_chunk_size=_int(c, "min_chunk_size", cfg.chunking.min_chunk_size, "chunking"),
    )
    if cfg.chunking.overlap_lines >= cfg.chunking.max_lines:
        raise ConfigError("chunking.overlap_lines must be smaller than chunking.max_lines.")

    r = _section(data, "retrieval")
    cfg.retrieval = RetrievalCfg(
        top_k=_int(r, "top_k", cfg.retrieval.top_k, "retrieval", minimum=1),
        min_similarity=_float(r, "min_similarity", cfg.retrieval.min_similarity, "retrieval"),
        insert_batch_size=_int(
            r, "insert_batch_size", cfg.retrieval.insert_batch_size, "retrieval", minimum=1
        ),
        context_token_budget=_int(
            r, "context_token_budget", cfg.retrieval.context_token_budget, "retrieval", minimum=1
        ),
    )

    m = _section(data, "memory")
    on_load_error = str(m.get("on_load_error", cfg.memory.on_load_error)).lower()
    if on_load_error not in _LOAD_ERROR_POLICIES:
        raise ConfigError(f"memory.on_load_error must be 'degrade' or 'raise', got {on_load_error!r}.")
    cfg.memory = MemoryCfg(
        max_tokens=_int(m, "max_tokens", cfg.memory.max_tokens, "memory", minimum=1),
        max_messages=_int(m, "max_messages", cfg.memory.max_messages, "memory", minimum=1),
        summary_threshold=_int(
            m, "summary_threshold", cfg.memory.summary_threshold, "memory", minimum=1
        ),
        include_system_messages=_bool(
            m, "include_system_messages", cfg.memory.include_system_messages, "memory"
        ),
        on_load_error=on_load_error,
        resummarize=_bool(m, "resummarize", cfg.memory.resummarize, "memory"),
    )

    lg = _section(data, "logging")
    cfg.logging = LoggingCfg(level=_log_level(lg.get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: CodemindConfig) -> CodemindConfig:
    """Apply CODEMIND_* environment variable overrides."""
    if model := os.environ.get("CODEMIND_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("CODEMIND_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("CODEMIND_LOG_LEVEL"):
        cfg.logging.level = _log_level(level)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CodemindConfig:
    """Load and return a merged *CodemindConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *codemind.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value has the wrong type or is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.codemind/config.yaml`` with defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# CodeMind global configuration. Model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
