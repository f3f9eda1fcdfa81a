"""Tests for the codemind config loader."""

from __future__ import annotations

import os
import stat
import warnings
from pathlib import Path

import pytest
import yaml

from codemind.config import (
    CodemindConfig,
    ConfigError,
    ensure_global_config,
    load_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("CODEMIND_GENERATION_MODEL", "CODEMIND_EMBEDDING_MODEL", "CODEMIND_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def no_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


def _load(project_dir: Path, global_path: Path) -> CodemindConfig:
    return load_config(project_dir=project_dir, global_config_path=global_path)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_defaults_without_files(tmp_path: Path, no_global: Path) -> None:
    cfg = _load(tmp_path, no_global)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.generation.model == "openai/gpt-4o-mini"
    assert cfg.chunking.max_lines == 200
    assert cfg.chunking.overlap_lines == 20
    assert cfg.retrieval.top_k == 8
    assert cfg.retrieval.min_similarity == pytest.approx(0.1)
    assert cfg.memory.max_tokens == 4000
    assert cfg.memory.summary_threshold == 2000
    assert cfg.memory.on_load_error == "degrade"
    assert cfg.memory.resummarize is False
    assert cfg.logging.level == "WARNING"


def test_empty_project_file_gives_defaults(tmp_path: Path, no_global: Path) -> None:
    (tmp_path / "codemind.yaml").write_text("", encoding="utf-8")
    assert _load(tmp_path, no_global) == CodemindConfig()


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "home" / "config.yaml"
    _write_yaml(global_path, {"generation": {"model": "anthropic/claude-x", "max_tokens": 500}})
    _write_yaml(tmp_path / "codemind.yaml", {"generation": {"model": "openai/gpt-4o"}})

    cfg = _load(tmp_path, global_path)
    assert cfg.generation.model == "openai/gpt-4o"
    assert cfg.generation.max_tokens == 500


def test_project_file_sections(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(
        tmp_path / "codemind.yaml",
        {
            "embedding": {"dimensions": 3, "batch_size": 8},
            "chunking": {"max_lines": 50, "overlap_lines": 5, "preserve_boundaries": False},
            "retrieval": {"top_k": 4, "min_similarity": 0.3},
            "memory": {"on_load_error": "RAISE", "resummarize": True},
            "logging": {"level": "debug"},
        },
    )
    cfg = _load(tmp_path, no_global)

    assert cfg.embedding.dimensions == 3
    assert cfg.embedding.batch_size == 8
    assert cfg.chunking.max_lines == 50
    assert cfg.chunking.preserve_boundaries is False
    assert cfg.retrieval.top_k == 4
    assert cfg.retrieval.min_similarity == pytest.approx(0.3)
    assert cfg.memory.on_load_error == "raise"
    assert cfg.memory.resummarize is True
    assert cfg.logging.level == "DEBUG"


def test_env_overrides_files(tmp_path: Path, no_global: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "codemind.yaml", {"generation": {"model": "openai/gpt-4o"}})
    monkeypatch.setenv("CODEMIND_GENERATION_MODEL", "ollama/llama3")
    monkeypatch.setenv("CODEMIND_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    monkeypatch.setenv("CODEMIND_LOG_LEVEL", "info")

    cfg = _load(tmp_path, no_global)
    assert cfg.generation.model == "ollama/llama3"
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.logging.level == "INFO"


def test_env_log_level_invalid(tmp_path: Path, no_global: Path, monkeypatch) -> None:
    monkeypatch.setenv("CODEMIND_LOG_LEVEL", "chatty")
    with pytest.raises(ConfigError, match="logging.level"):
        _load(tmp_path, no_global)


# ---------------------------------------------------------------------------
# API key guard
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "data",
    [
        {"generation": {"api_key": "sk-123"}},
        {"openai_api_key": "sk-123"},
        {"embedding": {"github_token": "x"}},
        {"generation": {"password": "x"}},
    ],
)
def test_global_config_api_key_rejected(tmp_path: Path, data: dict) -> None:
    global_path = tmp_path / "home" / "config.yaml"
    _write_yaml(global_path, data)
    with pytest.raises(ConfigError, match="environment variables"):
        _load(tmp_path, global_path)


def test_token_sizing_keys_are_not_secrets(tmp_path: Path) -> None:
    global_path = tmp_path / "home" / "config.yaml"
    _write_yaml(
        global_path,
        {"generation": {"max_tokens": 700}, "retrieval": {"context_token_budget": 3000}},
    )
    cfg = _load(tmp_path, global_path)
    assert cfg.generation.max_tokens == 700
    assert cfg.retrieval.context_token_budget == 3000


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_unknown_section_warns(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / "codemind.yaml", {"retreival": {"top_k": 3}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = _load(tmp_path, no_global)
    assert any("retreival" in str(w.message) for w in caught)
    assert cfg.retrieval.top_k == 8


@pytest.mark.parametrize(
    "data, match",
    [
        ({"retrieval": {"top_k": 0}}, "retrieval.top_k"),
        ({"retrieval": {"top_k": "many"}}, "retrieval.top_k"),
        ({"embedding": {"dimensions": True}}, "embedding.dimensions"),
        ({"retrieval": {"min_similarity": "high"}}, "retrieval.min_similarity"),
        ({"chunking": {"preserve_boundaries": "yes please"}}, "chunking.preserve_boundaries"),
        ({"chunking": {"max_lines": 10, "overlap_lines": 10}}, "overlap_lines"),
        ({"memory": {"on_load_error": "ignore"}}, "on_load_error"),
        ({"logging": {"level": "loud"}}, "logging.level"),
        ({"memory": ["max_tokens", 5]}, "memory"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, no_global: Path, data: dict, match: str) -> None:
    _write_yaml(tmp_path / "codemind.yaml", data)
    with pytest.raises(ConfigError, match=match):
        _load(tmp_path, no_global)


def test_non_mapping_file_raises(tmp_path: Path, no_global: Path) -> None:
    (tmp_path / "codemind.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        _load(tmp_path, no_global)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / ".codemind" / "config.yaml"
    result = ensure_global_config(target)

    assert result == target
    assert target.exists()
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["model"] == "openai/text-embedding-3-small"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_ensure_global_config_permissions(tmp_path: Path) -> None:
    target = tmp_path / ".codemind" / "config.yaml"
    ensure_global_config(target)
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    assert stat.S_IMODE(target.parent.stat().st_mode) == 0o700


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / ".codemind" / "config.yaml"
    _write_yaml(target, {"generation": {"model": "mine"}})
    ensure_global_config(target)
    assert yaml.safe_load(target.read_text(encoding="utf-8")) == {"generation": {"model": "mine"}}


def test_generated_global_config_loads_cleanly(tmp_path: Path) -> None:
    target = ensure_global_config(tmp_path / ".codemind" / "config.yaml")
    cfg = _load(tmp_path, target)
    assert cfg.generation.model == "openai/gpt-4o-mini"
