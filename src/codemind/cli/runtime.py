"""Shared CLI plumbing: config loading, log output, database and component wiring."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from codemind.cli.errors import err_config
from codemind.config import CodemindConfig, ConfigError, load_config
from codemind.db.connection import Database
from codemind.db.repository import Repository
from codemind.ingest.base import ChunkingPolicy
from codemind.ingest.embedding_writer import EmbeddingConfig, EmbeddingWriter
from codemind.rag.assembler import AssemblerConfig
from codemind.rag.memory import MemoryConfig, MemoryManager
from codemind.rag.pipeline import GenerationConfig, QuestionAnswerer
from codemind.rag.retriever import PassageRetriever

console = Console()

DEFAULT_DB = Path(".codemind.db")


def configure_logging(level: str) -> None:
    """Route ``codemind.*`` log records to stderr through a RichHandler."""
    package_logger = logging.getLogger("codemind")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())


def load_cli_config() -> CodemindConfig:
    """Load the layered config and set up logging, exiting 1 on a bad config."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    configure_logging(cfg.logging.level)
    return cfg


def open_db(db_path: Path) -> Database:
    """Construct the store handle and apply migrations. Caller closes it."""
    db = Database(db_path)
    db.open()
    return db


# ------------------------------------------------------------------
# Component wiring
# ------------------------------------------------------------------


def make_retriever(repo: Repository, cfg: CodemindConfig) -> PassageRetriever:
    return PassageRetriever(
        repo,
        dimensions=cfg.embedding.dimensions,
        batch_size=cfg.retrieval.insert_batch_size,
    )


def make_writer(retriever: PassageRetriever, cfg: CodemindConfig) -> EmbeddingWriter:
    return EmbeddingWriter(
        retriever,
        EmbeddingConfig(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
        ),
    )


def make_policy(cfg: CodemindConfig) -> ChunkingPolicy:
    c = cfg.chunking
    return ChunkingPolicy(
        max_lines=c.max_lines,
        max_tokens=c.max_tokens,
        overlap_lines=c.overlap_lines,
        preserve_boundaries=c.preserve_boundaries,
        min_chunk_size=c.min_chunk_size,
    )


def make_memory(repo: Repository, cfg: CodemindConfig) -> MemoryManager:
    m = cfg.memory
    return MemoryManager(
        repo,
        MemoryConfig(
            max_tokens=m.max_tokens,
            max_messages=m.max_messages,
            summary_threshold=m.summary_threshold,
            include_system_messages=m.include_system_messages,
            on_load_error=m.on_load_error,
            resummarize=m.resummarize,
        ),
    )


def make_answerer(repo: Repository, cfg: CodemindConfig, project_id: str) -> QuestionAnswerer:
    retriever = make_retriever(repo, cfg)
    return QuestionAnswerer(
        retriever,
        make_writer(retriever, cfg),
        make_memory(repo, cfg),
        generation=GenerationConfig(
            model=cfg.generation.model,
            max_tokens=cfg.generation.max_tokens,
            temperature=cfg.generation.temperature,
        ),
        assembler=AssemblerConfig(
            token_budget=cfg.retrieval.context_token_budget,
            project_name=project_id,
        ),
    )
