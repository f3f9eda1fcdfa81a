"""CodeMind ingest pipeline: chunking, embedding writer, repository indexer."""

from codemind.ingest.base import BaseChunker, ChunkingPolicy, ChunkingResult, estimate_tokens
from codemind.ingest.code_chunker import CodeChunker, chunk_file, chunk_files
from codemind.ingest.languages import detect_language

__all__ = [
    "BaseChunker",
    "ChunkingPolicy",
    "ChunkingResult",
    "CodeChunker",
    "chunk_file",
    "chunk_files",
    "detect_language",
    "estimate_tokens",
]
