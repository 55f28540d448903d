"""Protocols for dependency injection."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

from semantic_code_index.models import (
    ChangeEvent,
    CodeChunk,
    EmbeddingResult,
    SourceFile,
    StoreStats,
)

# Matches MCP's ctx.report_progress(progress, total, message) signature
ProgressCallback = Callable[[float, float, str], Awaitable[None]]


class ChunkerProtocol(Protocol):
    """Interface for a language-specific chunker."""

    id: str
    name: str
    language: str
    priority: int
    max_chunk_tokens: int
    chunk_overlap: int

    def can_handle(self, file: SourceFile) -> bool:
        """Whether this chunker accepts the file. Must not touch the file system."""
        ...

    def chunk(self, file: SourceFile, content: str, project_name: str) -> list[CodeChunk]:
        """Split file content into chunks. Raises ChunkingError on unparseable input."""
        ...


class EmbedderProtocol(Protocol):
    """Interface for embedding generation."""

    def is_configured(self) -> bool:
        """Whether the provider can serve requests."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """One result per input, same order."""
        ...

    def cancel(self) -> None:
        """Abort in-flight batch calls promptly."""
        ...


class VectorStoreProtocol(Protocol):
    """Interface for vector storage."""

    def initialize(self) -> None:
        """Open storage. Raises IndexStoreError when unusable."""
        ...

    def upsert_chunks(self, chunks: list[CodeChunk], embeddings: list[list[float]]) -> None:
        """Insert or replace chunks by id. Parallel lists of equal length."""
        ...

    def delete_by_file(self, file_path: str) -> None:
        """Delete all chunks for a specific file."""
        ...

    def commit(self) -> None:
        """Make pending writes durable and visible."""
        ...

    def optimize(self) -> None:
        """Compact storage."""
        ...

    def search(self, query_embedding: list[float], limit: int) -> list[CodeChunk]:
        """Nearest chunks to a vector."""
        ...

    def stats(self) -> StoreStats:
        """Committed index statistics."""
        ...


class FileIndexerProtocol(Protocol):
    """Single-file routine shared by the batch and incremental paths."""

    async def index_file(self, file: SourceFile) -> int:
        """Delete, re-chunk, embed, upsert, and commit one file. Returns chunk count."""
        ...

    async def remove_file(self, file_path: str) -> None:
        """Delete one file from the index and commit."""
        ...


class ChangeSource(Protocol):
    """Async stream of change-event batches."""

    def __aiter__(self) -> AsyncIterator[list[ChangeEvent]]: ...

    def close(self) -> None:
        """Stop producing events."""
        ...
