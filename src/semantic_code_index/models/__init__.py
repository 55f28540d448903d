"""Domain models and API response types."""

from semantic_code_index.models.domain import (
    ChangeEvent,
    ChangeKind,
    ChunkType,
    CodeChunk,
    EmbeddingResult,
    IndexRunResult,
    IndexRunStatus,
    SourceFile,
    StoreStats,
)
from semantic_code_index.models.responses import (
    ErrorResponse,
    FormattedChunk,
    IndexStatusResponse,
    IndexWorkspaceResponse,
    SearchResponse,
    WatchResponse,
)

__all__ = [
    # Domain
    "ChangeEvent",
    "ChangeKind",
    "ChunkType",
    "CodeChunk",
    "EmbeddingResult",
    # Responses
    "ErrorResponse",
    "FormattedChunk",
    "IndexRunResult",
    "IndexRunStatus",
    "IndexStatusResponse",
    "IndexWorkspaceResponse",
    "SearchResponse",
    "SourceFile",
    "StoreStats",
    "WatchResponse",
]
