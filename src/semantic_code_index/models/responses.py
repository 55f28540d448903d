"""API response models for MCP tool return types."""

from __future__ import annotations

from pydantic import BaseModel

from semantic_code_index.models.domain import CodeChunk, IndexRunResult, StoreStats


class IndexWorkspaceResponse(BaseModel):
    """Response from the index_workspace tool."""

    status: str
    files_found: int
    files_indexed: int
    files_skipped: int
    files_failed: int
    chunks_indexed: int
    duration_seconds: float
    error: str | None = None

    @classmethod
    def from_result(cls, result: IndexRunResult) -> IndexWorkspaceResponse:
        return cls(
            status=result.status.value,
            files_found=result.files_found,
            files_indexed=result.files_indexed,
            files_skipped=result.files_skipped,
            files_failed=result.files_failed,
            chunks_indexed=result.chunks_indexed,
            duration_seconds=round(result.duration_seconds, 2),
            error=result.error,
        )


class IndexStatusResponse(BaseModel):
    """Response from the index_status tool."""

    is_indexed: bool
    last_committed: str | None
    files_count: int
    chunks_count: int
    projects_count: int
    indexing_in_progress: bool
    watching: bool
    pending_updates: int
    pending_deletes: int

    @classmethod
    def from_stats(
        cls,
        stats: StoreStats,
        *,
        indexing_in_progress: bool,
        watching: bool,
        pending_updates: int,
        pending_deletes: int,
    ) -> IndexStatusResponse:
        return cls(
            is_indexed=not stats.is_empty,
            last_committed=stats.last_committed.isoformat() if stats.last_committed else None,
            files_count=stats.total_files,
            chunks_count=stats.total_chunks,
            projects_count=stats.total_projects,
            indexing_in_progress=indexing_in_progress,
            watching=watching,
            pending_updates=pending_updates,
            pending_deletes=pending_deletes,
        )


class FormattedChunk(BaseModel):
    """A retrieved chunk formatted for response."""

    file_path: str
    project_name: str
    line_start: int
    line_end: int
    name: str
    chunk_type: str
    content: str
    truncated: bool = False

    @classmethod
    def from_domain(cls, chunk: CodeChunk, max_lines: int = 50) -> FormattedChunk:
        content = chunk.content
        lines = content.split("\n")
        truncated = len(lines) > max_lines
        if truncated:
            content = "\n".join(lines[:max_lines]) + "\n... (truncated)"

        return cls(
            file_path=chunk.file_path,
            project_name=chunk.project_name,
            line_start=chunk.line_start,
            line_end=chunk.line_end,
            name=chunk.name,
            chunk_type=chunk.chunk_type.value,
            content=content,
            truncated=truncated,
        )


class SearchResponse(BaseModel):
    """Nearest chunks for a query, in store order."""

    results: list[FormattedChunk]


class WatchResponse(BaseModel):
    """Response from start_watching / stop_watching / flush_pending."""

    watching: bool
    pending_updates: int
    pending_deletes: int


class ErrorResponse(BaseModel):
    """Error response for tool failures."""

    error: str
