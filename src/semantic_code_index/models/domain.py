"""Domain models for chunks, embeddings, change events, and index runs."""

from datetime import datetime
from enum import StrEnum, auto
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, computed_field, field_validator, model_validator


class ChunkType(StrEnum):
    """Type of code chunk."""

    function = auto()
    klass = "class"
    method = auto()
    module = auto()
    section = auto()
    block = auto()


class CodeChunk(BaseModel):
    """An immutable chunk of a source file, the unit of embedding and retrieval."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    project_name: str
    line_start: int
    line_end: int
    content: str
    chunk_type: ChunkType
    name: str
    language: str = ""

    @field_validator("line_start")
    @classmethod
    def line_start_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("line_start must be >= 1")
        return v

    @model_validator(mode="after")
    def line_end_gte_line_start(self) -> Self:
        if self.line_end < self.line_start:
            raise ValueError("line_end must be >= line_start")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        """Stable identity: file path plus line range."""
        return f"{self.file_path}:{self.line_start}-{self.line_end}"


class EmbeddingResult(BaseModel):
    """A vector computed for the input at ``index`` of an embedding batch."""

    index: int
    embedding: list[float]
    tokens_used: int = 0

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class SourceFile(BaseModel):
    """A workspace file: absolute path plus the project that owns it."""

    model_config = ConfigDict(frozen=True)

    path: Path
    project_name: str

    @property
    def key(self) -> str:
        """Path string used as the file identity in the index."""
        return str(self.path)

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    def size_bytes(self) -> int:
        return self.path.stat().st_size

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.path.read_text(encoding=encoding)


class ChangeKind(StrEnum):
    """Kind of file-system change notification."""

    ADDED = auto()
    CHANGED = auto()
    REMOVED = auto()


class ChangeEvent(BaseModel):
    """A single file change delivered by a change source."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    path: Path


class IndexRunStatus(StrEnum):
    """Terminal status of a full index run."""

    SUCCESS = auto()
    CANCELLED = auto()
    FAILED = auto()


class IndexRunResult(BaseModel):
    """Result of a full index run."""

    status: IndexRunStatus
    files_found: int = 0
    files_indexed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    chunks_indexed: int = 0
    chunks_truncated: int = 0
    duration_seconds: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True for every non-error terminal state, cancellation included."""
        return self.status != IndexRunStatus.FAILED


class StoreStats(BaseModel):
    """Statistics about the committed contents of the vector store."""

    total_chunks: int
    total_files: int
    total_projects: int
    last_committed: datetime | None
    embedding_dimension: int
    embedding_model: str

    @property
    def is_empty(self) -> bool:
        return self.total_chunks == 0
