"""Configuration and settings."""

import hashlib
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SEMANTIC_CODE_INDEX_",
        env_file=".env",
        extra="ignore",
    )

    debug: bool = False

    # Project roots making up the workspace; empty means the current directory
    workspace_paths: list[Path] = Field(default_factory=list)

    # Embedding settings
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_device: str = "auto"
    embedding_dimension: int = Field(default=384, gt=0)
    embedding_batch_size: int = Field(default=32, gt=0)  # passed to model.encode
    embedding_timeout_seconds: float | None = 120.0

    # Storage settings
    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "semantic-code-index")
    local_index: bool = False
    write_buffer_rows: int = Field(default=1000, gt=0)

    # Batch indexing
    batch_size: int = Field(default=20, gt=0)
    max_chunks_per_file: int = Field(default=100, gt=0)
    max_file_size_bytes: int = Field(default=500_000, gt=0)
    file_encoding: str = "utf-8"

    # Incremental indexing
    debounce_seconds: float = Field(default=2.0, ge=0)
    event_queue_size: int = Field(default=1000, gt=0)
    stop_timeout_seconds: float = Field(default=5.0, ge=0)
    watch_debounce_ms: int = 50  # watchfiles' own grouping window, well under debounce_seconds

    # Chunking settings
    chunk_max_tokens: int = 512
    chunk_overlap_tokens: int = 50
    text_extensions: list[str] = Field(default_factory=lambda: [".txt", ".rst"])

    # Ignore patterns
    ignore_patterns: list[str] = Field(
        default_factory=lambda: [
            "node_modules/**",
            ".venv/**",
            "__pycache__/**",
            ".git/**",
            "*.pyc",
            ".pytest_cache/**",
            ".semantic-code/**",
        ]
    )
    use_gitignore: bool = True


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once per process from the environment."""
    return Settings()


def get_index_path(settings: Settings, workspace_root: Path) -> Path:
    """Get the index storage path for a workspace.

    Args:
        settings: Application settings.
        workspace_root: Path identifying the workspace (its first project root).

    Returns:
        Path where the index should be stored.
    """
    if settings.local_index:
        return workspace_root / ".semantic-code"

    # Hash the absolute path for global cache
    path_hash = hashlib.sha256(str(workspace_root.resolve()).encode()).hexdigest()[:16]
    return settings.cache_dir / path_hash
