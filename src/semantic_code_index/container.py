"""Dependency injection container.

Shares expensive resources (model, index connection) across requests.
Lazy: nothing is loaded until first use. Configurable: call configure()
to override default settings (e.g. in tests).
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path

import structlog

from semantic_code_index.chunkers.registry import ChunkerRegistry, default_descriptors
from semantic_code_index.config import Settings, get_index_path, get_settings
from semantic_code_index.embedder import SentenceTransformerEmbedder
from semantic_code_index.indexer.batch import BatchIndexer
from semantic_code_index.indexer.incremental import IncrementalIndexer
from semantic_code_index.indexer.watcher import WatchfilesChangeSource
from semantic_code_index.storage.lancedb import LanceDBVectorStore
from semantic_code_index.workspace import Workspace

log = structlog.get_logger()


class Container:
    """Owns the long-lived pipeline objects of one workspace.

    Caching strategy:
    - Registry, embedder, store: session-scoped (expensive or stateful)
    - Batch indexer: created once, None if embedder or store is unusable
    - Incremental indexer: created once, shares the batch indexer's file routine
    """

    def __init__(self, settings: Settings, project_paths: list[Path] | None = None) -> None:
        self.settings = settings
        paths = project_paths or settings.workspace_paths or [Path.cwd()]
        self.workspace = Workspace.from_paths(paths, settings)
        self._batch_indexer: BatchIndexer | None = None
        self._incremental_indexer: IncrementalIndexer | None = None

    @cached_property
    def registry(self) -> ChunkerRegistry:
        registry = ChunkerRegistry()
        registry.initialize(default_descriptors(self.settings))
        return registry

    @cached_property
    def embedder(self) -> SentenceTransformerEmbedder:
        """Embedder whose model loads on first embedding call."""
        return SentenceTransformerEmbedder(self.settings)

    @cached_property
    def store(self) -> LanceDBVectorStore:
        index_path = get_index_path(self.settings, self.workspace.root)
        log.debug("index_path_resolved", index_path=str(index_path))
        return LanceDBVectorStore(
            index_path,
            dimension=self.settings.embedding_dimension,
            model_name=self.settings.embedding_model,
            write_buffer_rows=self.settings.write_buffer_rows,
        )

    @property
    def incremental_indexer(self) -> IncrementalIndexer | None:
        return self._incremental_indexer

    def create_batch_indexer(self) -> BatchIndexer | None:
        """Get or create the batch indexer. None if it cannot be built."""
        if self._batch_indexer is None:
            self._batch_indexer = BatchIndexer.create(
                self.settings, self.registry, self.embedder, self.store, self.workspace
            )
        return self._batch_indexer

    def create_incremental_indexer(self, watch: bool = False) -> IncrementalIndexer | None:
        """Get or create the incremental indexer.

        Args:
            watch: Attach a file system watcher over the open projects.
                Only honoured when the indexer is first created.
        """
        if self._incremental_indexer is None:
            batch_indexer = self.create_batch_indexer()
            if batch_indexer is None:
                return None
            source = None
            if watch:
                source = WatchfilesChangeSource(
                    [p.root for p in self.workspace.open_projects()], self.settings
                )
            self._incremental_indexer = IncrementalIndexer(
                self.settings, batch_indexer, self.registry, self.workspace, source=source
            )
        return self._incremental_indexer


# --- Global container lifecycle ---

_container: Container | None = None


def configure(settings: Settings, project_paths: list[Path] | None = None) -> Container:
    """Initialize the global container with explicit settings (e.g. tests)."""
    global _container
    _container = Container(settings, project_paths)
    return _container


def get_container() -> Container:
    """Get the global container, auto-configuring with default Settings if needed."""
    global _container
    if _container is None:
        _container = Container(get_settings())
    return _container
