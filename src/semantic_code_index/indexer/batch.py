"""Full workspace indexing: scan, chunk, embed in batches, store."""

import asyncio
import gc
import threading
import time

import structlog

from semantic_code_index.cancellation import CancellationToken
from semantic_code_index.chunkers.registry import ChunkerRegistry
from semantic_code_index.config import Settings
from semantic_code_index.errors import EmbeddingCancelledError, EmbeddingError, IndexerBusyError, IndexStoreError
from semantic_code_index.models import CodeChunk, IndexRunResult, IndexRunStatus, SourceFile
from semantic_code_index.protocols import EmbedderProtocol, ProgressCallback, VectorStoreProtocol
from semantic_code_index.workspace import Project, Workspace

log = structlog.get_logger()


class BatchIndexer:
    """Indexes every file of the open projects in one pass.

    Chunks are accumulated across files and embedded `batch_size` at a time.
    Per-file failures are logged and skipped; embedding or storage failures
    end the run. The single-file routine `index_file` is shared with the
    incremental indexer.

    All dependencies are injected via constructor.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ChunkerRegistry,
        embedder: EmbedderProtocol,
        store: VectorStoreProtocol,
        workspace: Workspace,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.embedder = embedder
        self.store = store
        self.workspace = workspace
        self._running = False
        self._cancel_requested = threading.Event()
        self._task: asyncio.Task[IndexRunResult] | None = None
        self._last_result: IndexRunResult | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        registry: ChunkerRegistry,
        embedder: EmbedderProtocol,
        store: VectorStoreProtocol,
        workspace: Workspace,
    ) -> "BatchIndexer | None":
        """Build an indexer, or None if the embedder or store is unusable."""
        if not embedder.is_configured():
            log.error("embedding_provider_not_configured")
            return None
        try:
            store.initialize()
        except IndexStoreError as e:
            log.error("vector_store_unavailable", error=str(e))
            return None
        return cls(settings, registry, embedder, store, workspace)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> IndexRunResult | None:
        return self._last_result

    async def run(
        self,
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexRunResult:
        """Index the whole workspace.

        Args:
            token: Cancels the run cooperatively, between files.
            on_progress: Optional callback matching ctx.report_progress(progress, total, message).

        Returns:
            IndexRunResult. Cancellation is reported as a status, not raised.

        Raises:
            IndexerBusyError: If a run is already in progress.
        """
        self._claim()
        return await self._guarded_run(token, on_progress)

    def start(
        self,
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> asyncio.Task[IndexRunResult]:
        """Run in the background. Must be called from a running event loop.

        Raises:
            IndexerBusyError: If a run is already in progress.
        """
        self._claim()
        self._task = asyncio.create_task(self._guarded_run(token, on_progress))
        return self._task

    def cancel(self) -> None:
        """Request cancellation of the current run. Safe to call from any thread."""
        self._cancel_requested.set()
        self.embedder.cancel()
        log.info("index_run_cancel_requested")

    async def index_file(self, file: SourceFile) -> int:
        """Re-index a single file: delete, chunk, embed, upsert, commit.

        The commit runs even if chunking or embedding fails, so the deletion
        of the file's old chunks never stays pending.

        Returns:
            Number of chunks stored for the file.
        """
        await asyncio.to_thread(self.store.delete_by_file, file.key)
        try:
            prepared = await asyncio.to_thread(self._prepare_file, file)
            chunks = prepared[0] if prepared else []
            if chunks:
                await self._flush(chunks)
        finally:
            await asyncio.to_thread(self.store.commit)
        log.debug("indexed_file", file_path=file.key, chunks=len(chunks))
        return len(chunks)

    async def remove_file(self, file_path: str) -> None:
        """Delete a file's chunks and commit."""
        await asyncio.to_thread(self.store.delete_by_file, file_path)
        await asyncio.to_thread(self.store.commit)
        log.debug("removed_file", file_path=file_path)

    async def collect_files(
        self,
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[SourceFile]:
        """Files of every open project that some chunker accepts, in scan order."""
        projects = self.workspace.open_projects()
        files: list[SourceFile] = []
        for done, project in enumerate(projects, start=1):
            if self._is_cancelled(token):
                break
            found = await asyncio.to_thread(self._collect_project, project, token)
            files.extend(found)
            log.debug("collected_project_files", project=project.name, files=len(found))
            if on_progress is not None:
                await on_progress(done, len(projects), f"Scanned {project.name}: {len(found)} files")
        return files

    # --- Run internals ---

    def _claim(self) -> None:
        if self._running:
            raise IndexerBusyError("A full index run is already in progress")
        self._running = True
        self._cancel_requested.clear()

    async def _guarded_run(
        self,
        token: CancellationToken | None,
        on_progress: ProgressCallback | None,
    ) -> IndexRunResult:
        unregister = token.on_cancel(self.cancel) if token is not None else None
        start = time.perf_counter()
        try:
            result = await self._run(token, on_progress)
        finally:
            if unregister is not None:
                unregister()
            self._running = False

        result.duration_seconds = round(time.perf_counter() - start, 3)
        self._last_result = result
        log.info(
            "index_run_finished",
            status=result.status.value,
            files_found=result.files_found,
            files_indexed=result.files_indexed,
            files_skipped=result.files_skipped,
            files_failed=result.files_failed,
            chunks_indexed=result.chunks_indexed,
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _run(
        self,
        token: CancellationToken | None,
        on_progress: ProgressCallback | None,
    ) -> IndexRunResult:
        result = IndexRunResult(status=IndexRunStatus.SUCCESS)
        try:
            files = await self.collect_files(token, on_progress)
            result.files_found = len(files)
            log.info("index_run_started", files=len(files))

            cancelled = await self._index_files(files, result, token, on_progress)
            # A scan cut short by cancellation leaves nothing for the loop to notice
            cancelled = cancelled or self._is_cancelled(token)

            await asyncio.to_thread(self.store.commit)
            await asyncio.to_thread(self.store.optimize)
        except (EmbeddingError, IndexStoreError) as e:
            log.error("index_run_failed", error=str(e))
            result.status = IndexRunStatus.FAILED
            result.error = str(e)
            return result
        except Exception as e:
            log.exception("index_run_failed", error=str(e))
            result.status = IndexRunStatus.FAILED
            result.error = str(e)
            return result

        if cancelled:
            result.status = IndexRunStatus.CANCELLED
        if on_progress is not None:
            await on_progress(result.files_found, result.files_found, f"Finished: {result.status.value}")
        return result

    async def _index_files(
        self,
        files: list[SourceFile],
        result: IndexRunResult,
        token: CancellationToken | None,
        on_progress: ProgressCallback | None,
    ) -> bool:
        """Chunk files into batches and flush them. Returns True if cancelled."""
        batch: list[CodeChunk] = []
        cancelled = False

        for processed, file in enumerate(files, start=1):
            if self._is_cancelled(token):
                cancelled = True
                break

            try:
                prepared = await asyncio.to_thread(self._prepare_file, file)
            except MemoryError:
                log.error("out_of_memory", file_path=file.key, dropped_chunks=len(batch))
                batch = []
                gc.collect()
                result.files_failed += 1
            except Exception as e:
                log.warning("file_index_failed", file_path=file.key, error=str(e))
                result.files_failed += 1
            else:
                if prepared is None:
                    result.files_skipped += 1
                else:
                    chunks, truncated = prepared
                    result.files_indexed += 1
                    result.chunks_truncated += truncated
                    batch.extend(chunks)

            if len(batch) >= self.settings.batch_size:
                try:
                    result.chunks_indexed += await self._flush(batch)
                except MemoryError:
                    log.error("out_of_memory", file_path=file.key, dropped_chunks=len(batch))
                    gc.collect()
                    result.files_failed += 1
                except EmbeddingCancelledError:
                    if not self._is_cancelled(token):
                        raise
                    log.info("batch_dropped_on_cancel", dropped_chunks=len(batch))
                    cancelled = True
                    break
                finally:
                    batch = []

            # Reported for skipped and failed files too
            if on_progress is not None:
                await on_progress(processed, len(files), f"Indexed {processed}/{len(files)} files")

        if batch:
            try:
                result.chunks_indexed += await self._flush(batch)
            except EmbeddingCancelledError:
                if not self._is_cancelled(token):
                    raise
                log.info("batch_dropped_on_cancel", dropped_chunks=len(batch))
                cancelled = True
        return cancelled

    def _prepare_file(self, file: SourceFile) -> tuple[list[CodeChunk], int] | None:
        """Read and chunk one file, blocking.

        Returns:
            (chunks, truncated count), or None if the file is too large.
        """
        size = file.size_bytes()
        if size > self.settings.max_file_size_bytes:
            log.info("file_skipped_too_large", file_path=file.key, size_bytes=size)
            return None

        chunker = self.registry.chunker_for(file)
        if chunker is None:
            return [], 0

        content = file.read_text(self.settings.file_encoding)
        chunks = chunker.chunk(file, content, file.project_name)

        limit = self.settings.max_chunks_per_file
        if len(chunks) <= limit:
            return chunks, 0
        log.warning("chunks_truncated", file_path=file.key, chunks=len(chunks), limit=limit)
        return chunks[:limit], len(chunks) - limit

    async def _flush(self, chunks: list[CodeChunk]) -> int:
        """Embed chunks in one call and upsert them. Returns the count stored."""
        t0 = time.perf_counter()
        results = await self.embedder.embed_batch([chunk.content for chunk in chunks])
        if len(results) != len(chunks):
            raise EmbeddingError(f"Expected {len(chunks)} embeddings, got {len(results)}")

        embeddings: list[list[float]] = [[] for _ in chunks]
        for item in results:
            embeddings[item.index] = item.embedding
        log.debug(
            "embedding_completed",
            chunks=len(chunks),
            duration_ms=round((time.perf_counter() - t0) * 1000, 1),
        )

        await asyncio.to_thread(self.store.upsert_chunks, chunks, embeddings)
        return len(chunks)

    def _collect_project(self, project: Project, token: CancellationToken | None) -> list[SourceFile]:
        return [
            file
            for file in self.workspace.iter_files(project, token)
            if self.registry.chunker_for(file) is not None
        ]

    def _is_cancelled(self, token: CancellationToken | None) -> bool:
        return self._cancel_requested.is_set() or (token is not None and token.is_cancelled)
