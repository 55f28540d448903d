"""Debounced incremental indexing driven by file change events."""

import asyncio
import concurrent.futures
from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog

from semantic_code_index.chunkers.registry import ChunkerRegistry
from semantic_code_index.config import Settings
from semantic_code_index.models import ChangeEvent, ChangeKind, SourceFile
from semantic_code_index.protocols import ChangeSource, FileIndexerProtocol
from semantic_code_index.workspace import Workspace

log = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[None]]


class IncrementalIndexer:
    """Coalesces change events per file and applies them after a quiet period.

    Each path has at most one pending update or one pending delete. A newer
    event for the path replaces whatever is pending. Firings run one at a
    time; once a firing has started it is no longer pending and later
    events schedule new work behind it instead of cancelling it.

    Events arrive through a bounded queue, either from `submit()` or from
    an attached change source. Must be started from a running event loop.
    """

    def __init__(
        self,
        settings: Settings,
        indexer: FileIndexerProtocol,
        registry: ChunkerRegistry,
        workspace: Workspace,
        source: ChangeSource | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.indexer = indexer
        self.registry = registry
        self.workspace = workspace
        self.source = source
        self._sleep = sleep
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=settings.event_queue_size)
        self._pending_updates: dict[str, asyncio.Task[None]] = {}
        self._pending_deletes: dict[str, asyncio.Task[None]] = {}
        self._firing: set[asyncio.Task[None]] = set()
        self._fire_lock = asyncio.Lock()
        self._consumer: asyncio.Task[None] | None = None
        self._pump: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def pending_update_count(self) -> int:
        return len(self._pending_updates)

    @property
    def pending_delete_count(self) -> int:
        return len(self._pending_deletes)

    async def start(self) -> None:
        """Begin consuming events. Idempotent."""
        if self._active:
            return
        self._loop = asyncio.get_running_loop()
        self._active = True
        self._consumer = asyncio.create_task(self._consume())
        if self.source is not None:
            self._pump = asyncio.create_task(self._pump_source(self.source))
        log.info("incremental_indexer_started", debounce_seconds=self.settings.debounce_seconds)

    async def stop(self) -> None:
        """Stop consuming events and drop all pending work.

        Pending updates and deletes are cancelled without running. A firing
        already in progress gets up to `stop_timeout_seconds` to finish.
        """
        if not self._active:
            return
        self._active = False

        if self.source is not None:
            self.source.close()
        background = [t for t in (self._pump, self._consumer) if t is not None]
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        self._pump = self._consumer = None

        pending = [*self._pending_updates.values(), *self._pending_deletes.values()]
        self._pending_updates.clear()
        self._pending_deletes.clear()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        if self._firing:
            _, still_running = await asyncio.wait(set(self._firing), timeout=self.settings.stop_timeout_seconds)
            if still_running:
                log.warning("incremental_stop_timeout", still_running=len(still_running))

        log.info("incremental_indexer_stopped", dropped=len(pending))

    async def submit(self, event: ChangeEvent) -> None:
        """Queue an event, waiting while the queue is full. Dropped when inactive."""
        if not self._active:
            log.debug("change_dropped_inactive", path=str(event.path), kind=event.kind.value)
            return
        await self._queue.put(event)

    def submit_threadsafe(self, event: ChangeEvent) -> concurrent.futures.Future[None]:
        """Queue an event from a thread other than the event loop's."""
        if self._loop is None:
            raise RuntimeError("IncrementalIndexer has not been started")
        return asyncio.run_coroutine_threadsafe(self.submit(event), self._loop)

    async def drain(self) -> None:
        """Wait until every queued event has been handled (not fired)."""
        await self._queue.join()

    def handle_event(self, event: ChangeEvent) -> None:
        """Apply one event to the pending state. Runs on the event loop."""
        if not self._active:
            return
        file = self.workspace.source_file(event.path)
        if file is None:
            log.debug("change_ignored_outside_projects", path=str(event.path))
            return
        if self.registry.chunker_for(file) is None:
            log.debug("change_ignored_unsupported", path=file.key)
            return

        key = file.key
        self._cancel_pending(self._pending_updates, key)
        self._cancel_pending(self._pending_deletes, key)
        if event.kind == ChangeKind.REMOVED:
            self._pending_deletes[key] = asyncio.create_task(self._fire_delete(key))
        else:
            self._pending_updates[key] = asyncio.create_task(self._fire_update(key, file))
        log.debug("change_scheduled", path=key, kind=event.kind.value)

    async def flush(self, include_updates: bool = False) -> int:
        """Run pending deletes now instead of waiting for the debounce.

        Args:
            include_updates: Also run pending updates now, reading each file
                as it is at flush time.

        Returns:
            Number of pending operations run.
        """
        deletes = self._take_all(self._pending_deletes)
        updates = self._take_all(self._pending_updates) if include_updates else []

        async with self._fire_lock:
            for key in deletes:
                await self._run_delete(key)
            for key in updates:
                file = self.workspace.source_file(Path(key))
                if file is not None:
                    await self._run_update(file)
        log.info("flushed_pending", deletes=len(deletes), updates=len(updates))
        return len(deletes) + len(updates)

    # --- Internals ---

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.handle_event(event)
            except Exception as e:
                log.warning("change_event_failed", path=str(event.path), error=str(e))
            finally:
                self._queue.task_done()

    async def _pump_source(self, source: ChangeSource) -> None:
        try:
            async for batch in source:
                for event in batch:
                    await self.submit(event)
        except Exception as e:
            log.error("change_source_failed", error=str(e))

    async def _fire_update(self, key: str, file: SourceFile) -> None:
        await self._sleep(self.settings.debounce_seconds)
        async with self._fire_lock:
            if not self._claim(self._pending_updates, key):
                return
            await self._run_update(file)

    async def _fire_delete(self, key: str) -> None:
        await self._sleep(self.settings.debounce_seconds)
        async with self._fire_lock:
            if not self._claim(self._pending_deletes, key):
                return
            await self._run_delete(key)

    def _claim(self, pending: dict[str, asyncio.Task[None]], key: str) -> bool:
        """Move the current task from pending to firing, if it is still the one pending."""
        task = asyncio.current_task()
        if pending.get(key) is not task:
            return False
        del pending[key]
        self._firing.add(task)
        task.add_done_callback(self._firing.discard)
        return True

    async def _run_update(self, file: SourceFile) -> None:
        try:
            chunks = await self.indexer.index_file(file)
            log.info("incremental_update", path=file.key, chunks=chunks)
        except Exception as e:
            log.warning("incremental_update_failed", path=file.key, error=str(e))

    async def _run_delete(self, key: str) -> None:
        try:
            await self.indexer.remove_file(key)
            log.info("incremental_delete", path=key)
        except Exception as e:
            log.warning("incremental_delete_failed", path=key, error=str(e))

    def _cancel_pending(self, pending: dict[str, asyncio.Task[None]], key: str) -> None:
        task = pending.pop(key, None)
        if task is not None:
            task.cancel()

    def _take_all(self, pending: dict[str, asyncio.Task[None]]) -> list[str]:
        keys = list(pending)
        for key in keys:
            self._cancel_pending(pending, key)
        return keys
