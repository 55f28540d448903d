"""File system change source backed by watchfiles."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

import structlog
import watchfiles
from watchfiles import Change

from semantic_code_index.config import Settings
from semantic_code_index.models import ChangeEvent, ChangeKind

log = structlog.get_logger()

CHANGE_KINDS = {
    Change.added: ChangeKind.ADDED,
    Change.modified: ChangeKind.CHANGED,
    Change.deleted: ChangeKind.REMOVED,
}


def to_events(changes: Iterable[tuple[Change, str]]) -> list[ChangeEvent]:
    """Translate a watchfiles change set into change events."""
    return [ChangeEvent(kind=CHANGE_KINDS[change], path=Path(path)) for change, path in changes]


class WatchfilesChangeSource:
    """Async stream of change-event batches for a set of directory trees.

    Wraps watchfiles.awatch. Iteration ends after `close()`; iterating again
    starts a new watch.
    """

    def __init__(self, paths: Iterable[Path], settings: Settings) -> None:
        self.paths = [p.resolve() for p in paths]
        self.debounce_ms = settings.watch_debounce_ms
        self._stop = asyncio.Event()

    async def __aiter__(self) -> AsyncIterator[list[ChangeEvent]]:
        self._stop = asyncio.Event()
        log.info("watching_paths", paths=[str(p) for p in self.paths])
        async for changes in watchfiles.awatch(
            *self.paths,
            watch_filter=watchfiles.DefaultFilter(),
            debounce=self.debounce_ms,
            stop_event=self._stop,
            recursive=True,
            ignore_permission_denied=True,
        ):
            events = to_events(changes)
            log.debug("file_changes_detected", count=len(events))
            yield events
        log.info("stopped_watching")

    def close(self) -> None:
        self._stop.set()
