"""Cooperative cancellation shared between the host and long-running jobs."""

import threading
from collections.abc import Callable

import structlog

log = structlog.get_logger()


class CancellationToken:
    """Thread-safe cancellation flag with callbacks.

    The host owns the token and passes it into long-running calls
    (``BatchIndexer.run``, workspace scans). Work polls ``is_cancelled``
    between units; callbacks let blocking calls be aborted promptly.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel the token and run registered callbacks once. Idempotent."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Every callback must get its chance to run.
                log.warning("cancel_callback_failed", error=str(e))

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback, run immediately if already cancelled.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
