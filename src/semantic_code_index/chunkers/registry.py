"""Chunker registry: picks the chunker responsible for a file."""

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import partial

import structlog

from semantic_code_index.chunkers.markdown import MarkdownChunker
from semantic_code_index.chunkers.python import PythonChunker
from semantic_code_index.chunkers.text import LineWindowChunker
from semantic_code_index.config import Settings
from semantic_code_index.models import SourceFile
from semantic_code_index.protocols import ChunkerProtocol

log = structlog.get_logger()


@dataclass(frozen=True)
class ChunkerDescriptor:
    """Registration record for a chunker.

    The factory is called at most once, on first use.
    """

    id: str
    name: str
    language: str
    priority: int
    factory: Callable[[], ChunkerProtocol]
    max_chunk_tokens: int = 512
    chunk_overlap: int = 50


class ChunkerRegistry:
    """Chunkers grouped by language, each group in descending priority.

    Thread-safe: lookups happen from worker threads during indexing.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._groups: dict[str, list[ChunkerDescriptor]] = {}
        self._instances: dict[str, ChunkerProtocol] = {}
        self._failed: set[str] = set()
        self._initialized = False

    def register(self, descriptor: ChunkerDescriptor) -> None:
        """Add a descriptor, replacing any previous one with the same id."""
        with self._lock:
            self._discard(descriptor.id)
            group = self._groups.setdefault(descriptor.language, [])
            group.append(descriptor)
            # Stable sort keeps registration order among equal priorities
            group.sort(key=lambda d: d.priority, reverse=True)
            log.debug(
                "chunker_registered",
                chunker_id=descriptor.id,
                language=descriptor.language,
                priority=descriptor.priority,
            )

    def initialize(self, descriptors: Iterable[ChunkerDescriptor]) -> None:
        """Register the startup set once. Later calls are no-ops."""
        with self._lock:
            if self._initialized:
                return
            for descriptor in descriptors:
                self.register(descriptor)
            self._initialized = True
            log.info("chunker_registry_initialized", chunkers=len(self.descriptors()))

    def chunker_for(self, file: SourceFile) -> ChunkerProtocol | None:
        """First chunker, by language group then priority, that accepts the file."""
        with self._lock:
            for group in self._groups.values():
                for descriptor in group:
                    chunker = self._instance(descriptor)
                    if chunker is not None and chunker.can_handle(file):
                        return chunker
        return None

    def chunker_for_language(self, language: str) -> ChunkerProtocol | None:
        """Chunker of the highest-priority descriptor of a language, regardless of file.

        None if the language is unknown or that chunker failed to initialize.
        """
        with self._lock:
            group = self._groups.get(language)
            if not group:
                return None
            return self._instance(group[0])

    def all_chunkers(self) -> list[ChunkerProtocol]:
        """Every chunker that could be instantiated."""
        with self._lock:
            chunkers = [self._instance(d) for group in self._groups.values() for d in group]
        return [c for c in chunkers if c is not None]

    def descriptors(self) -> list[ChunkerDescriptor]:
        with self._lock:
            return [d for group in self._groups.values() for d in group]

    def clear(self) -> None:
        """Drop all registrations, cached instances and failure marks."""
        with self._lock:
            self._groups.clear()
            self._instances.clear()
            self._failed.clear()
            self._initialized = False

    def _instance(self, descriptor: ChunkerDescriptor) -> ChunkerProtocol | None:
        if descriptor.id in self._failed:
            return None
        chunker = self._instances.get(descriptor.id)
        if chunker is None:
            try:
                chunker = descriptor.factory()
            except Exception as e:
                # Not retried for the lifetime of the registry
                self._failed.add(descriptor.id)
                log.error("chunker_init_failed", chunker_id=descriptor.id, error=str(e))
                return None
            self._instances[descriptor.id] = chunker
        return chunker

    def _discard(self, chunker_id: str) -> None:
        for language, group in list(self._groups.items()):
            group[:] = [d for d in group if d.id != chunker_id]
            if not group:
                del self._groups[language]
        self._instances.pop(chunker_id, None)
        self._failed.discard(chunker_id)


def default_descriptors(settings: Settings) -> list[ChunkerDescriptor]:
    """The shipped chunkers, sized from settings."""
    sizing = {"max_chunk_tokens": settings.chunk_max_tokens, "chunk_overlap": settings.chunk_overlap_tokens}
    return [
        ChunkerDescriptor(
            id=PythonChunker.id,
            name=PythonChunker.name,
            language=PythonChunker.language,
            priority=PythonChunker.priority,
            factory=partial(PythonChunker, **sizing),
            **sizing,
        ),
        ChunkerDescriptor(
            id=MarkdownChunker.id,
            name=MarkdownChunker.name,
            language=MarkdownChunker.language,
            priority=MarkdownChunker.priority,
            factory=partial(MarkdownChunker, **sizing),
            **sizing,
        ),
        ChunkerDescriptor(
            id=LineWindowChunker.id,
            name=LineWindowChunker.name,
            language=LineWindowChunker.language,
            priority=LineWindowChunker.priority,
            factory=partial(LineWindowChunker, tuple(settings.text_extensions), **sizing),
            **sizing,
        ),
    ]
