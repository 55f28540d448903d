"""Exception hierarchy for the indexing pipeline."""


class IndexingError(Exception):
    """Base class for all indexing pipeline errors."""


class ChunkingError(IndexingError):
    """A chunker could not parse or split a file."""


class IndexStoreError(IndexingError):
    """The vector store is unusable (bad path, schema mismatch, I/O failure)."""


class EmbeddingError(IndexingError):
    """An embedding batch call failed or timed out."""


class EmbeddingCancelledError(EmbeddingError):
    """An in-flight embedding call was aborted through ``cancel()``."""


class EmbeddingDimensionError(EmbeddingError):
    """Provider returned vectors whose size differs from the configured index dimension.

    This is a configuration error, not a per-item failure: every later batch would
    fail the same way.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension {actual} does not match index dimension {expected}")
        self.expected = expected
        self.actual = actual


class ProviderNotConfiguredError(IndexingError):
    """No usable embedding provider is configured."""


class IndexerBusyError(IndexingError):
    """A full index run is already in progress."""
