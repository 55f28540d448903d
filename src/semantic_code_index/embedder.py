"""Embedding generation with sentence-transformers."""

import asyncio
import threading

import structlog
from sentence_transformers import SentenceTransformer

from semantic_code_index.config import Settings
from semantic_code_index.errors import (
    EmbeddingCancelledError,
    EmbeddingDimensionError,
    EmbeddingError,
    ProviderNotConfiguredError,
)
from semantic_code_index.models import EmbeddingResult

log = structlog.get_logger()


class SentenceTransformerEmbedder:
    """Generates embeddings for code chunks using sentence-transformers.

    The model is loaded lazily on first use to avoid slow startup.
    Encoding runs in a worker thread; `cancel()` releases every caller
    waiting on it without waiting for the thread to finish.
    """

    def __init__(self, settings: Settings, model: SentenceTransformer | None = None) -> None:
        """Initialize the embedder.

        Args:
            settings: Application settings with model configuration.
            model: Preloaded model, skips lazy loading.
        """
        self.model_name = settings.embedding_model
        self.device = settings.embedding_device
        self.batch_size = settings.embedding_batch_size
        self.timeout_seconds = settings.embedding_timeout_seconds
        self.expected_dimension = settings.embedding_dimension
        self._model = model
        self._embedding_dim: int | None = model.get_sentence_embedding_dimension() if model else None
        self._load_lock = threading.Lock()
        self._lock = threading.Lock()
        self._in_flight: set[asyncio.Future[list[list[float]]]] = set()
        self._aborted: set[asyncio.Future[list[list[float]]]] = set()

    def is_configured(self) -> bool:
        return bool(self.model_name)

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded."""
        return self._model is not None

    @property
    def embedding_dim(self) -> int:
        """Get the embedding dimension. Loads model if needed."""
        if self._embedding_dim is None:
            self.load()
        return self._embedding_dim  # type: ignore[return-value]

    def load(self) -> None:
        """Explicitly load the model.

        This can be called to pre-load the model before first use.

        Raises:
            ProviderNotConfiguredError: If no model name is configured.
        """
        with self._load_lock:
            if self._model is not None:
                return
            if not self.is_configured():
                raise ProviderNotConfiguredError("No embedding model configured")

            log.info("loading_embedding_model", model=self.model_name, device=self.device)

            device = None if self.device == "auto" else self.device
            self._model = SentenceTransformer(self.model_name, device=device)
            self._embedding_dim = self._model.get_sentence_embedding_dimension()

            log.info(
                "embedding_model_loaded",
                model=self.model_name,
                embedding_dim=self._embedding_dim,
            )
            if self._embedding_dim != self.expected_dimension:
                log.warning(
                    "embedding_dimension_mismatch",
                    model=self.model_name,
                    model_dim=self._embedding_dim,
                    index_dim=self.expected_dimension,
                )

    def _ensure_loaded(self) -> SentenceTransformer:
        """Ensure model is loaded and return it."""
        if self._model is None:
            self.load()
        return self._model  # type: ignore[return-value]

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text, blocking.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector as list of floats.
        """
        model = self._ensure_loaded()
        embedding = model.encode(text, convert_to_numpy=True)
        return embedding.tolist()

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts in one model call.

        Args:
            texts: List of texts to embed.

        Returns:
            One result per text, in input order.

        Raises:
            EmbeddingCancelledError: If `cancel()` was called while waiting.
            EmbeddingDimensionError: If vectors do not match the index dimension.
            EmbeddingError: On timeout or model failure.
        """
        if not texts:
            return []

        future = asyncio.ensure_future(asyncio.to_thread(self._encode, texts))
        with self._lock:
            self._in_flight.add(future)

        try:
            vectors = await asyncio.wait_for(future, timeout=self.timeout_seconds)
        except TimeoutError as e:
            raise EmbeddingError(
                f"Embedding batch of {len(texts)} timed out after {self.timeout_seconds}s"
            ) from e
        except asyncio.CancelledError:
            with self._lock:
                aborted = future in self._aborted
            if aborted:
                raise EmbeddingCancelledError(f"Embedding batch of {len(texts)} cancelled") from None
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding batch failed: {e}") from e
        finally:
            with self._lock:
                self._in_flight.discard(future)
                self._aborted.discard(future)

        results: list[EmbeddingResult] = []
        for index, vector in enumerate(vectors):
            if len(vector) != self.expected_dimension:
                raise EmbeddingDimensionError(self.expected_dimension, len(vector))
            results.append(EmbeddingResult(index=index, embedding=vector))
        return results

    def cancel(self) -> None:
        """Abort in-flight batch calls. Safe to call from any thread."""
        with self._lock:
            futures = [f for f in self._in_flight if not f.done()]
            self._aborted.update(futures)

        for future in futures:
            future.get_loop().call_soon_threadsafe(future.cancel)
        if futures:
            log.info("embedding_cancelled", in_flight=len(futures))

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = self._ensure_loaded()
        log.debug("embedding_batch", count=len(texts))
        embeddings = model.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return [e.tolist() for e in embeddings]
