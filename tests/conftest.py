"""Pytest configuration and fixtures."""

import asyncio
import zlib
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from semantic_code_index.chunkers.registry import ChunkerDescriptor, ChunkerRegistry, default_descriptors
from semantic_code_index.config import Settings
from semantic_code_index.models import ChunkType, CodeChunk, EmbeddingResult, SourceFile
from semantic_code_index.protocols import EmbedderProtocol, FileIndexerProtocol, VectorStoreProtocol
from semantic_code_index.storage.lancedb import LanceDBVectorStore
from semantic_code_index.workspace import Workspace

# Small vectors keep LanceDB tests fast
DIM = 8


def vector_for(text: str, dimension: int = DIM) -> list[float]:
    """Deterministic pseudo-embedding for a text."""
    rng = np.random.default_rng(zlib.crc32(text.encode()))
    return rng.random(dimension).astype(np.float32).tolist()


def fake_model(dimension: int = DIM) -> MagicMock:
    """Stand-in for a SentenceTransformer returning `vector_for` vectors."""
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = dimension

    def encode(texts, **kwargs):
        if isinstance(texts, str):
            return np.array(vector_for(texts, dimension), dtype=np.float32)
        return np.array([vector_for(t, dimension) for t in texts], dtype=np.float32)

    model.encode.side_effect = encode
    return model


def make_chunk(
    file_path: str = "/path/to/file.py",
    line_start: int = 10,
    line_end: int = 20,
    name: str = "hello",
    project_name: str = "project",
    content: str | None = None,
) -> CodeChunk:
    return CodeChunk(
        file_path=file_path,
        project_name=project_name,
        line_start=line_start,
        line_end=line_end,
        content=content if content is not None else f"def {name}():\n    return 'world'",
        chunk_type=ChunkType.function,
        name=name,
        language="python",
    )


class LineChunker:
    """Test chunker: one chunk per non-blank line of a `.txt` file.

    `fail_on` maps a file name to the exception raised when chunking it.
    """

    id = "lines"
    name = "Lines"
    language = "lines"
    priority = 50
    max_chunk_tokens = 512
    chunk_overlap = 0

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail_on: dict[str, BaseException] = {}

    def can_handle(self, file: SourceFile) -> bool:
        return file.extension == ".txt"

    def chunk(self, file: SourceFile, content: str, project_name: str) -> list[CodeChunk]:
        self.calls.append(file.path.name)
        if file.path.name in self.fail_on:
            raise self.fail_on[file.path.name]
        return [
            CodeChunk(
                file_path=file.key,
                project_name=project_name,
                line_start=number,
                line_end=number,
                content=line,
                chunk_type=ChunkType.block,
                name=f"{file.path.stem}:{number}",
                language=self.language,
            )
            for number, line in enumerate(content.split("\n"), start=1)
            if line.strip()
        ]


class VirtualClock:
    """Injectable sleep whose time only moves on `advance()`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    async def advance(self, seconds: float) -> None:
        """Move time forward, wake due sleepers and let them run."""
        await settle()
        self.now += seconds
        due = [f for deadline, f in self._sleepers if deadline <= self.now + 1e-9]
        self._sleepers = [(d, f) for d, f in self._sleepers if d > self.now + 1e-9]
        for future in due:
            if not future.done():
                future.set_result(None)
        await settle()


async def settle(rounds: int = 20) -> None:
    """Give ready tasks a chance to run to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# Settings fixtures


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temp cache dir and small vectors."""
    return Settings(cache_dir=tmp_path / "cache", embedding_dimension=DIM)


# Protocol mock fixtures


@pytest.fixture
def mock_store() -> MagicMock:
    """Create a mock VectorStore implementing the protocol."""
    return MagicMock(spec=VectorStoreProtocol)


@pytest.fixture
def mock_embedder() -> MagicMock:
    """Create a mock embedder returning deterministic vectors."""
    mock = MagicMock(spec=EmbedderProtocol)
    mock.is_configured.return_value = True

    async def embed_batch(texts: list[str]) -> list[EmbeddingResult]:
        return [EmbeddingResult(index=i, embedding=vector_for(t)) for i, t in enumerate(texts)]

    mock.embed_batch.side_effect = embed_batch
    return mock


@pytest.fixture
def mock_file_indexer() -> MagicMock:
    """Create a mock single-file indexer."""
    mock = MagicMock(spec=FileIndexerProtocol)
    mock.index_file.return_value = 1
    return mock


# Real component fixtures for integration tests


@pytest.fixture
def vector_store(tmp_path: Path) -> LanceDBVectorStore:
    """Create an initialized LanceDB store for testing."""
    store = LanceDBVectorStore(tmp_path / "index", dimension=DIM, model_name="test-model")
    store.initialize()
    return store


@pytest.fixture
def registry(test_settings: Settings) -> ChunkerRegistry:
    """Registry with the shipped chunkers."""
    registry = ChunkerRegistry()
    registry.initialize(default_descriptors(test_settings))
    return registry


@pytest.fixture
def line_chunker() -> LineChunker:
    return LineChunker()


@pytest.fixture
def line_registry(line_chunker: LineChunker) -> ChunkerRegistry:
    """Registry holding only the line chunker."""
    registry = ChunkerRegistry()
    registry.register(
        ChunkerDescriptor(
            id=line_chunker.id,
            name=line_chunker.name,
            language=line_chunker.language,
            priority=line_chunker.priority,
            factory=lambda: line_chunker,
        )
    )
    return registry


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


# Sample project fixtures


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    """Create a sample project with Python and Markdown files."""
    project = tmp_path / "project"
    project.mkdir()

    (project / "main.py").write_text('''"""Main module."""

def greet(name: str) -> str:
    """Greet someone."""
    return f"Hello, {name}!"

def farewell(name: str) -> str:
    """Say goodbye."""
    return f"Goodbye, {name}!"
''')

    (project / "utils.py").write_text('''"""Utility functions."""

class Helper:
    """A helper class."""

    def assist(self):
        """Provide assistance."""
        pass
''')

    (project / "README.md").write_text("# Project\n\nA sample project.\n\n## Usage\n\nRun it.\n")
    (project / "data.bin").write_bytes(b"\x00\x01\x02")

    return project


@pytest.fixture
def workspace(sample_project: Path, test_settings: Settings) -> Workspace:
    return Workspace.from_paths([sample_project], test_settings)

