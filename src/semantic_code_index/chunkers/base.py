"""Shared chunker machinery: the chunker base class and tree-sitter parsing."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

import structlog
from tree_sitter import Language, Node, Parser

from semantic_code_index.errors import ChunkingError
from semantic_code_index.models import ChunkType, CodeChunk, SourceFile

log = structlog.get_logger()

# Rough size of a token in characters, good enough for window sizing
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate token count of a text."""
    return max(1, len(text) // CHARS_PER_TOKEN)


class BaseChunker(ABC):
    """Base class for chunkers selected by file extension.

    Subclasses set the identity class variables and `extensions`, then
    implement `chunk()`. Token sizing comes from the registry descriptor.
    """

    id: ClassVar[str]
    name: ClassVar[str]
    language: ClassVar[str]
    priority: ClassVar[int] = 0
    extensions: tuple[str, ...] = ()

    def __init__(self, max_chunk_tokens: int = 512, chunk_overlap: int = 50) -> None:
        self.max_chunk_tokens = max_chunk_tokens
        self.chunk_overlap = chunk_overlap

    def can_handle(self, file: SourceFile) -> bool:
        """Match on extension only, so removed files can still be routed."""
        return file.extension in self.extensions

    @abstractmethod
    def chunk(self, file: SourceFile, content: str, project_name: str) -> list[CodeChunk]:
        """Split file content into chunks.

        Raises:
            ChunkingError: If the content cannot be parsed.
        """
        ...


@dataclass(frozen=True)
class SourceText:
    """Content being chunked, with the metadata every chunk carries."""

    file_path: str
    project_name: str
    language: str
    lines: list[str]

    def make_chunk(self, line_start: int, line_end: int, chunk_type: ChunkType, name: str) -> CodeChunk:
        """Create a chunk covering 1-based inclusive lines."""
        return CodeChunk(
            file_path=self.file_path,
            project_name=self.project_name,
            line_start=line_start,
            line_end=line_end,
            content="\n".join(self.lines[line_start - 1 : line_end]),
            chunk_type=chunk_type,
            name=name,
            language=self.language,
        )

    def node_chunk(self, node: Node, chunk_type: ChunkType, name: str) -> CodeChunk:
        """Create a chunk spanning an AST node."""
        return self.make_chunk(node.start_point[0] + 1, node.end_point[0] + 1, chunk_type, name)


class BaseTreeSitterChunker(BaseChunker):
    """Chunker that walks a tree-sitter AST.

    Subclasses set `grammar` and implement `_extract_chunks()`.
    """

    grammar: ClassVar[Language]

    def chunk(self, file: SourceFile, content: str, project_name: str) -> list[CodeChunk]:
        """Extract chunks from file content.

        Thread-safe: creates a fresh Parser per call since tree-sitter
        parsers mutate internal state during parse().

        Args:
            file: File the content was read from.
            content: Decoded file content.
            project_name: Owning project, copied into every chunk.

        Returns:
            List of CodeChunk objects, empty for blank content.

        Raises:
            ChunkingError: If parsing fails or yields nothing but errors.
        """
        if not content.strip():
            return []

        try:
            tree = Parser(self.grammar).parse(content.encode())
        except (ValueError, UnicodeEncodeError) as e:
            raise ChunkingError(f"Failed to parse {file.key}: {e}") from e

        source = SourceText(
            file_path=file.key,
            project_name=project_name,
            language=self.language,
            lines=content.split("\n"),
        )
        chunks = self._extract_chunks(tree.root_node, source)
        if not chunks and tree.root_node.has_error:
            raise ChunkingError(f"Unparseable {self.language} source: {file.key}")

        log.debug("chunked_file", file_path=file.key, chunker=self.id, chunks_count=len(chunks))
        return chunks

    @abstractmethod
    def _extract_chunks(self, root: Node, source: SourceText) -> list[CodeChunk]:
        """Extract language-specific chunks from the AST root."""
        ...
