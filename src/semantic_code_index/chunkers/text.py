"""Plain-text chunker using overlapping line windows."""

from pathlib import PurePath

from semantic_code_index.chunkers.base import BaseChunker, SourceText, estimate_tokens
from semantic_code_index.models import ChunkType, CodeChunk, SourceFile


class LineWindowChunker(BaseChunker):
    """Split text into consecutive line windows of about `max_chunk_tokens` each.

    Consecutive windows share trailing lines worth about `chunk_overlap`
    tokens. A single line longer than the window becomes its own chunk.
    Ranks below the language-aware chunkers.
    """

    id = "text"
    name = "Plain text"
    language = "text"
    priority = 10

    def __init__(
        self,
        extensions: tuple[str, ...] | list[str] = (".txt",),
        max_chunk_tokens: int = 512,
        chunk_overlap: int = 50,
    ) -> None:
        super().__init__(max_chunk_tokens, chunk_overlap)
        self.extensions = tuple(ext.lower() for ext in extensions)

    def chunk(self, file: SourceFile, content: str, project_name: str) -> list[CodeChunk]:
        if not content.strip():
            return []

        lines = content.split("\n")
        source = SourceText(
            file_path=file.key,
            project_name=project_name,
            language=self.language,
            lines=lines,
        )
        stem = PurePath(file.key).stem
        chunks: list[CodeChunk] = []
        for first, last in self._windows(lines):
            chunk = source.make_chunk(first + 1, last + 1, ChunkType.block, f"{stem}:{first + 1}")
            if chunk.content.strip():
                chunks.append(chunk)
        return chunks

    def _windows(self, lines: list[str]) -> list[tuple[int, int]]:
        """0-based inclusive (first, last) row pairs covering every line."""
        windows: list[tuple[int, int]] = []
        start = 0
        while start < len(lines):
            end = start
            budget = estimate_tokens(lines[start])
            while end + 1 < len(lines):
                cost = estimate_tokens(lines[end + 1])
                if budget + cost > self.max_chunk_tokens:
                    break
                budget += cost
                end += 1
            windows.append((start, end))
            if end + 1 >= len(lines):
                break

            # Step back over overlap lines, always making progress
            next_start = end + 1
            overlap = 0
            while next_start - 1 > start:
                overlap += estimate_tokens(lines[next_start - 1])
                if overlap > self.chunk_overlap:
                    break
                next_start -= 1
            start = next_start
        return windows
