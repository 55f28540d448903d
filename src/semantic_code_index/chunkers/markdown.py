"""Markdown tree-sitter chunker, one chunk per heading section."""

from enum import StrEnum, auto
from pathlib import PurePath

import tree_sitter_markdown as tsmarkdown
from tree_sitter import Language, Node

from semantic_code_index.chunkers.base import BaseTreeSitterChunker, SourceText
from semantic_code_index.models import ChunkType, CodeChunk


class NodeType(StrEnum):
    """Markdown tree-sitter node types."""

    section = auto()
    atx_heading = auto()
    setext_heading = auto()
    paragraph = auto()
    inline = auto()


class MarkdownChunker(BaseTreeSitterChunker):
    """Chunker for Markdown files using tree-sitter-markdown.

    Nested `section` nodes are flattened: a parent section covers only the
    lines before its first sub-section. Sections with a heading become
    `ChunkType.section` chunks named after the heading; the preamble before
    the first heading becomes a `ChunkType.module` chunk named after the file.
    """

    id = "markdown"
    name = "Markdown"
    language = "markdown"
    priority = 100
    extensions = (".md", ".markdown")
    grammar = Language(tsmarkdown.language())

    def _extract_chunks(self, root: Node, source: SourceText) -> list[CodeChunk]:
        chunks: list[CodeChunk] = []
        pending = [c for c in root.children if c.type == NodeType.section]
        pending.reverse()
        # Depth-first, document order
        while pending:
            section = pending.pop()
            subsections = [c for c in section.children if c.type == NodeType.section]
            chunk = self._section_chunk(section, subsections, source)
            if chunk:
                chunks.append(chunk)
            pending.extend(reversed(subsections))
        return chunks

    def _section_chunk(
        self,
        section: Node,
        subsections: list[Node],
        source: SourceText,
    ) -> CodeChunk | None:
        first_row = section.start_point[0]
        last_row = subsections[0].start_point[0] - 1 if subsections else section.end_point[0]

        # tree-sitter ends a section at column 0 of the following row
        if not subsections and section.end_point[1] == 0 and last_row > first_row:
            last_row -= 1

        # Skip trailing blank lines
        while last_row >= first_row and not _line(source, last_row).strip():
            last_row -= 1
        if last_row < first_row:
            return None

        heading = self._heading(section)
        if heading is None:
            return source.make_chunk(
                first_row + 1, last_row + 1, ChunkType.module, PurePath(source.file_path).stem
            )
        return source.make_chunk(first_row + 1, last_row + 1, ChunkType.section, self._heading_text(heading))

    def _heading(self, section: Node) -> Node | None:
        for child in section.children:
            if child.type in (NodeType.atx_heading, NodeType.setext_heading):
                return child
        return None

    def _heading_text(self, heading: Node) -> str:
        """Heading text: atx keeps it in an `inline` child, setext in `paragraph` then `inline`."""
        candidates = heading.children
        if heading.type == NodeType.setext_heading:
            candidates = [g for c in heading.children if c.type == NodeType.paragraph for g in c.children]
        for node in candidates:
            if node.type == NodeType.inline and node.text:
                return node.text.decode("utf-8").strip()
        return ""


def _line(source: SourceText, row: int) -> str:
    return source.lines[row] if row < len(source.lines) else ""
