"""Tree-sitter based AST chunking for Python code."""

from enum import StrEnum, auto
from pathlib import PurePath

import tree_sitter_python as tspython
from tree_sitter import Language, Node

from semantic_code_index.chunkers.base import BaseTreeSitterChunker, SourceText
from semantic_code_index.models import ChunkType, CodeChunk


class NodeType(StrEnum):
    """Tree-sitter Python AST node types."""

    function_definition = auto()
    class_definition = auto()
    decorated_definition = auto()
    comment = auto()
    newline = auto()
    expression_statement = auto()
    string = auto()


DEFINITIONS = (NodeType.function_definition, NodeType.class_definition)


class PythonChunker(BaseTreeSitterChunker):
    """One chunk per function, class and method, plus the module docstring.

    Decorated definitions span their decorators. Classes are emitted whole
    and their methods again as separate chunks.
    """

    id = "python"
    name = "Python"
    language = "python"
    priority = 100
    extensions = (".py", ".pyi")
    grammar = Language(tspython.language())

    def _extract_chunks(self, root: Node, source: SourceText) -> list[CodeChunk]:
        chunks: list[CodeChunk] = []
        docstring = self._module_docstring(root, source)
        if docstring:
            chunks.append(docstring)
        self._walk(root, source, chunks, in_class=False)
        return chunks

    def _walk(self, node: Node, source: SourceText, chunks: list[CodeChunk], in_class: bool) -> None:
        for child in node.children:
            if child.type not in (*DEFINITIONS, NodeType.decorated_definition):
                continue

            definition = self._unwrap(child)
            if definition is None:
                continue
            name_node = definition.child_by_field_name("name")
            if name_node is None or name_node.text is None:
                continue
            name = name_node.text.decode()

            # The decorated wrapper defines the line range, the inner node the kind
            if definition.type == NodeType.class_definition:
                chunks.append(source.node_chunk(child, ChunkType.klass, name))
                body = definition.child_by_field_name("body")
                if body is not None:
                    self._walk(body, source, chunks, in_class=True)
            else:
                chunk_type = ChunkType.method if in_class else ChunkType.function
                chunks.append(source.node_chunk(child, chunk_type, name))

    def _unwrap(self, node: Node) -> Node | None:
        """Return the function/class node inside any decorator layers."""
        if node.type in DEFINITIONS:
            return node
        for child in node.children:
            if child.type in DEFINITIONS:
                return child
            if child.type == NodeType.decorated_definition:
                return self._unwrap(child)
        return None

    def _module_docstring(self, root: Node, source: SourceText) -> CodeChunk | None:
        """Module docstring per PEP 257: the first statement, if it is a string.

        Comments and blank lines may precede it.
        """
        for child in root.children:
            if child.type in (NodeType.comment, NodeType.newline):
                continue
            if child.type == NodeType.expression_statement and any(
                sub.type == NodeType.string for sub in child.children
            ):
                return source.node_chunk(child, ChunkType.module, PurePath(source.file_path).stem)
            return None
        return None
