"""LanceDB vector storage operations."""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import lancedb
import pyarrow as pa
import pyarrow.compute as pc
import structlog

from semantic_code_index.errors import IndexStoreError
from semantic_code_index.models import ChunkType, CodeChunk, StoreStats

log = structlog.get_logger()

TABLE_NAME = "chunks"


def chunks_schema(dimension: int) -> pa.Schema:
    """Schema for the chunks table with a fixed-size vector column."""
    return pa.schema(
        [
            pa.field("id", pa.utf8()),
            pa.field("vector", pa.list_(pa.float32(), dimension)),
            pa.field("file_path", pa.utf8()),
            pa.field("project_name", pa.utf8()),
            pa.field("line_start", pa.int32()),
            pa.field("line_end", pa.int32()),
            pa.field("content", pa.utf8()),
            pa.field("chunk_type", pa.utf8()),
            pa.field("name", pa.utf8()),
            pa.field("language", pa.utf8()),
        ]
    )


def _quote(value: str) -> str:
    """SQL string literal for a LanceDB filter."""
    return "'" + value.replace("'", "''") + "'"


@dataclass
class _PendingUpsert:
    rows: list[dict] = field(default_factory=list)


@dataclass
class _PendingDelete:
    predicate: str


class LanceDBVectorStore:
    """LanceDB-backed vector storage for code chunks.

    Writes are buffered and applied in call order on `commit()`, or earlier
    once `write_buffer_rows` rows are waiting. Chunks are keyed by their id,
    so re-upserting a chunk replaces it.
    """

    def __init__(
        self,
        index_path: Path,
        dimension: int,
        model_name: str = "",
        write_buffer_rows: int = 1000,
    ) -> None:
        """Initialize the vector store.

        Args:
            index_path: Path to the LanceDB database directory.
            dimension: Embedding vector size; fixed for the lifetime of the table.
            model_name: Embedding model name, reported in stats.
            write_buffer_rows: Buffered rows that trigger an early flush.
        """
        self.index_path = index_path
        self.dimension = dimension
        self.model_name = model_name
        self.write_buffer_rows = write_buffer_rows
        self._schema = chunks_schema(dimension)
        self._lock = threading.Lock()
        self._db: lancedb.DBConnection | None = None
        self._table: lancedb.table.Table | None = None
        self._pending: list[_PendingUpsert | _PendingDelete] = []
        self._buffered_rows = 0
        self._last_committed: datetime | None = None

    def initialize(self) -> None:
        """Open or create the chunks table. Idempotent.

        Raises:
            IndexStoreError: If storage cannot be opened or the existing
                table was built for a different vector dimension.
        """
        with self._lock:
            if self._table is not None:
                return
            try:
                self.index_path.mkdir(parents=True, exist_ok=True)
                db = lancedb.connect(str(self.index_path))
                if TABLE_NAME in db.table_names():
                    table = db.open_table(TABLE_NAME)
                else:
                    table = db.create_table(TABLE_NAME, schema=self._schema)
            except Exception as e:
                raise IndexStoreError(f"Cannot open index at {self.index_path}: {e}") from e

            actual = table.schema.field("vector").type.list_size
            if actual != self.dimension:
                raise IndexStoreError(
                    f"Index at {self.index_path} has vector dimension {actual}, expected {self.dimension}"
                )

            self._db = db
            self._table = table
            log.info("vector_store_opened", index_path=str(self.index_path), dimension=self.dimension)

    def upsert_chunks(self, chunks: list[CodeChunk], embeddings: list[list[float]]) -> None:
        """Buffer chunks with their embeddings for insert-or-replace.

        Args:
            chunks: Chunks to store.
            embeddings: One vector per chunk, same order.

        Raises:
            ValueError: If the lists differ in length or a vector has the wrong size.
        """
        if len(chunks) != len(embeddings):
            raise ValueError(f"Got {len(chunks)} chunks but {len(embeddings)} embeddings")
        if not chunks:
            return
        for embedding in embeddings:
            if len(embedding) != self.dimension:
                raise ValueError(f"Embedding has dimension {len(embedding)}, expected {self.dimension}")

        rows = [
            {
                "id": chunk.id,
                "vector": embedding,
                "file_path": chunk.file_path,
                "project_name": chunk.project_name,
                "line_start": chunk.line_start,
                "line_end": chunk.line_end,
                "content": chunk.content,
                "chunk_type": chunk.chunk_type.value,
                "name": chunk.name,
                "language": chunk.language,
            }
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]

        with self._lock:
            if self._pending and isinstance(self._pending[-1], _PendingUpsert):
                self._pending[-1].rows.extend(rows)
            else:
                self._pending.append(_PendingUpsert(rows))
            self._buffered_rows += len(rows)
            if self._buffered_rows >= self.write_buffer_rows:
                log.debug("write_buffer_full", rows=self._buffered_rows)
                self._apply_pending()

    def delete_by_file(self, file_path: str) -> None:
        """Buffer deletion of all chunks for a specific file.

        Args:
            file_path: The file path to delete chunks for.
        """
        with self._lock:
            self._pending.append(_PendingDelete(f"file_path = {_quote(file_path)}"))

    def commit(self) -> None:
        """Apply buffered writes in order."""
        with self._lock:
            self._apply_pending()
            self._last_committed = datetime.now(UTC)
        log.debug("committed_index", index_path=str(self.index_path))

    def optimize(self) -> None:
        """Compact table fragments and prune old versions."""
        with self._lock:
            table = self._require_table()
            try:
                table.optimize()
            except Exception as e:
                raise IndexStoreError(f"Failed to optimize index: {e}") from e
        log.debug("optimized_index", index_path=str(self.index_path))

    def search(self, query_embedding: list[float], limit: int = 10) -> list[CodeChunk]:
        """Nearest chunks to a vector by cosine distance.

        Args:
            query_embedding: The query vector.
            limit: Maximum number of results.

        Returns:
            Chunks, nearest first.
        """
        with self._lock:
            table = self._require_table()
            if table.count_rows() == 0:
                return []
            rows = table.search(query_embedding).distance_type("cosine").limit(limit).to_list()
        return [_row_to_chunk(row) for row in rows]

    def get_chunks_by_file(self, file_path: str) -> list[CodeChunk]:
        """All stored chunks of one file, ordered by line."""
        predicate = f"file_path = {_quote(file_path)}"
        with self._lock:
            table = self._require_table()
            total = table.count_rows(predicate)
            if total == 0:
                return []
            rows = table.search().where(predicate).limit(total).to_list()
        return sorted((_row_to_chunk(row) for row in rows), key=lambda c: (c.line_start, c.line_end))

    def get_indexed_files(self) -> list[str]:
        """Get list of all indexed file paths.

        Returns:
            Sorted unique file paths in the store.
        """
        with self._lock:
            data = self._require_table().to_arrow().select(["file_path"])
        return sorted(pc.unique(data["file_path"]).to_pylist())

    def count(self) -> int:
        """Count total chunks in the store."""
        with self._lock:
            return self._require_table().count_rows()

    def stats(self) -> StoreStats:
        with self._lock:
            data = self._require_table().to_arrow().select(["file_path", "project_name"])
            last_committed = self._last_committed
        return StoreStats(
            total_chunks=data.num_rows,
            total_files=len(pc.unique(data["file_path"])),
            total_projects=len(pc.unique(data["project_name"])),
            last_committed=last_committed,
            embedding_dimension=self.dimension,
            embedding_model=self.model_name,
        )

    def delete_by_project(self, project_name: str) -> None:
        """Delete every chunk of a project, after any buffered writes."""
        with self._lock:
            self._pending.append(_PendingDelete(f"project_name = {_quote(project_name)}"))
            self._apply_pending()
        log.info("deleted_project_chunks", project_name=project_name)

    def clear(self) -> None:
        """Delete all chunks and drop buffered writes."""
        with self._lock:
            if self._db is None:
                return
            self._pending.clear()
            self._buffered_rows = 0
            self._db.drop_table(TABLE_NAME)
            self._table = self._db.create_table(TABLE_NAME, schema=self._schema)
            log.debug("cleared_store", table=TABLE_NAME)

    def _require_table(self) -> lancedb.table.Table:
        if self._table is None:
            raise IndexStoreError("Vector store is not initialized")
        return self._table

    def _apply_pending(self) -> None:
        """Apply buffered operations in order. Caller holds the lock.

        On failure the failed operation and everything after it stay buffered,
        so a later commit retries them.
        """
        table = self._require_table()
        pending, self._pending = self._pending, []
        self._buffered_rows = 0
        for position, op in enumerate(pending):
            try:
                self._apply(table, op)
            except Exception as e:
                self._pending = pending[position:] + self._pending
                self._buffered_rows = sum(len(p.rows) for p in self._pending if isinstance(p, _PendingUpsert))
                log.error("pending_write_failed", error=str(e), operations_kept=len(self._pending))
                raise IndexStoreError(f"Failed to write to index: {e}") from e
        if pending:
            log.debug("applied_pending_writes", operations=len(pending))

    def _apply(self, table: lancedb.table.Table, op: _PendingUpsert | _PendingDelete) -> None:
        if isinstance(op, _PendingDelete):
            table.delete(op.predicate)
            return
        # A later row for the same id wins, merge_insert rejects duplicate keys
        rows = list({row["id"]: row for row in op.rows}.values())
        (
            table.merge_insert("id")
            .when_matched_update_all()
            .when_not_matched_insert_all()
            .execute(pa.Table.from_pylist(rows, schema=self._schema))
        )


def _row_to_chunk(row: dict) -> CodeChunk:
    return CodeChunk(
        file_path=row["file_path"],
        project_name=row["project_name"],
        line_start=int(row["line_start"]),
        line_end=int(row["line_end"]),
        content=row["content"],
        chunk_type=ChunkType(row["chunk_type"]),
        name=row["name"],
        language=row["language"],
    )
