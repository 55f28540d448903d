"""Tests for LanceDB storage layer."""

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import DIM, make_chunk, vector_for

from semantic_code_index.errors import IndexStoreError
from semantic_code_index.storage.lancedb import LanceDBVectorStore


def store_chunks(store: LanceDBVectorStore, chunks) -> None:
    store.upsert_chunks(chunks, [vector_for(c.content) for c in chunks])


class TestLanceDBVectorStore:
    """Tests for LanceDBVectorStore."""

    def test_initialize_is_idempotent(self, vector_store: LanceDBVectorStore):
        vector_store.initialize()

        assert vector_store.count() == 0

    def test_reopen_keeps_data(self, tmp_path: Path, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk()])
        vector_store.commit()

        reopened = LanceDBVectorStore(tmp_path / "index", dimension=DIM)
        reopened.initialize()

        assert reopened.count() == 1

    def test_dimension_mismatch_on_open(self, tmp_path: Path, vector_store: LanceDBVectorStore):
        other = LanceDBVectorStore(tmp_path / "index", dimension=DIM * 2)

        with pytest.raises(IndexStoreError, match="dimension"):
            other.initialize()

    def test_unusable_path(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        store = LanceDBVectorStore(blocker / "index", dimension=DIM)

        with pytest.raises(IndexStoreError):
            store.initialize()

    def test_uninitialized_store_raises(self, tmp_path: Path):
        store = LanceDBVectorStore(tmp_path / "index", dimension=DIM)

        with pytest.raises(IndexStoreError):
            store.count()

    def test_writes_invisible_until_commit(self, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk()])

        assert vector_store.count() == 0

        vector_store.commit()
        assert vector_store.count() == 1

    def test_store_and_search(self, vector_store: LanceDBVectorStore):
        """Search returns items ranked by similarity."""
        foo = make_chunk(file_path="/a.py", line_start=1, line_end=5, name="foo")
        bar = make_chunk(file_path="/b.py", line_start=1, line_end=5, name="bar")
        store_chunks(vector_store, [foo, bar])
        vector_store.commit()

        results = vector_store.search(vector_for(bar.content), limit=2)

        assert [r.name for r in results] == ["bar", "foo"]
        assert results[0] == bar

    def test_search_empty_store(self, vector_store: LanceDBVectorStore):
        assert vector_store.search(vector_for("anything")) == []

    def test_search_respects_limit(self, vector_store: LanceDBVectorStore):
        chunks = [make_chunk(line_start=i, line_end=i, name=f"fn{i}") for i in range(1, 11)]
        store_chunks(vector_store, chunks)
        vector_store.commit()

        assert len(vector_store.search(vector_for("fn1"), limit=3)) == 3

    def test_upsert_replaces_same_id(self, vector_store: LanceDBVectorStore):
        """A chunk with the same file and lines replaces the stored one."""
        store_chunks(vector_store, [make_chunk(content="old body")])
        vector_store.commit()

        store_chunks(vector_store, [make_chunk(content="new body")])
        vector_store.commit()

        chunks = vector_store.get_chunks_by_file("/path/to/file.py")
        assert [c.content for c in chunks] == ["new body"]

    def test_duplicate_ids_in_one_commit(self, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk(content="first")])
        store_chunks(vector_store, [make_chunk(content="second")])
        vector_store.commit()

        assert [c.content for c in vector_store.get_chunks_by_file("/path/to/file.py")] == ["second"]

    def test_delete_then_upsert_applied_in_order(self, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk(line_start=1, line_end=2), make_chunk(line_start=3, line_end=4)])
        vector_store.commit()

        vector_store.delete_by_file("/path/to/file.py")
        store_chunks(vector_store, [make_chunk(line_start=5, line_end=6)])
        vector_store.commit()

        chunks = vector_store.get_chunks_by_file("/path/to/file.py")
        assert [(c.line_start, c.line_end) for c in chunks] == [(5, 6)]

    def test_failed_commit_keeps_unapplied_writes(self, vector_store: LanceDBVectorStore):
        """A write error leaves the failed and later writes buffered for the next commit."""
        store_chunks(vector_store, [make_chunk(content="old body")])
        vector_store.commit()

        vector_store.delete_by_file("/path/to/file.py")
        store_chunks(vector_store, [make_chunk(content="new body")])
        table_type = type(vector_store._table)
        with patch.object(table_type, "merge_insert", side_effect=RuntimeError("disk full")):
            with pytest.raises(IndexStoreError, match="disk full"):
                vector_store.commit()

        assert vector_store.count() == 0

        vector_store.commit()

        assert vector_store.count() == 1
        assert [c.content for c in vector_store.get_chunks_by_file("/path/to/file.py")] == ["new body"]

    def test_delete_by_file_only_touches_that_file(self, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk(file_path="/a.py"), make_chunk(file_path="/b.py")])
        vector_store.commit()

        vector_store.delete_by_file("/a.py")
        vector_store.commit()

        assert vector_store.get_indexed_files() == ["/b.py"]

    def test_path_with_quote(self, vector_store: LanceDBVectorStore):
        path = "/it's/here.py"
        store_chunks(vector_store, [make_chunk(file_path=path)])
        vector_store.commit()

        assert len(vector_store.get_chunks_by_file(path)) == 1

        vector_store.delete_by_file(path)
        vector_store.commit()
        assert vector_store.count() == 0

    def test_chunks_by_file_sorted_by_line(self, vector_store: LanceDBVectorStore):
        store_chunks(
            vector_store,
            [make_chunk(line_start=20, line_end=25), make_chunk(line_start=1, line_end=5)],
        )
        vector_store.commit()

        chunks = vector_store.get_chunks_by_file("/path/to/file.py")

        assert [c.line_start for c in chunks] == [1, 20]
        assert vector_store.get_chunks_by_file("/missing.py") == []

    def test_get_indexed_files(self, vector_store: LanceDBVectorStore):
        store_chunks(
            vector_store,
            [
                make_chunk(file_path="/b.py", line_start=1, line_end=1),
                make_chunk(file_path="/a.py"),
                make_chunk(file_path="/b.py", line_start=2, line_end=2),
            ],
        )
        vector_store.commit()

        assert vector_store.get_indexed_files() == ["/a.py", "/b.py"]

    def test_delete_by_project(self, vector_store: LanceDBVectorStore):
        store_chunks(
            vector_store,
            [make_chunk(file_path="/a.py", project_name="one"), make_chunk(file_path="/b.py", project_name="two")],
        )
        vector_store.commit()

        vector_store.delete_by_project("one")

        assert vector_store.get_indexed_files() == ["/b.py"]

    def test_write_buffer_flushes_early(self, tmp_path: Path):
        store = LanceDBVectorStore(tmp_path / "index", dimension=DIM, write_buffer_rows=2)
        store.initialize()

        store_chunks(store, [make_chunk(line_start=1, line_end=1)])
        assert store.count() == 0

        store_chunks(store, [make_chunk(line_start=2, line_end=2)])
        assert store.count() == 2

    def test_stats(self, vector_store: LanceDBVectorStore):
        empty = vector_store.stats()
        assert empty.is_empty
        assert empty.last_committed is None

        store_chunks(
            vector_store,
            [
                make_chunk(file_path="/a.py", project_name="one", line_start=1, line_end=1),
                make_chunk(file_path="/a.py", project_name="one", line_start=2, line_end=2),
                make_chunk(file_path="/b.py", project_name="two"),
            ],
        )
        vector_store.commit()
        stats = vector_store.stats()

        assert stats.total_chunks == 3
        assert stats.total_files == 2
        assert stats.total_projects == 2
        assert stats.last_committed is not None
        assert stats.embedding_dimension == DIM
        assert stats.embedding_model == "test-model"

    def test_optimize(self, vector_store: LanceDBVectorStore):
        for i in range(1, 4):
            store_chunks(vector_store, [make_chunk(line_start=i, line_end=i)])
            vector_store.commit()

        vector_store.optimize()

        assert vector_store.count() == 3

    def test_clear(self, vector_store: LanceDBVectorStore):
        store_chunks(vector_store, [make_chunk()])
        vector_store.commit()
        store_chunks(vector_store, [make_chunk(line_start=30, line_end=31)])

        vector_store.clear()
        vector_store.commit()

        assert vector_store.count() == 0

    def test_upsert_validation(self, vector_store: LanceDBVectorStore):
        with pytest.raises(ValueError, match="embeddings"):
            vector_store.upsert_chunks([make_chunk()], [])
        with pytest.raises(ValueError, match="dimension"):
            vector_store.upsert_chunks([make_chunk()], [[0.1] * (DIM + 1)])
