"""Tests for the SQLite document store's index bookkeeping."""

import sqlite3

import pytest

from shared.clients.docstore.sqlite.DocStoreSqlite import DocStoreSqlite

# documents table as written before the indexed title and visibility were stored
OLD_DOCUMENTS_TABLE = """
    CREATE TABLE documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        hidden INTEGER NOT NULL DEFAULT 0,
        is_deleted INTEGER NOT NULL DEFAULT 0,
        index_status TEXT,
        index_error TEXT,
        index_updated_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""


class TestIndexedPayload:

    @pytest.mark.asyncio
    async def test_snapshot_records_title_and_visibility(self, doc_store):
        await doc_store.do_save_document(title="Doc", content="text", document_id=1)
        await doc_store.do_replace_chunks(1, chunks=[], title="Doc", hidden=True)

        status = (await doc_store.do_fetch_document(1)).index_status
        assert status.indexed_title == "Doc"
        assert status.indexed_hidden is True

    @pytest.mark.asyncio
    async def test_delete_chunks_forgets_indexed_payload(self, doc_store):
        await doc_store.do_save_document(title="Doc", content="text", document_id=1)
        await doc_store.do_replace_chunks(1, chunks=[], title="Doc", hidden=False)
        await doc_store.do_delete_chunks(1)

        status = (await doc_store.do_fetch_document(1)).index_status
        assert status.indexed_title is None
        assert status.indexed_hidden is None

    @pytest.mark.asyncio
    async def test_older_database_gains_columns(self, helper_config, tmp_path, monkeypatch):
        db_path = tmp_path / "documents.db"
        conn = sqlite3.connect(db_path)
        conn.execute(OLD_DOCUMENTS_TABLE)
        conn.execute(
            "INSERT INTO documents (id, title, content, created_at, updated_at) VALUES (7, 'Old', 'text', 'x', 'x')"
        )
        conn.commit()
        conn.close()
        monkeypatch.setenv("DOCSTORE_SQLITE_PATH", str(db_path))

        store = DocStoreSqlite(helper_config=helper_config)
        await store.boot()
        try:
            document = await store.do_fetch_document(7)
            assert document.title == "Old"
            assert document.index_status.indexed_title is None

            await store.do_replace_chunks(7, chunks=[], title="Old", hidden=False)
            assert (await store.do_fetch_document(7)).index_status.indexed_hidden is False
        finally:
            await store.close()

        # a second boot finds the columns and leaves them alone
        store = DocStoreSqlite(helper_config=helper_config)
        await store.boot()
        try:
            assert (await store.do_fetch_document(7)).index_status.indexed_title == "Old"
        finally:
            await store.close()
