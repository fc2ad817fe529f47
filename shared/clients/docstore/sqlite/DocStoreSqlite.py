"""
Document store using SQLite.

Holds the documents table (source of truth for title, content, version and
visibility) and the chunk snapshot table the indexer diffs against. Vectors
live in the vector database, keyed by the point ids stored in embedding_ref.
"""

import os
import sqlite3
from datetime import datetime, timezone

from shared.clients.docstore.DocStoreInterface import DocStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import Chunk, ChunkType
from shared.models.config import EnvConfig
from shared.models.document import Document, DocumentIndexStatus, IndexStatus


class DocStoreSqlite(DocStoreInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._db_path = self.get_config_val("PATH", default="data/documents.db", val_type="string")
        self._conn: sqlite3.Connection | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Sqlite"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="string", default="data/documents.db"),
        ]

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise Exception("Document store not initialised. Call boot() before making requests.")
        return self._conn

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        if self._db_path != ":memory:":
            directory = os.path.dirname(os.path.abspath(self._db_path))
            os.makedirs(directory, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()
        self.logging.debug("Document store '%s' opened at %s", self.get_engine_name(), self._db_path)

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _init_db(self) -> None:
        """Create tables and indexes if missing."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                hidden INTEGER NOT NULL DEFAULT 0,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                index_status TEXT,
                index_error TEXT,
                index_updated_at TEXT,
                indexed_title TEXT,
                indexed_hidden INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS document_chunks (
                stable_id TEXT NOT NULL,
                document_id INTEGER NOT NULL,
                version INTEGER NOT NULL,
                chunk_type TEXT NOT NULL,
                content TEXT NOT NULL,
                normalized_content TEXT NOT NULL,
                content_hash TEXT NOT NULL,
                position INTEGER NOT NULL,
                chunk_ordinal INTEGER,
                embedding_ref INTEGER,
                PRIMARY KEY (document_id, stable_id)
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_document_chunks_version
            ON document_chunks(document_id, version)
        """)
        conn.commit()
        self._migrate()

    def _migrate(self) -> None:
        """Add columns that databases created by older versions lack."""
        conn = self._get_connection()
        columns = {row[1] for row in conn.execute("PRAGMA table_info(documents)").fetchall()}
        if "indexed_title" not in columns:
            conn.execute("ALTER TABLE documents ADD COLUMN indexed_title TEXT")
            conn.execute("ALTER TABLE documents ADD COLUMN indexed_hidden INTEGER")
            conn.commit()

    ##########################################
    ############### CONVERTER ################
    ##########################################

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        last_success = row["index_updated_at"]
        return Document(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            version=row["version"],
            hidden=bool(row["hidden"]),
            is_deleted=bool(row["is_deleted"]),
            index_status=DocumentIndexStatus(
                status=IndexStatus(row["index_status"]) if row["index_status"] else None,
                error=row["index_error"],
                last_success_at=datetime.fromisoformat(last_success) if last_success else None,
                indexed_title=row["indexed_title"],
                indexed_hidden=bool(row["indexed_hidden"]) if row["indexed_hidden"] is not None else None,
            ),
        )

    def _row_to_chunk(self, row: sqlite3.Row) -> Chunk:
        return Chunk(
            stable_id=row["stable_id"],
            document_id=row["document_id"],
            version=row["version"],
            chunk_type=ChunkType(row["chunk_type"]),
            content=row["content"],
            normalized_content=row["normalized_content"],
            content_hash=row["content_hash"],
            position=row["position"],
            chunk_ordinal=row["chunk_ordinal"],
            embedding_ref=row["embedding_ref"],
        )

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    async def do_fetch_document(self, document_id: int) -> Document | None:
        row = self._get_connection().execute(
            "SELECT * FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return self._row_to_document(row) if row else None

    async def do_fetch_documents(self, include_deleted: bool = False) -> list[Document]:
        query = "SELECT * FROM documents"
        if not include_deleted:
            query += " WHERE is_deleted = 0"
        rows = self._get_connection().execute(query + " ORDER BY id").fetchall()
        return [self._row_to_document(row) for row in rows]

    async def do_save_document(self, title: str, content: str, hidden: bool = False, document_id: int | None = None) -> Document:
        conn = self._get_connection()
        now = self._now()
        existing = await self.do_fetch_document(document_id) if document_id is not None else None

        if existing is None:
            if document_id is None:
                cursor = conn.execute("""
                    INSERT INTO documents (title, content, version, hidden, created_at, updated_at)
                    VALUES (?, ?, 1, ?, ?, ?)
                """, (title, content, int(hidden), now, now))
                document_id = cursor.lastrowid
            else:
                conn.execute("""
                    INSERT INTO documents (id, title, content, version, hidden, created_at, updated_at)
                    VALUES (?, ?, ?, 1, ?, ?, ?)
                """, (document_id, title, content, int(hidden), now, now))
        elif (existing.title, existing.content, existing.hidden, existing.is_deleted) != (title, content, hidden, False):
            conn.execute("""
                UPDATE documents
                SET title = ?, content = ?, hidden = ?, is_deleted = 0, version = version + 1, updated_at = ?
                WHERE id = ?
            """, (title, content, int(hidden), now, document_id))
        conn.commit()
        return await self.do_fetch_document(document_id)

    async def do_soft_delete_document(self, document_id: int) -> bool:
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE documents SET is_deleted = 1, updated_at = ? WHERE id = ?", (self._now(), document_id)
        )
        conn.commit()
        return cursor.rowcount > 0

    async def do_update_index_status(self, document_id: int, status: IndexStatus, error: str | None = None) -> None:
        conn = self._get_connection()
        if status == IndexStatus.COMPLETED:
            conn.execute("""
                UPDATE documents SET index_status = ?, index_error = NULL, index_updated_at = ?
                WHERE id = ?
            """, (status.value, self._now(), document_id))
        else:
            conn.execute(
                "UPDATE documents SET index_status = ?, index_error = ? WHERE id = ?",
                (status.value, error, document_id),
            )
        conn.commit()

    ##########################################
    ################ CHUNKS ##################
    ##########################################

    async def do_fetch_latest_chunks(self, document_id: int, max_version: int) -> list[Chunk]:
        rows = self._get_connection().execute("""
            SELECT * FROM document_chunks
            WHERE document_id = ?
              AND version = (
                SELECT MAX(version) FROM document_chunks WHERE document_id = ? AND version <= ?
              )
            ORDER BY position
        """, (document_id, document_id, max_version)).fetchall()
        return [self._row_to_chunk(row) for row in rows]

    async def do_replace_chunks(
        self, document_id: int, chunks: list[Chunk], title: str | None = None, hidden: bool | None = None
    ) -> None:
        conn = self._get_connection()
        # one transaction: commit on success, rollback on any error
        with conn:
            conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            conn.execute(
                "UPDATE documents SET indexed_title = ?, indexed_hidden = ? WHERE id = ?",
                (title, int(hidden) if hidden is not None else None, document_id),
            )
            conn.executemany("""
                INSERT INTO document_chunks
                (stable_id, document_id, version, chunk_type, content, normalized_content,
                 content_hash, position, chunk_ordinal, embedding_ref)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    chunk.stable_id, document_id, chunk.version, chunk.chunk_type.value, chunk.content,
                    chunk.normalized_content, chunk.content_hash, chunk.position, chunk.chunk_ordinal,
                    chunk.embedding_ref,
                )
                for chunk in chunks
            ])

    async def do_delete_chunks(self, document_id: int) -> int:
        conn = self._get_connection()
        with conn:
            cursor = conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            conn.execute(
                "UPDATE documents SET indexed_title = NULL, indexed_hidden = NULL WHERE id = ?", (document_id,)
            )
        return cursor.rowcount
