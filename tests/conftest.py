"""
Shared pytest fixtures for the document index tests.

Provides an isolated environment, an in-memory document store and in-process
fakes for the embedding provider and the vector database, so no test needs a
running Ollama or Qdrant.
"""

import hashlib
import logging

import pytest

from shared.clients.docstore.sqlite.DocStoreSqlite import DocStoreSqlite
from shared.clients.rag.models.Filter import Predicate
from shared.clients.rag.models.VectorPoint import SearchHit, VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger

VECTOR_SIZE = 4

TEST_ENV = {
    "APP_API_KEY": "test-key",
    "EMBED_ENGINE": "ollama",
    "EMBED_MODEL": "mock-embed",
    "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
    "RAG_ENGINE": "qdrant",
    "RAG_QDRANT_BASE_URL": "http://qdrant.test",
    "RAG_QDRANT_COLLECTION": "test_chunks",
    "RAG_QDRANT_VECTOR_SIZE": str(VECTOR_SIZE),
    "RAG_QDRANT_RETRY_ATTEMPTS": "3",
    "RAG_QDRANT_RETRY_DELAY": "0",
    "DOCSTORE_ENGINE": "sqlite",
    "DOCSTORE_SQLITE_PATH": ":memory:",
    "QUEUE_CONCURRENCY": "2",
    "QUEUE_MAX_RETRIES": "2",
    "QUEUE_RETRY_DELAY": "0",
    "QUEUE_POLL_INTERVAL": "0.01",
}


class MockEmbedClient:
    """
    Deterministic mock embedding client.

    Vectors are derived from the text hash, so the same text always gets the
    same vector. Every embedded text is recorded.
    """

    embed_model = "mock-embed"

    def __init__(self, dimension: int = VECTOR_SIZE):
        self.dimension = dimension
        self.embedded_texts: list[str] = []
        self.embed_calls = 0
        self.failures: list[Exception] = []

    def vector_for(self, text: str) -> list[float]:
        h = hashlib.md5(text.encode()).hexdigest()
        return [int(h[i:i + 2], 16) / 255.0 + 0.01 for i in range(0, self.dimension * 2, 2)]

    async def do_embed_many(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        texts = [text for text in texts if text and text.strip()]
        self.embedded_texts.extend(texts)
        return [self.vector_for(text) for text in texts]

    async def do_embed_query(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Query text must not be empty.")
        return self.vector_for(text)

    async def do_fetch_embedding_vector_size(self) -> tuple[int, str]:
        return self.dimension, "Cosine"


class MockRAGClient:
    """
    In-memory stand-in for the vector database gateway.

    Keeps points by id and records every write call, search applies the
    hidden == false rule like the real gateway.
    """

    vector_size = VECTOR_SIZE

    def __init__(self):
        self.points: dict[int, VectorPoint] = {}
        self.upsert_calls: list[list[int]] = []
        self.deleted_ids: list[int | str] = []
        self.deleted_documents: list[int] = []
        self.payload_updates: list[tuple[int, dict]] = []
        self.search_filters: list[Predicate | None] = []
        self.failures: list[Exception] = []

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    async def do_upsert_vectors(self, points: list[VectorPoint]) -> int:
        self._maybe_fail()
        if points:
            self.upsert_calls.append([point.id for point in points])
        for point in points:
            self.points[point.id] = point
        return len(points)

    async def do_delete_by_chunk_ids(self, chunk_ids: list[int | str]) -> int:
        self._maybe_fail()
        self.deleted_ids.extend(chunk_ids)
        for chunk_id in chunk_ids:
            if isinstance(chunk_id, int):
                self.points.pop(chunk_id, None)
            else:
                for point_id in [pid for pid, p in self.points.items() if p.payload.chunk_id == chunk_id]:
                    del self.points[point_id]
        return len(chunk_ids)

    async def do_delete_by_document(self, document_id: int) -> None:
        self._maybe_fail()
        self.deleted_documents.append(document_id)
        for point_id in [pid for pid, p in self.points.items() if p.payload.document_id == document_id]:
            del self.points[point_id]

    async def do_update_document_payload(self, document_id: int, payload: dict) -> None:
        self.payload_updates.append((document_id, payload))
        for point_id, point in self.points.items():
            if point.payload.document_id == document_id:
                self.points[point_id] = point.model_copy(update={"payload": point.payload.model_copy(update=payload)})

    async def do_search(self, vector: list[float], limit: int = 10, filter: Predicate | None = None) -> list[SearchHit]:
        self.search_filters.append(filter)
        hits = [
            SearchHit(
                id=point.id,
                score=sum(a * b for a, b in zip(vector, point.vector)),
                payload=point.payload.model_dump(),
            )
            for point in self.points.values()
            if not point.payload.hidden
        ]
        return sorted(hits, key=lambda hit: hit.score, reverse=True)[:limit]

    async def do_count_document_vectors(self, document_id: int) -> int:
        return len(self.document_points(document_id))

    def document_points(self, document_id: int) -> list[VectorPoint]:
        return [point for point in self.points.values() if point.payload.document_id == document_id]


@pytest.fixture
def test_env(monkeypatch):
    """Set the environment every client reads its configuration from."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    return dict(TEST_ENV)


@pytest.fixture
def helper_config(test_env) -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("doc_index.tests")))


@pytest.fixture
async def doc_store(helper_config):
    """A booted, empty in-memory SQLite document store."""
    store = DocStoreSqlite(helper_config=helper_config)
    await store.boot()
    yield store
    await store.close()


@pytest.fixture
def mock_embed_client() -> MockEmbedClient:
    return MockEmbedClient()


@pytest.fixture
def mock_rag_client() -> MockRAGClient:
    return MockRAGClient()
