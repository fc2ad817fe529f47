"""Tests for the HTTP API: auth, webhook, index and query routes.

The lifespan is not run; app.state is wired with the SQLite store, the fakes
and a queue that is not started, so queued tasks stay visible.
"""

import httpx
import pytest

from server.api.api_app import app
from server.api.services.QueryService import QueryService
from services.doc_index.IndexQueue import IndexQueue
from services.doc_index.IndexingService import IndexingService

HEADERS = {"X-API-Key": "test-key"}


@pytest.fixture
async def api(helper_config, doc_store, mock_embed_client, mock_rag_client):
    indexing_service = IndexingService(
        helper_config=helper_config,
        doc_store=doc_store,
        embed_client=mock_embed_client,
        rag_client=mock_rag_client,
    )
    app.state.config = helper_config
    app.state.logging = helper_config.get_logger()
    app.state.doc_store = doc_store
    app.state.indexing_service = indexing_service
    app.state.index_queue = IndexQueue(helper_config=helper_config, indexing_service=indexing_service, doc_store=doc_store)
    app.state.query_service = QueryService(helper_config=helper_config, indexing_service=indexing_service)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestAuth:

    @pytest.mark.asyncio
    async def test_missing_key(self, api):
        response = await api.get("/index/queue")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_key(self, api):
        response = await api.get("/index/queue", headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_key(self, api):
        response = await api.get("/index/queue", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["queue_length"] == 0


class TestWebhook:

    @pytest.mark.asyncio
    async def test_updated_document_queued_for_reindex(self, api, doc_store):
        await doc_store.do_save_document(title="Doc", content="## A\nfoo", document_id=3)
        response = await api.post("/webhook/document", json={"document_id": 3, "event": "updated"}, headers=HEADERS)

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "document_id": 3, "action": "reindex", "queued": True}
        queue = (await api.get("/index/queue", headers=HEADERS)).json()
        assert queue["queued_tasks"][0]["document_id"] == 3
        assert queue["queued_tasks"][0]["title"] == "Doc"

    @pytest.mark.asyncio
    async def test_deleted_event_queues_removal(self, api, doc_store):
        await doc_store.do_save_document(title="Doc", content="## A\nfoo", document_id=3)
        response = await api.post("/webhook/document", json={"document_id": 3, "event": "deleted"}, headers=HEADERS)
        assert response.json()["action"] == "remove"
        queue = (await api.get("/index/queue", headers=HEADERS)).json()
        assert queue["queued_tasks"][0]["remove"] is True

    @pytest.mark.asyncio
    async def test_unknown_document_queues_removal(self, api):
        response = await api.post("/webhook/document", json={"document_id": 77}, headers=HEADERS)
        assert response.status_code == 202
        assert response.json()["action"] == "remove"

    @pytest.mark.asyncio
    async def test_duplicate_event_not_queued_twice(self, api, doc_store):
        await doc_store.do_save_document(title="Doc", content="## A\nfoo", document_id=3)
        await api.post("/webhook/document", json={"document_id": 3}, headers=HEADERS)
        response = await api.post("/webhook/document", json={"document_id": 3}, headers=HEADERS)
        assert response.json()["queued"] is False


class TestIndexRoutes:

    @pytest.mark.asyncio
    async def test_reindex_unknown_document(self, api):
        response = await api.post("/index/5", headers=HEADERS)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_reindex_with_body_overrides(self, api, doc_store):
        await doc_store.do_save_document(title="Stored", content="## A\nfoo", document_id=5)
        response = await api.post("/index/5", json={"title": "Override", "priority": 1}, headers=HEADERS)

        assert response.status_code == 202
        assert response.json()["queued"] is True
        task = (await api.get("/index/queue", headers=HEADERS)).json()["queued_tasks"][0]
        assert task["title"] == "Override"
        assert task["priority"] == 1

    @pytest.mark.asyncio
    async def test_remove(self, api):
        response = await api.delete("/index/5", headers=HEADERS)
        assert response.status_code == 202
        assert response.json()["queued"] is True

    @pytest.mark.asyncio
    async def test_document_status(self, api, doc_store):
        await doc_store.do_save_document(title="Doc", content="## A\nfoo", document_id=5)
        await api.post("/index/5", headers=HEADERS)
        response = await api.get("/index/5", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == 1
        assert body["is_deleted"] is False
        assert body["index_status"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_document_status_unknown(self, api):
        response = await api.get("/index/5", headers=HEADERS)
        assert response.status_code == 404


class TestQuery:

    async def _index(self, doc_store, document_id: int, content: str, hidden: bool = False) -> None:
        document = await doc_store.do_save_document(title=f"Doc {document_id}", content=content, hidden=hidden, document_id=document_id)
        await app.state.indexing_service.do_index_document(
            document_id=document.id, version=document.version, title=document.title, content=document.content, hidden=hidden,
        )

    @pytest.mark.asyncio
    async def test_text_query(self, api, doc_store):
        await self._index(doc_store, 1, "## A\nfoo")
        await self._index(doc_store, 2, "## A\nsecret", hidden=True)
        response = await api.post("/query", json={"query": "foo", "limit": 5}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["query"] == "foo"
        assert body["total"] == 1
        assert body["results"][0]["document_id"] == 1
        assert body["results"][0]["chunk_text"] == "foo"
        assert body["results"][0]["title"] == "Doc 1"

    @pytest.mark.asyncio
    async def test_vector_query(self, api, doc_store):
        await self._index(doc_store, 1, "## A\nfoo")
        response = await api.post("/query/vector", json={"vector": [0.1, 0.2, 0.3, 0.4]}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_query_with_filter(self, api, doc_store, mock_rag_client):
        body = {"query": "foo", "filter": {"kind": "field", "key": "document_id", "op": "eq", "value": 1}}
        response = await api.post("/query", json=body, headers=HEADERS)
        assert response.status_code == 200
        assert mock_rag_client.search_filters[0].key == "document_id"

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, api):
        response = await api.post("/query", json={"query": ""}, headers=HEADERS)
        assert response.status_code == 422
