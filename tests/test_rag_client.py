"""Tests for the vector store gateway against a fake Qdrant HTTP API."""

import json
import math

import httpx
import pytest

from shared.clients.errors import VectorDimensionError, VectorIntegrityError
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.models.Filter import AndFilter, FieldCondition, any_of, where
from shared.clients.rag.models.VectorPoint import VectorPayload, VectorPoint
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.models.search import SearchRequest

COLLECTION = "/collections/test_chunks"
HIDDEN_CLAUSE = {"must": [{"key": "hidden", "match": {"value": False}}]}


def _point(document_id: int = 1, ordinal: int = 0, vector: list[float] | None = None) -> VectorPoint:
    return VectorPoint.for_chunk(
        vector=vector if vector is not None else [0.1, 0.2, 0.3, 0.4],
        payload=VectorPayload(
            document_id=document_id,
            chunk_ordinal=ordinal,
            chunk_text=f"chunk {ordinal}",
            title="Title",
            hidden=False,
            created_at=0,
            chunk_id=f"chunk_{document_id}_paragraph_{ordinal:016d}",
        ),
    )


class QdrantServer:
    """Fake Qdrant REST API recording every request."""

    def __init__(self, exists: bool = True, collection_size: int = 4):
        self.exists = exists
        self.collection_size = collection_size
        self.calls: list[tuple[str, str, dict | None, dict]] = []
        self.transport_errors: dict[str, int] = {}
        self.status_overrides: dict[str, int] = {}
        self.hits: list[dict] = []

    def requests_to(self, method: str, path: str) -> list[dict | None]:
        return [body for m, p, body, _ in self.calls if m == method and p == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, body, dict(request.url.params)))

        if self.transport_errors.get(path, 0) > 0:
            self.transport_errors[path] -= 1
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.status_overrides:
            return httpx.Response(self.status_overrides[path], json={"status": {"error": "boom"}})

        if path == "/healthz":
            return httpx.Response(200, text="healthz check passed")
        if path == f"{COLLECTION}/exists":
            return httpx.Response(200, json={"result": {"exists": self.exists}})
        if path == COLLECTION and request.method == "GET":
            return httpx.Response(200, json={"result": {"config": {"params": {
                "vectors": {"size": self.collection_size, "distance": "Cosine"},
            }}}})
        if path == f"{COLLECTION}/points/search":
            return httpx.Response(200, json={"result": self.hits})
        if path == f"{COLLECTION}/points/count":
            return httpx.Response(200, json={"result": {"count": 3}})
        return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})


@pytest.fixture
async def qdrant(helper_config):
    server = QdrantServer()
    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(server))
    yield client, server
    await client.close()


class TestValidation:

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejects_whole_batch(self, qdrant):
        client, server = qdrant
        with pytest.raises(VectorDimensionError, match="item 1"):
            await client.do_upsert_vectors([_point(ordinal=0), _point(ordinal=1, vector=[1.0, 2.0, 3.0])])
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_non_finite_values_rejected(self, qdrant):
        client, server = qdrant
        with pytest.raises(VectorIntegrityError) as exc_info:
            await client.do_upsert_vectors([_point(ordinal=0), _point(ordinal=1, vector=[0.1, math.nan, 0.2, 0.3])])
        assert exc_info.value.item_index == 1
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_infinity_rejected(self, qdrant):
        client, _ = qdrant
        with pytest.raises(VectorIntegrityError):
            await client.do_upsert_vectors([_point(vector=[math.inf, 0.0, 0.0, 0.0])])


class TestUpsert:

    @pytest.mark.asyncio
    async def test_upsert_verifies_collection_once_and_waits(self, qdrant):
        client, server = qdrant
        assert await client.do_upsert_vectors([_point(ordinal=0), _point(ordinal=1)]) == 2
        assert await client.do_upsert_vectors([_point(ordinal=2)]) == 1
        assert len(server.requests_to("GET", COLLECTION)) == 1
        upserts = [(body, params) for m, p, body, params in server.calls if m == "PUT" and p == f"{COLLECTION}/points"]
        assert len(upserts) == 2
        body, params = upserts[0]
        assert params == {"wait": "true"}
        assert [point["id"] for point in body["points"]] == [100000, 100001]
        assert body["points"][0]["payload"]["hidden"] is False
        assert [point["payload"]["chunk_ordinal"] for point in body["points"]] == [0, 1]

    @pytest.mark.asyncio
    async def test_upsert_in_batches(self, helper_config, monkeypatch):
        monkeypatch.setenv("RAG_QDRANT_UPSERT_BATCH_SIZE", "2")
        server = QdrantServer()
        client = RAGClientQdrant(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(server))
        try:
            assert await client.do_upsert_vectors([_point(ordinal=i) for i in range(5)]) == 5
        finally:
            await client.close()
        sizes = [len(body["points"]) for body in server.requests_to("PUT", f"{COLLECTION}/points")]
        assert sizes == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_collection_dimension_mismatch(self, qdrant):
        client, server = qdrant
        server.collection_size = 8
        with pytest.raises(VectorDimensionError):
            await client.do_upsert_vectors([_point()])
        assert server.requests_to("PUT", f"{COLLECTION}/points") == []

    @pytest.mark.asyncio
    async def test_empty_upsert_sends_nothing(self, qdrant):
        client, server = qdrant
        assert await client.do_upsert_vectors([]) == 0
        assert server.calls == []


class TestDelete:

    @pytest.mark.asyncio
    async def test_mixed_identifiers(self, qdrant):
        client, server = qdrant
        count = await client.do_delete_by_chunk_ids([100001, "100002", "chunk_1_paragraph_abcdef0123456789"])
        assert count == 3
        bodies = server.requests_to("POST", f"{COLLECTION}/points/delete")
        assert bodies[0] == {"points": [100001, 100002]}
        assert bodies[1] == {"filter": {"must": [
            {"key": "chunk_id", "match": {"any": ["chunk_1_paragraph_abcdef0123456789"]}},
        ]}}

    @pytest.mark.asyncio
    async def test_only_point_ids(self, qdrant):
        client, server = qdrant
        await client.do_delete_by_chunk_ids([5, 6])
        assert server.requests_to("POST", f"{COLLECTION}/points/delete") == [{"points": [5, 6]}]

    @pytest.mark.asyncio
    async def test_bool_identifier_rejected(self, qdrant):
        client, server = qdrant
        with pytest.raises(ValueError):
            await client.do_delete_by_chunk_ids([True])
        assert server.calls == []

    @pytest.mark.asyncio
    async def test_delete_by_document(self, qdrant):
        client, server = qdrant
        await client.do_delete_by_document(7)
        assert server.requests_to("POST", f"{COLLECTION}/points/delete") == [
            {"filter": {"must": [{"key": "document_id", "match": {"value": 7}}]}},
        ]

    @pytest.mark.asyncio
    async def test_update_document_payload(self, qdrant):
        client, server = qdrant
        await client.do_update_document_payload(7, {"hidden": True, "title": "New"})
        assert server.requests_to("POST", f"{COLLECTION}/points/payload") == [{
            "payload": {"hidden": True, "title": "New"},
            "filter": {"must": [{"key": "document_id", "match": {"value": 7}}]},
        }]


class TestSearch:

    @pytest.mark.asyncio
    async def test_visibility_filter_always_applied(self, qdrant):
        client, server = qdrant
        server.hits = [{"id": 100000, "score": 0.9, "payload": {"document_id": 1, "chunk_text": "a"}}]
        hits = await client.do_search([0.1, 0.2, 0.3, 0.4], limit=5)
        body = server.requests_to("POST", f"{COLLECTION}/points/search")[0]
        assert body["filter"] == HIDDEN_CLAUSE
        assert body["limit"] == 5
        assert body["with_payload"] is True
        assert hits[0].id == 100000
        assert hits[0].score == 0.9
        assert hits[0].payload["chunk_text"] == "a"

    @pytest.mark.asyncio
    async def test_caller_filter_cannot_lift_visibility(self, qdrant):
        client, server = qdrant
        await client.do_search([0.1, 0.2, 0.3, 0.4], filter=where("hidden", "eq", True))
        body = server.requests_to("POST", f"{COLLECTION}/points/search")[0]
        assert body["filter"] == {"must": [
            HIDDEN_CLAUSE,
            {"must": [{"key": "hidden", "match": {"value": True}}]},
        ]}

    @pytest.mark.asyncio
    async def test_count(self, qdrant):
        client, server = qdrant
        assert await client.do_count_document_vectors(3) == 3
        assert server.requests_to("POST", f"{COLLECTION}/points/count")[0] == {
            "filter": {"must": [{"key": "document_id", "match": {"value": 3}}]},
            "exact": True,
        }


class TestRetry:

    @pytest.mark.asyncio
    async def test_transient_network_error_retried(self, qdrant):
        client, server = qdrant
        server.transport_errors[f"{COLLECTION}/points/search"] = 2
        await client.do_search([0.1, 0.2, 0.3, 0.4])
        assert len(server.requests_to("POST", f"{COLLECTION}/points/search")) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, qdrant):
        client, server = qdrant
        server.transport_errors[f"{COLLECTION}/points/delete"] = 10
        with pytest.raises(httpx.ConnectError):
            await client.do_delete_by_document(1)
        assert len(server.requests_to("POST", f"{COLLECTION}/points/delete")) == 3

    @pytest.mark.asyncio
    async def test_error_status_not_retried(self, qdrant):
        client, server = qdrant
        server.status_overrides[f"{COLLECTION}/points"] = 500
        with pytest.raises(Exception, match="status 500"):
            await client.do_upsert_vectors([_point()])
        assert len(server.requests_to("PUT", f"{COLLECTION}/points")) == 1


class TestCollection:

    @pytest.mark.asyncio
    async def test_creates_missing_collection(self, qdrant):
        client, server = qdrant
        server.exists = False
        assert await client.do_ensure_collection() is True
        assert server.requests_to("PUT", COLLECTION) == [{"vectors": {"size": 4, "distance": "Cosine"}}]
        assert server.requests_to("PUT", f"{COLLECTION}/index") == [
            {"field_name": "document_id", "field_schema": "integer"},
        ]

    @pytest.mark.asyncio
    async def test_existing_collection_verified(self, qdrant):
        client, server = qdrant
        assert await client.do_ensure_collection() is False
        assert server.requests_to("PUT", COLLECTION) == []

    @pytest.mark.asyncio
    async def test_existing_collection_with_other_dimension(self, qdrant):
        client, server = qdrant
        server.collection_size = 1024
        with pytest.raises(VectorDimensionError):
            await client.do_ensure_collection()

    @pytest.mark.asyncio
    async def test_healthcheck(self, qdrant):
        client, server = qdrant
        response = await client.do_healthcheck()
        assert response.status_code == 200


class TestFilterTranslation:

    def test_operators(self, helper_config):
        client = RAGClientQdrant(helper_config=helper_config)
        assert client.translate_filter(where("title", "ne", "x")) == {
            "must": [{"must_not": [{"key": "title", "match": {"value": "x"}}]}],
        }
        assert client.translate_filter(where("document_id", "in", [1, 2])) == {
            "must": [{"key": "document_id", "match": {"any": [1, 2]}}],
        }
        assert client.translate_filter(where("created_at", "gte", 10)) == {
            "must": [{"key": "created_at", "range": {"gte": 10}}],
        }

    def test_or(self, helper_config):
        client = RAGClientQdrant(helper_config=helper_config)
        predicate = any_of(where("document_id", "eq", 1), where("document_id", "eq", 2))
        assert client.translate_filter(predicate) == {"should": [
            {"must": [{"key": "document_id", "match": {"value": 1}}]},
            {"must": [{"key": "document_id", "match": {"value": 2}}]},
        ]}

    def test_predicate_parsed_from_request_body(self):
        request = SearchRequest.model_validate({
            "query": "term",
            "filter": {"kind": "and", "clauses": [
                {"kind": "field", "key": "document_id", "op": "eq", "value": 4},
                {"kind": "field", "key": "title", "op": "ne", "value": "Draft"},
            ]},
        })
        assert isinstance(request.filter, AndFilter)
        assert isinstance(request.filter.clauses[0], FieldCondition)
        assert request.filter.clauses[1].op.value == "ne"

    def test_manager_builds_qdrant(self, helper_config):
        assert isinstance(RAGClientManager(helper_config=helper_config).get_client(), RAGClientQdrant)
