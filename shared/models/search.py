"""Pydantic models for API requests and responses."""

from typing import Literal

from pydantic import BaseModel, Field

from shared.clients.rag.models.Filter import Predicate


class SearchRequest(BaseModel):
    """Natural language search query. The text is embedded before searching."""

    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=100)
    filter: Predicate | None = None


class VectorSearchRequest(BaseModel):
    """Search with a precomputed query vector."""

    vector: list[float] = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=100)
    filter: Predicate | None = None


class SearchResultItem(BaseModel):
    """A single chunk hit returned from the vector index."""

    document_id: int
    chunk_ordinal: int
    chunk_text: str
    title: str
    score: float


class SearchResponse(BaseModel):
    """Ranked search hits."""

    query: str | None = None
    results: list[SearchResultItem]
    total: int


class ReindexRequest(BaseModel):
    """Body of a reindex request. Omitted fields are read from the document store."""

    title: str | None = None
    content: str | None = None
    hidden: bool | None = None
    priority: int = 10


class DocumentWebhookEvent(BaseModel):
    """Change notification sent by the document store."""

    document_id: int
    event: Literal["created", "updated", "deleted"] = "updated"
