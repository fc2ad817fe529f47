"""VectorPoint models: a vector record and the metadata stored alongside it."""

from pydantic import BaseModel

# Point ids are document_id * POINT_ID_STRIDE + chunk_ordinal.
# Changing this value would invalidate all existing point ids in the collection.
POINT_ID_STRIDE = 100_000


def make_point_id(document_id: int, chunk_ordinal: int) -> int:
    """Build the deterministic numeric point id of a chunk vector.

    The same (document_id, chunk_ordinal) always maps to the same id, so a
    repeated upsert overwrites the existing point instead of adding one.

    Args:
        document_id (int): Document id, must be >= 0.
        chunk_ordinal (int): Vector slot of the chunk, 0 <= ordinal < POINT_ID_STRIDE.

    Returns:
        int: Unsigned integer point id.

    Raises:
        ValueError: If either argument is out of range.
    """
    if document_id < 0:
        raise ValueError(f"document_id must be >= 0, got {document_id}.")
    if not 0 <= chunk_ordinal < POINT_ID_STRIDE:
        raise ValueError(f"chunk_ordinal must be in [0, {POINT_ID_STRIDE}), got {chunk_ordinal}.")
    return document_id * POINT_ID_STRIDE + chunk_ordinal


class VectorPayload(BaseModel):
    """Metadata payload stored alongside each chunk vector.

    The hidden field is mandatory: search always filters on it.

    Attributes:
        document_id:   Owning document.
        chunk_ordinal: Vector slot the point id is derived from.
        chunk_text:    Normalized chunk text.
        title:         Document title.
        hidden:        Visibility flag of the document at indexing time.
        created_at:    Epoch milliseconds of the write.
        chunk_id:      Stable chunk id, for reverse lookup on deletion.
    """

    document_id: int
    chunk_ordinal: int
    chunk_text: str
    title: str
    hidden: bool
    created_at: int
    chunk_id: str


class VectorPoint(BaseModel):
    """A vector record as written to the RAG backend."""

    id: int
    vector: list[float]
    payload: VectorPayload

    @classmethod
    def for_chunk(cls, vector: list[float], payload: VectorPayload) -> "VectorPoint":
        return cls(id=make_point_id(payload.document_id, payload.chunk_ordinal), vector=vector, payload=payload)


class SearchHit(BaseModel):
    """A scored point returned by a similarity search."""

    id: int | str
    score: float
    payload: dict
