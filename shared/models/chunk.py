"""Pydantic models for chunks, chunk diffs and indexing results."""

from enum import Enum

from pydantic import BaseModel


class ChunkType(str, Enum):
    """How a chunk was produced by the segmenter."""

    SECTION = "section"
    PARAGRAPH = "paragraph"


class TextSegment(BaseModel):
    """A piece of plain text cut from a markdown document, before identity is assigned."""

    text: str
    chunk_type: ChunkType
    position: int


class Chunk(BaseModel):
    """A persisted or candidate chunk of a document version.

    Attributes:
        stable_id:          Content-derived id, see ChunkDiffer.make_chunk_id().
        document_id:        Owning document.
        version:            Document version this chunk snapshot belongs to.
        chunk_type:         section | paragraph.
        content:            Text as produced by the segmenter.
        normalized_content: Canonical text that was hashed and embedded.
        content_hash:       SHA-256 hex digest of normalized_content.
        position:           Ordinal in the current version. Advisory only, never part of identity.
        chunk_ordinal:      Vector slot of the chunk; the point id is derived from it.
        embedding_ref:      Point id of the vector record, None until the vector is written.
    """

    stable_id: str
    document_id: int
    version: int
    chunk_type: ChunkType
    content: str
    normalized_content: str
    content_hash: str
    position: int
    chunk_ordinal: int | None = None
    embedding_ref: int | None = None


class ChunkDiff(BaseModel):
    """Classification of the current chunk set against the previous snapshot.

    reuse and changed carry the previous chunk_ordinal / embedding_ref forward;
    removed holds the previous rows that have no counterpart any more.
    """

    reuse: list[Chunk] = []
    changed: list[Chunk] = []
    new: list[Chunk] = []
    removed: list[Chunk] = []

    def to_embed(self) -> list[Chunk]:
        """Chunks that need a fresh embedding, changed first then new."""
        return [*self.changed, *self.new]


class IndexResult(BaseModel):
    """Counters of a single pipeline run for one document."""

    document_id: int
    version: int | None = None
    chunk_count: int = 0
    reused_count: int = 0
    changed_count: int = 0
    new_count: int = 0
    removed_count: int = 0
    upserted_vectors: int = 0
    deleted_vectors: int = 0
    removed_document: bool = False
