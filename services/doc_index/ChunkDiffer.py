"""Chunk identity and the diff between two chunk snapshots of a document.

A chunk's stable id only depends on the document, the chunk type and the hash
of its normalized text, so a paragraph that moves keeps its id and its vector.
"""

from services.doc_index.TextNormalizer import hash_content, normalize_content
from shared.clients.rag.models.VectorPoint import POINT_ID_STRIDE
from shared.models.chunk import Chunk, ChunkDiff, ChunkType, TextSegment

HASH_PREFIX_LENGTH = 16


def make_chunk_id(document_id: int, chunk_type: ChunkType | str, content_hash: str) -> str:
    """Stable chunk id: ``chunk_{document_id}_{chunk_type}_{first 16 hex chars of the hash}``.

    Args:
        document_id (int): Owning document.
        chunk_type (ChunkType | str): section | paragraph.
        content_hash (str): SHA-256 hex digest of the normalized chunk text.

    Returns:
        str: The stable id.
    """
    type_name = chunk_type.value if isinstance(chunk_type, ChunkType) else str(chunk_type)
    return f"chunk_{document_id}_{type_name}_{content_hash[:HASH_PREFIX_LENGTH]}"


def build_chunks(document_id: int, version: int, segments: list[TextSegment], logger=None) -> list[Chunk]:
    """Turn segments into chunks: normalize, hash, derive the stable id.

    Segments whose normalized text is empty are skipped. Segments that collide
    on the stable id keep their first occurrence. Positions are renumbered so
    they stay contiguous. Two different texts sharing a hash prefix are only
    reported through logger, the later one is dropped like a duplicate.
    """
    chunks: list[Chunk] = []
    seen: dict[str, str] = {}
    for segment in segments:
        normalized = normalize_content(segment.text)
        if not normalized:
            continue
        content_hash = hash_content(normalized)
        stable_id = make_chunk_id(document_id, segment.chunk_type, content_hash)
        if stable_id in seen:
            if seen[stable_id] != content_hash and logger is not None:
                logger.warning(
                    "Chunk id %s of document %d collides with a different text (hash %s), chunk dropped.",
                    stable_id, document_id, content_hash,
                )
            continue
        seen[stable_id] = content_hash
        chunks.append(
            Chunk(
                stable_id=stable_id,
                document_id=document_id,
                version=version,
                chunk_type=segment.chunk_type,
                content=segment.text,
                normalized_content=normalized,
                content_hash=content_hash,
                position=len(chunks),
            )
        )
    return chunks


def diff_chunks(current: list[Chunk], previous: list[Chunk]) -> ChunkDiff:
    """Classify the current chunks against the previous snapshot.

    - reuse:   same stable id and hash, vector already written. Carries
               embedding_ref and chunk_ordinal over, no embedding needed.
    - changed: same stable id but a different hash or no written vector, or a
               chunk that replaces a removed chunk of the same type at the same
               position (an in-place edit). Keeps the old chunk_ordinal so the
               new vector overwrites the old point.
    - new:     everything else.
    - removed: every previous chunk whose stable id is gone.

    Args:
        current (list[Chunk]): Chunks of the version being indexed.
        previous (list[Chunk]): Persisted snapshot, possibly empty.

    Returns:
        ChunkDiff: The classification, ordinals of new chunks not assigned yet.
    """
    previous_by_id = {chunk.stable_id: chunk for chunk in previous}
    current_ids = {chunk.stable_id for chunk in current}
    removed = [chunk for chunk in previous if chunk.stable_id not in current_ids]

    # removed chunks that can absorb an in-place edit, keyed by (type, position)
    replaceable = {
        (chunk.chunk_type, chunk.position): chunk
        for chunk in removed
        if chunk.chunk_ordinal is not None
    }

    diff = ChunkDiff(removed=removed)
    for chunk in current:
        before = previous_by_id.get(chunk.stable_id)
        if before is not None:
            carried = chunk.model_copy(update={"chunk_ordinal": before.chunk_ordinal, "embedding_ref": before.embedding_ref})
            if before.content_hash == chunk.content_hash and before.embedding_ref is not None and before.chunk_ordinal is not None:
                diff.reuse.append(carried)
            else:
                diff.changed.append(carried.model_copy(update={"embedding_ref": None}))
            continue

        replaced = replaceable.pop((chunk.chunk_type, chunk.position), None)
        if replaced is not None:
            diff.changed.append(chunk.model_copy(update={"chunk_ordinal": replaced.chunk_ordinal}))
        else:
            diff.new.append(chunk)
    return diff


def assign_ordinals(diff: ChunkDiff) -> ChunkDiff:
    """Give every chunk without a vector slot a free one.

    Reused and changed chunks keep their slot. A chunk without slot takes its
    position if that slot is free, else the lowest slot released by a removed
    chunk, else the next slot above every slot in use.

    Args:
        diff (ChunkDiff): Result of diff_chunks().

    Returns:
        ChunkDiff: A copy in which every reuse/changed/new chunk has a chunk_ordinal.

    Raises:
        ValueError: If a document needs more slots than a point id can encode.
    """
    taken = {chunk.chunk_ordinal for chunk in [*diff.reuse, *diff.changed] if chunk.chunk_ordinal is not None}
    released = sorted(
        chunk.chunk_ordinal for chunk in diff.removed
        if chunk.chunk_ordinal is not None and chunk.chunk_ordinal not in taken
    )
    next_free = max([*taken, *released], default=-1) + 1

    def _take(position: int) -> int:
        nonlocal next_free
        if position not in taken:
            slot = position
        elif released:
            slot = released[0]
        else:
            slot = next_free
        if slot in released:
            released.remove(slot)
        next_free = max(next_free, slot + 1)
        if slot >= POINT_ID_STRIDE:
            raise ValueError(f"Document needs chunk slot {slot}, only {POINT_ID_STRIDE} slots are available.")
        taken.add(slot)
        return slot

    changed = [
        chunk if chunk.chunk_ordinal is not None else chunk.model_copy(update={"chunk_ordinal": _take(chunk.position)})
        for chunk in diff.changed
    ]
    new = [chunk.model_copy(update={"chunk_ordinal": _take(chunk.position)}) for chunk in diff.new]
    return ChunkDiff(reuse=diff.reuse, changed=changed, new=new, removed=diff.removed)
