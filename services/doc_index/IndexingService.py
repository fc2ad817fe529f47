"""Indexing service.

Brings the vector index of one document up to date with its current content:
segment, hash, diff against the stored chunk snapshot, embed only what is new
or changed, reconcile the vector store, then persist the new snapshot.
"""

import time

from services.doc_index.ChunkDiffer import assign_ordinals, build_chunks, diff_chunks
from services.doc_index.TextSegmenter import TextSegmenter
from shared.clients.docstore.DocStoreInterface import DocStoreInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Filter import Predicate
from shared.clients.rag.models.VectorPoint import VectorPayload, VectorPoint
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import Chunk, IndexResult
from shared.models.search import SearchResultItem
from shared.models.task import IndexTask


class IndexingService:
    """Runs documents through the incremental indexing pipeline and answers searches."""

    def __init__(
        self,
        helper_config: HelperConfig,
        doc_store: DocStoreInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        segmenter: TextSegmenter | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._doc_store = doc_store
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._segmenter = segmenter or TextSegmenter.from_config(helper_config)

    ##########################################
    ################ INDEXING ################
    ##########################################

    async def do_index_task(self, task: IndexTask) -> IndexResult:
        """Execute one queue task.

        The document's index is removed if the task asks for it, or if the
        document is unknown or soft-deleted in the store. Otherwise the task's
        content snapshot is indexed at the document's current version.

        Args:
            task (IndexTask): The task to run.

        Returns:
            IndexResult: Counters of the run.
        """
        document = await self._doc_store.do_fetch_document(task.document_id)
        if task.remove or document is None or document.is_deleted:
            return await self.do_remove_document(task.document_id)

        return await self.do_index_document(
            document_id=document.id,
            version=document.version,
            title=task.title or document.title,
            content=task.content or document.content,
            hidden=task.hidden,
        )

    async def do_index_document(self, document_id: int, version: int, title: str, content: str, hidden: bool) -> IndexResult:
        """Incrementally index one document version.

        Order of side effects: stale vectors are deleted, new and changed vectors
        are upserted, the payload of reused vectors is refreshed if title or
        visibility changed since the snapshot, and only then is the chunk snapshot
        replaced together with the payload values it was written with. A failure
        before the snapshot write leaves the previous snapshot as the diff baseline
        for the retry.

        Args:
            document_id (int): Document to index.
            version (int): Current document version.
            title (str): Title stored in the vector payload.
            content (str): Markdown content.
            hidden (bool): Visibility flag stored in the vector payload.

        Returns:
            IndexResult: Counters of the run.

        Raises:
            IndexingFatalError: On vector dimension or integrity errors.
            Exception: On embedding or vector store failures.
        """
        segments = self._segmenter.segment(content)
        current = build_chunks(document_id=document_id, version=version, segments=segments, logger=self.logging)
        previous = await self._doc_store.do_fetch_latest_chunks(document_id=document_id, max_version=version)
        diff = assign_ordinals(diff_chunks(current=current, previous=previous))

        self.logging.info(
            "Document %d v%d: %d chunks (%d reused, %d changed, %d new, %d removed).",
            document_id, version, len(current), len(diff.reuse), len(diff.changed), len(diff.new), len(diff.removed),
        )

        # embed only what changed
        to_embed = diff.to_embed()
        vectors = await self._embed_client.do_embed_many([chunk.normalized_content for chunk in to_embed])
        if len(vectors) != len(to_embed):
            raise ValueError(f"Expected {len(to_embed)} embeddings for document {document_id}, got {len(vectors)}.")

        created_at = int(time.time() * 1000)
        points: list[VectorPoint] = []
        embedded: list[Chunk] = []
        for chunk, vector in zip(to_embed, vectors):
            point = VectorPoint.for_chunk(
                vector=vector,
                payload=VectorPayload(
                    document_id=document_id,
                    chunk_ordinal=chunk.chunk_ordinal,
                    chunk_text=chunk.normalized_content,
                    title=title,
                    hidden=hidden,
                    created_at=created_at,
                    chunk_id=chunk.stable_id,
                ),
            )
            points.append(point)
            embedded.append(chunk.model_copy(update={"embedding_ref": point.id}))

        # removed vectors whose slot is overwritten by an upsert are not deleted
        upserted_ids = {point.id for point in points}
        stale_refs: list[int | str] = [
            chunk.embedding_ref for chunk in diff.removed
            if chunk.embedding_ref is not None and chunk.embedding_ref not in upserted_ids
        ]
        if stale_refs:
            await self._rag_client.do_delete_by_chunk_ids(stale_refs)
        upserted = await self._rag_client.do_upsert_vectors(points)
        if diff.reuse and await self._is_payload_stale(document_id, title, hidden):
            await self._rag_client.do_update_document_payload(document_id, {"title": title, "hidden": hidden})

        snapshot = sorted([*diff.reuse, *embedded], key=lambda chunk: chunk.position)
        await self._doc_store.do_replace_chunks(document_id=document_id, chunks=snapshot, title=title, hidden=hidden)

        return IndexResult(
            document_id=document_id,
            version=version,
            chunk_count=len(current),
            reused_count=len(diff.reuse),
            changed_count=len(diff.changed),
            new_count=len(diff.new),
            removed_count=len(diff.removed),
            upserted_vectors=upserted,
            deleted_vectors=len(stale_refs),
        )

    async def _is_payload_stale(self, document_id: int, title: str, hidden: bool) -> bool:
        """Whether the vectors of the stored snapshot carry another title or visibility than given."""
        document = await self._doc_store.do_fetch_document(document_id)
        if document is None:
            return True
        indexed = document.index_status
        return (indexed.indexed_title, indexed.indexed_hidden) != (title, hidden)

    async def do_remove_document(self, document_id: int) -> IndexResult:
        """Delete every vector and chunk row of a document.

        Returns:
            IndexResult: removed_document set, deleted_vectors = chunk rows dropped.
        """
        await self._rag_client.do_delete_by_document(document_id)
        removed_rows = await self._doc_store.do_delete_chunks(document_id)
        self.logging.info("Removed index of document %d (%d chunks).", document_id, removed_rows)
        return IndexResult(
            document_id=document_id,
            removed_count=removed_rows,
            deleted_vectors=removed_rows,
            removed_document=True,
        )

    ##########################################
    ################# SEARCH #################
    ##########################################

    async def do_search(self, vector: list[float], limit: int = 10, filter: Predicate | None = None) -> list[SearchResultItem]:
        """Vector search over visible documents.

        Hits of documents that the store reports as deleted, hidden or unknown
        are dropped, in addition to the visibility filter applied by the gateway.

        Args:
            vector (list[float]): Query vector.
            limit (int): Maximum number of results.
            filter (Predicate | None): Optional caller filter.

        Returns:
            list[SearchResultItem]: Results ordered by descending score.
        """
        hits = await self._rag_client.do_search(vector=vector, limit=limit, filter=filter)

        visible: dict[int, bool] = {}
        results: list[SearchResultItem] = []
        for hit in hits:
            document_id = hit.payload.get("document_id")
            if document_id is None:
                continue
            if document_id not in visible:
                document = await self._doc_store.do_fetch_document(document_id)
                visible[document_id] = document is not None and not document.is_deleted and not document.hidden
            if not visible[document_id]:
                self.logging.debug("Dropping search hit of document %d: not visible in the store.", document_id)
                continue
            results.append(
                SearchResultItem(
                    document_id=document_id,
                    chunk_ordinal=hit.payload.get("chunk_ordinal", 0),
                    chunk_text=hit.payload.get("chunk_text", ""),
                    title=hit.payload.get("title", ""),
                    score=hit.score,
                )
            )
        return results

    async def do_search_text(self, query: str, limit: int = 10, filter: Predicate | None = None) -> list[SearchResultItem]:
        """Embed a natural language query and search with the resulting vector."""
        vector = await self._embed_client.do_embed_query(query)
        return await self.do_search(vector=vector, limit=limit, filter=filter)

    async def do_fetch_document_vector_count(self, document_id: int) -> int:
        """Number of vectors the vector store holds for a document."""
        return await self._rag_client.do_count_document_vectors(document_id)
