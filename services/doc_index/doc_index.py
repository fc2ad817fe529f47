"""Bulk reindex runner.

Queues every live document of the document store, queues the removal of
soft-deleted documents that still have an index, and waits until the queue
has drained. Unchanged chunks are reused, so re-running it on an
indexed corpus only embeds what changed since the last run.

Usage:
    python -m services.doc_index.doc_index
"""

import asyncio

from services.doc_index.IndexQueue import IndexQueue
from services.doc_index.IndexingService import IndexingService
from shared.clients.docstore.DocStoreInterface import DocStoreInterface
from shared.clients.docstore.DocStoreManager import DocStoreManager
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.document import Document, IndexStatus


async def queue_documents(queue: IndexQueue, doc_store: DocStoreInterface) -> tuple[int, int]:
    """Queue a reindex of every live document and a removal of every deleted one still indexed.

    Returns:
        tuple[int, int]: Number of reindex tasks and of removal tasks queued.
    """
    reindexed = removed = 0
    for document in await doc_store.do_fetch_documents(include_deleted=True):
        if not document.is_deleted:
            reindexed += await queue.queue_reindex(
                document_id=document.id,
                title=document.title,
                content=document.content,
                hidden=document.hidden,
            )
        elif await _has_index(doc_store, document):
            removed += await queue.queue_removal(document.id)
    return reindexed, removed


async def _has_index(doc_store: DocStoreInterface, document: Document) -> bool:
    # an unfinished or failed last run may have left vectors without a chunk snapshot
    if document.index_status.status not in (None, IndexStatus.COMPLETED):
        return True
    return bool(await doc_store.do_fetch_latest_chunks(document.id, max_version=document.version))


async def main() -> None:
    """Run the bulk reindex."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    doc_store = DocStoreManager(helper_config=config).get_client()
    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config).get_client()

    try:
        # all three backends are required, abort if one of them does not come up
        try:
            await doc_store.boot()
            await embed_client.boot()
            await embed_client.do_healthcheck()
            await rag_client.boot()
            await rag_client.do_healthcheck()
            await rag_client.do_ensure_collection()
        except Exception as e:
            logger.error(f"Error booting clients: {e}. Aborting.")
            return

        indexing_service = IndexingService(
            helper_config=config,
            doc_store=doc_store,
            embed_client=embed_client,
            rag_client=rag_client,
        )
        queue = IndexQueue(helper_config=config, indexing_service=indexing_service, doc_store=doc_store)

        await queue.start()
        reindexed, removed = await queue_documents(queue, doc_store)
        logger.info("Queued %d documents for reindexing and %d deleted documents for removal.", reindexed, removed)
        await queue.join()
        await queue.stop()

        failed = [
            document.id for document in await doc_store.do_fetch_documents()
            if document.index_status.status == IndexStatus.FAILED
        ]
        if failed:
            logger.warning("Reindex finished with %d failed documents: %s", len(failed), failed)
        else:
            logger.info("Reindex finished for %d documents.", reindexed, color="green")
    finally:
        await embed_client.close()
        await rag_client.close()
        await doc_store.close()

if __name__ == "__main__":
    asyncio.run(main())
