"""Index router: queue reindex/removal tasks and inspect index state."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from shared.dependencies.auth import verify_api_key
from shared.models.search import ReindexRequest

index_router = APIRouter(prefix="/index")


@index_router.get(
    "/queue",
    dependencies=[Depends(verify_api_key)],
    tags=["Index"],
)
async def handle_queue_status(request: Request) -> JSONResponse:
    """Return pending and in-flight tasks of the indexing queue."""
    status = request.app.state.index_queue.get_status()
    return JSONResponse(content=status.model_dump(mode="json"))


@index_router.post(
    "/{document_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Index"],
)
async def handle_reindex(request: Request, document_id: int, body: ReindexRequest | None = None) -> JSONResponse:
    """Queue a document for reindexing.

    Fields missing from the body are taken from the document store.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        document_id (int): Document to reindex.
        body (ReindexRequest | None): Optional content snapshot and priority.

    Returns:
        JSONResponse: 202 with whether a task was queued (false if one is already pending or running).

    Raises:
        HTTPException: 404 if the document is unknown or deleted.
    """
    body = body or ReindexRequest()
    document = await request.app.state.doc_store.do_fetch_document(document_id)
    if document is None or document.is_deleted:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found.")

    queued = await request.app.state.index_queue.queue_reindex(
        document_id=document_id,
        title=body.title if body.title is not None else document.title,
        content=body.content if body.content is not None else document.content,
        hidden=body.hidden if body.hidden is not None else document.hidden,
        priority=body.priority,
    )
    return JSONResponse(status_code=202, content={"status": "accepted", "document_id": document_id, "queued": queued})


@index_router.delete(
    "/{document_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Index"],
)
async def handle_remove(request: Request, document_id: int) -> JSONResponse:
    """Queue the removal of every chunk and vector of a document."""
    queued = await request.app.state.index_queue.queue_removal(document_id)
    return JSONResponse(status_code=202, content={"status": "accepted", "document_id": document_id, "queued": queued})


@index_router.get(
    "/{document_id}",
    dependencies=[Depends(verify_api_key)],
    tags=["Index"],
)
async def handle_index_status(request: Request, document_id: int) -> JSONResponse:
    """Return the index status stored on the document.

    Raises:
        HTTPException: 404 if the document is unknown.
    """
    document = await request.app.state.doc_store.do_fetch_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found.")
    return JSONResponse(
        content={
            "document_id": document.id,
            "version": document.version,
            "is_deleted": document.is_deleted,
            "index_status": document.index_status.model_dump(mode="json"),
        }
    )
