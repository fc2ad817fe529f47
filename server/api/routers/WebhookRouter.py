"""Webhook router for document change events.

The document store calls POST /webhook/document whenever a document is
created, updated or deleted. The handler reads the current document and
queues the matching index task, so the response returns immediately.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from shared.dependencies.auth import verify_api_key
from shared.models.search import DocumentWebhookEvent

webhook_router = APIRouter()


@webhook_router.post(
    "/webhook/document",
    dependencies=[Depends(verify_api_key)],
    tags=["Webhook"],
)
async def handle_document_webhook(request: Request, body: DocumentWebhookEvent) -> JSONResponse:
    """Handle a document-created, -updated or -deleted event.

    Deleted, soft-deleted and unknown documents are queued for removal, every
    other document for reindexing with its current content.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (DocumentWebhookEvent): The event with document_id and event type.

    Returns:
        JSONResponse: Acknowledgement with the action taken and whether a task was queued.
    """
    request.app.state.logging.info("Webhook received for document_id=%d event=%s", body.document_id, body.event)
    queue = request.app.state.index_queue

    document = await request.app.state.doc_store.do_fetch_document(body.document_id)
    if body.event == "deleted" or document is None or document.is_deleted:
        queued = await queue.queue_removal(body.document_id)
        action = "remove"
    else:
        queued = await queue.queue_reindex(
            document_id=document.id,
            title=document.title,
            content=document.content,
            hidden=document.hidden,
        )
        action = "reindex"

    return JSONResponse(
        status_code=202,
        content={"status": "accepted", "document_id": body.document_id, "action": action, "queued": queued},
    )
