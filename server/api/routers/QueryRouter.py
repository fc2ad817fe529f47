"""Query router: text and vector search against the chunk index."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from shared.dependencies.auth import verify_api_key
from shared.models.search import SearchRequest, VectorSearchRequest

query_router = APIRouter()


@query_router.post(
    "/query",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
)
async def handle_query(request: Request, body: SearchRequest) -> JSONResponse:
    """Handle a natural language search request.

    Hidden documents are never part of the result, whatever the request filter says.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (SearchRequest): The parsed query with text, limit and optional filter.

    Returns:
        JSONResponse: Ranked list of matching chunks.
    """
    request.app.state.logging.info("Query received: query=%r", body.query[:80])
    result = await request.app.state.query_service.do_query(body)
    return JSONResponse(content=result.model_dump(mode="json"))


@query_router.post(
    "/query/vector",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
)
async def handle_vector_query(request: Request, body: VectorSearchRequest) -> JSONResponse:
    """Handle a search with a precomputed query vector.

    Args:
        request (Request): The incoming FastAPI request (carries app state).
        body (VectorSearchRequest): Query vector, limit and optional filter.

    Returns:
        JSONResponse: Ranked list of matching chunks.
    """
    result = await request.app.state.query_service.do_vector_query(body)
    return JSONResponse(content=result.model_dump(mode="json"))
