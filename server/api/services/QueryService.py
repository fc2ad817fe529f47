"""Query service: semantic search over the chunk index.

Text queries are embedded first; vector queries go straight to the index. The
visibility filter is applied by the vector store gateway and cannot be lifted
by the request filter.
"""

from services.doc_index.IndexingService import IndexingService
from shared.helper.HelperConfig import HelperConfig
from shared.models.search import SearchRequest, SearchResponse, VectorSearchRequest


class QueryService:
    """Orchestrates embedding, vector retrieval and result assembly for chunk search."""

    def __init__(self, helper_config: HelperConfig, indexing_service: IndexingService) -> None:
        self.logging = helper_config.get_logger()
        self._indexing_service = indexing_service

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_query(self, request: SearchRequest) -> SearchResponse:
        """Execute a natural language query.

        Args:
            request (SearchRequest): Query text, limit and optional filter.

        Returns:
            SearchResponse: Ranked list of matching chunks of visible documents.
        """
        self.logging.info("Executing query: query=%r limit=%d", request.query[:80], request.limit)
        items = await self._indexing_service.do_search_text(query=request.query, limit=request.limit, filter=request.filter)
        self.logging.info("Query complete: results=%d", len(items))
        return SearchResponse(query=request.query, results=items, total=len(items))

    async def do_vector_query(self, request: VectorSearchRequest) -> SearchResponse:
        """Execute a search with a precomputed query vector."""
        items = await self._indexing_service.do_search(vector=request.vector, limit=request.limit, filter=request.filter)
        self.logging.info("Vector query complete: results=%d", len(items))
        return SearchResponse(results=items, total=len(items))
