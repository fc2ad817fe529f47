"""FastAPI application entry point for the document index API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from server.api.routers.IndexRouter import index_router
from server.api.routers.QueryRouter import query_router
from server.api.routers.WebhookRouter import webhook_router
from server.api.services.QueryService import QueryService
from services.doc_index.IndexQueue import IndexQueue
from services.doc_index.IndexingService import IndexingService
from shared.clients.docstore.DocStoreManager import DocStoreManager
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.errors import VectorDimensionError
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)

    # Initialise clients
    doc_store = DocStoreManager(helper_config=app.state.config).get_client()
    embed_client = EmbedClientManager(helper_config=app.state.config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.config).get_client()
    await doc_store.boot()
    await embed_client.boot()
    await rag_client.boot()

    # Health checks
    await embed_client.do_healthcheck()
    await rag_client.do_healthcheck()

    # The embedding model must produce vectors of the collection's dimension
    embed_size, _ = await embed_client.do_fetch_embedding_vector_size()
    if embed_size != rag_client.vector_size:
        raise VectorDimensionError(
            f"Embedding model {embed_client.embed_model} produces {embed_size} dimensions, "
            f"{rag_client.get_engine_name()} is configured for {rag_client.vector_size}."
        )
    if await rag_client.do_ensure_collection():
        app.state.logging.info("Vector collection created.")
    else:
        app.state.logging.info("Vector collection already exists.")

    # Wire up services
    app.state.doc_store = doc_store
    app.state.indexing_service = IndexingService(
        helper_config=app.state.config,
        doc_store=doc_store,
        embed_client=embed_client,
        rag_client=rag_client,
    )
    app.state.index_queue = IndexQueue(
        helper_config=app.state.config,
        indexing_service=app.state.indexing_service,
        doc_store=doc_store,
    )
    app.state.query_service = QueryService(
        helper_config=app.state.config,
        indexing_service=app.state.indexing_service,
    )
    await app.state.index_queue.start()

    app.state.logging.info("Document index API ready.")
    yield

    # Shutdown
    await app.state.index_queue.stop()
    await rag_client.close()
    await embed_client.close()
    await doc_store.close()
    app.state.logging.info("Document index API shut down.")


app = FastAPI(
    title="Document Index Bridge",
    description="Incremental semantic indexing of markdown documents into a vector database.",
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(index_router)
app.include_router(query_router)
app.include_router(webhook_router)


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    port = int(os.getenv("APP_PORT", "8000"))
    logging.info(f"Starting document index API v{app_version} from root dir: {os.getenv('ROOT_DIR', os.getcwd())} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)
