from shared.helper.HelperConfig import HelperConfig
from shared.clients.engine_loader import load_engine_class
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager:
    """Builds the vector store client selected by RAG_ENGINE (default "qdrant")."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        engine = helper_config.get_string_val("RAG_ENGINE", default="qdrant")
        client_class = load_engine_class("shared.clients.rag", "RAGClient", engine)
        self.client: RAGClientInterface = client_class(helper_config=helper_config)
        self.logging.debug(
            "Vector store engine '%s' ready, vector size %d", self.client.get_engine_name(), self.client.vector_size
        )

    def get_client(self) -> RAGClientInterface:
        return self.client
