from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Ollama embedding API.

    EMBED_OLLAMA_TRUNCATE=false makes Ollama reject inputs longer than the model
    context instead of cutting them silently. EMBED_OLLAMA_KEEP_ALIVE keeps the
    model loaded between batches (e.g. "10m").
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._truncate = self.get_config_val("TRUNCATE", default=True, val_type="bool")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="TRUNCATE", val_type="bool", default=True),
            EnvConfig(env_key="KEEP_ALIVE", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # plain Ollama has no auth, a reverse proxy in front of it may
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def _get_endpoint_models(self) -> str:
        return "/api/tags"

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Body of an /api/embed request: {"model", "input", "truncate"[, "keep_alive"]}."""
        payload: dict = {"model": self.embed_model, "input": texts, "truncate": self._truncate}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_vector_size_from_model_info(self, details: dict) -> int:
        """Find "<architecture>.embedding_length" in the model_info of an /api/show response.

        Raises:
            ValueError: If the model does not report an embedding length.
        """
        model_info: dict = details.get("model_info") or {}
        sizes = [value for key, value in model_info.items() if key.endswith(".embedding_length")]
        if not sizes:
            raise ValueError(f"Ollama does not report an embedding length for model {self.embed_model}.")
        return int(sizes[0])

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors of an /api/embed response, already in input order.

        Raises:
            ValueError: If the response carries no embeddings.
        """
        embeddings = response_data.get("embeddings")
        if not embeddings or any(not embedding for embedding in embeddings):
            raise ValueError(f"Ollama response holds no usable embeddings. Response keys: {list(response_data.keys())}")
        return embeddings

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> tuple[int, str]:
        """Read the model dimension from /api/show instead of embedding a sample text.

        Returns:
            tuple[int, str]: Vector size and distance metric.
        """
        response = await self.do_request(
            method="POST",
            json={"model": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        return self.extract_vector_size_from_model_info(response.json()), self.embed_distance
