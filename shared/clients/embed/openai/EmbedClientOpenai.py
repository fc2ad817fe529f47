from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOpenai(EmbedClientInterface):
    """Any provider speaking the OpenAI /embeddings protocol (OpenAI, LiteLLM, vLLM).

    The base URL carries the version prefix, e.g. EMBED_OPENAI_BASE_URL=https://api.openai.com/v1.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", val_type="string")
        self._dimensions = self.get_config_val("DIMENSIONS", default=0, val_type="int")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openai"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string"),
            EnvConfig(env_key="DIMENSIONS", val_type="int", default=0),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_endpoint_healthcheck(self) -> str:
        return "/models"

    def _get_endpoint_models(self) -> str:
        return "/models"

    def get_endpoint_embedding(self) -> str:
        return "/embeddings"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str]) -> dict:
        # "dimensions" only when configured, older models reject the field
        payload: dict = {"model": self.embed_model, "input": texts, "encoding_format": "float"}
        if self._dimensions:
            payload["dimensions"] = self._dimensions
        return payload

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors of an /embeddings response, reordered by their "index" field.

        Raises:
            ValueError: If "data" is missing or an item has no embedding.
        """
        items = response_data.get("data")
        if not items:
            raise ValueError(f"Embedding response has no 'data'. Response keys: {list(response_data.keys())}")
        embeddings = [item.get("embedding") for item in sorted(items, key=lambda item: item.get("index", 0))]
        if not all(embeddings):
            raise ValueError("Embedding response contains an item without embedding.")
        return embeddings
