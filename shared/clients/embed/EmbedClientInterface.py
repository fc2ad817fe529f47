from abc import abstractmethod

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.errors import BackendRequestError, EmbedPayloadTooLargeError

from shared.helper.HelperConfig import HelperConfig

# Response body fragments that mark a 400 as "request too large" on OpenAI-compatible providers
_TOO_LARGE_MARKERS = ("too large", "too long", "maximum context", "max_tokens", "payload")


class EmbedClientInterface(ClientInterface):
    """Embedding provider.

    EMBED_MODEL and EMBED_DISTANCE are shared by all engines. Batching is
    controlled by EMBED_BATCH_SIZE, EMBED_MIN_BATCH_SIZE and EMBED_MAX_HALVINGS,
    see do_embed_many().
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        prefix = self.get_client_type().upper()

        # model
        self.embed_distance = helper_config.get_string_val(f"{prefix}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{prefix}_MODEL")

        # batching
        self.embed_batch_size = helper_config.get_int_val(f"{prefix}_BATCH_SIZE", default=50, minimum=1)
        self.embed_min_batch_size = helper_config.get_int_val(f"{prefix}_MIN_BATCH_SIZE", default=10, minimum=1)
        self.embed_max_halvings = helper_config.get_int_val(f"{prefix}_MAX_HALVINGS", default=4, minimum=0)

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_payload_too_large(self, response: httpx.Response) -> bool:
        """Tell whether the provider refused a request because of its size.

        Args:
            response (httpx.Response): The raw provider response.

        Returns:
            bool: True on HTTP 413, or on HTTP 400 whose body names a size limit.
        """
        if response.status_code == 413:
            return True
        if response.status_code == 400:
            body = response.text.lower()
            return any(marker in body for marker in _TOO_LARGE_MARKERS)
        return False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """Path listing the models the provider serves, e.g. "/api/tags"."""
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """Path of the embedding endpoint, e.g. "/api/embed"."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Request body embedding the given texts with the configured model.

        Args:
            texts (list[str]): The texts to embed, in order.

        Returns:
            dict: JSON body, e.g. {"model": "...", "input": [...]}.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors of an embedding response, in the order of the input texts.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: One vector per input text.

        Raises:
            ValueError: If the response carries no usable embeddings.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_models(self) -> httpx.Response:
        """List the models the provider serves."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_models(), raise_on_error=True)

    async def do_fetch_embedding_vector_size(self) -> tuple[int, str]:
        """
        Dimension of the configured model, found by embedding a sample text.

        Returns:
            tuple[int, str]: Vector size and distance metric.
        """
        vectors = await self.do_embed(["dimension check"])
        return len(vectors[0]), self.embed_distance

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Send one embedding request.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: One vector per text, in input order.

        Raises:
            EmbedPayloadTooLargeError: If the provider refuses the request size.
            BackendRequestError: On any other error status.
            ValueError: If the response does not hold exactly one vector per text.
        """
        texts = [texts] if isinstance(texts, str) else texts
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=self.get_embed_payload(texts))
        if self.is_payload_too_large(response):
            raise EmbedPayloadTooLargeError(
                f"Embedding request with {len(texts)} texts rejected as too large (status {response.status_code}).",
                batch_size=len(texts),
            )
        if response.status_code != 200:
            self.logging.error("Embedding request failed: status %d, body: %s", response.status_code, response.text[:200])
            raise BackendRequestError(
                f"Embedding request failed with status {response.status_code}.",
                status_code=response.status_code,
                url=str(response.request.url),
                body=response.text[:200],
            )
        vectors = self.extract_embeddings_from_response(response.json())
        if len(vectors) != len(texts):
            raise ValueError(f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts.")
        return vectors

    async def do_embed_query(self, text: str) -> list[float]:
        """Embed a single search query.

        Raises:
            ValueError: If the query is empty.
        """
        if not text or not text.strip():
            raise ValueError("Query text must not be empty.")
        vectors = await self.do_embed([text])
        return vectors[0]

    async def do_embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed any number of texts in batches, shrinking the batch when the provider refuses its size.

        Blank texts are dropped before batching and never sent, so the result holds
        one vector per non-blank input, in input order.

        On EmbedPayloadTooLargeError the batch size is halved (never below
        EMBED_MIN_BATCH_SIZE) and the same batch is retried. The smaller size is kept
        for the remaining batches. After EMBED_MAX_HALVINGS halvings, or once the
        batch cannot shrink any more, the error propagates.

        Args:
            texts (list[str]): Texts to embed.

        Returns:
            list[list[float]]: Vectors in the order of the non-blank inputs.

        Raises:
            EmbedPayloadTooLargeError: If a batch is still too large at the smallest size.
        """
        texts = [text for text in texts if text and text.strip()]
        if not texts:
            return []

        vectors: list[list[float]] = []
        batch_size = self.embed_batch_size
        halvings = 0
        start = 0
        while start < len(texts):
            batch = texts[start:start + batch_size]
            try:
                batch_vectors = await self.do_embed(batch)
            except EmbedPayloadTooLargeError:
                next_size = max(len(batch) // 2, self.embed_min_batch_size)
                if next_size >= len(batch) or halvings >= self.embed_max_halvings:
                    self.logging.error(
                        "Embedding batch of %d texts still too large after %d halvings, giving up.",
                        len(batch), halvings,
                    )
                    raise
                halvings += 1
                self.logging.warning(
                    "Embedding batch of %d texts too large, retrying with batch size %d.", len(batch), next_size
                )
                batch_size = next_size
                continue
            vectors.extend(batch_vectors)
            start += len(batch)

        self.logging.debug("Embedded %d texts with final batch size %d.", len(texts), batch_size)
        return vectors
