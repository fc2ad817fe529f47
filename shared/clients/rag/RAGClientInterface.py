from abc import abstractmethod
from typing import Any, Awaitable, Callable
import math

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.errors import VectorDimensionError, VectorIntegrityError
from shared.clients.rag.models.Filter import Predicate, all_of, where
from shared.clients.rag.models.VectorPoint import SearchHit, VectorPoint
from shared.clients.retry import build_linear_retrying

from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Gateway to the vector database.

    Every write is validated before it leaves the process, every search carries
    the mandatory ``hidden == false`` predicate, and network-level failures of
    upsert, delete and search are retried with linear backoff.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.vector_size = self.get_config_val("VECTOR_SIZE", default=1024, val_type="int")
        self.distance = self.get_config_val("DISTANCE", default="Cosine", val_type="string")
        self.retry_attempts = self.get_config_val("RETRY_ATTEMPTS", default=3, val_type="int")
        self.retry_delay = self.get_config_val("RETRY_DELAY", default=1.0, val_type="float")
        self.upsert_batch_size = self.get_config_val("UPSERT_BATCH_SIZE", default=100, val_type="int")

        # collection dimension is checked once, before the first write after boot
        self._dimension_verified = False

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_vectors(self, points: list[VectorPoint]) -> None:
        """Reject the whole batch if any vector has the wrong length or a non-finite value.

        Args:
            points (list[VectorPoint]): Points about to be written.

        Raises:
            VectorDimensionError: If a vector length differs from the configured vector size.
            VectorIntegrityError: If a vector contains NaN or Infinity.
        """
        for index, point in enumerate(points):
            if len(point.vector) != self.vector_size:
                raise VectorDimensionError(
                    f"Vector of item {index} (point {point.id}) has dimension {len(point.vector)}, "
                    f"expected {self.vector_size}."
                )
            if not all(math.isfinite(value) for value in point.vector):
                raise VectorIntegrityError(
                    f"Vector of item {index} (point {point.id}, chunk {point.payload.chunk_id}) contains non-finite values.",
                    item_index=index,
                )

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    def get_visibility_filter(self) -> Predicate:
        """The predicate every search is ANDed with: only documents that are not hidden."""
        return where("hidden", "eq", False)

    ################ ENDPOINTS ##################
    # paths relative to the base URL, all scoped to the configured collection
    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """Point upsert, e.g. "/collections/chunks/points"."""
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """Point delete by id list or filter."""
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_set_payload(self) -> str:
        """Payload overwrite on the points selected by a filter."""
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_collection(self) -> str:
        """Collection create (PUT) and describe (GET)."""
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def translate_filter(self, predicate: Predicate) -> dict:
        """Render a predicate tree in the filter syntax of the backend.

        Args:
            predicate (Predicate): FieldCondition, AndFilter or OrFilter tree.

        Returns:
            dict: The backend filter object.

        Raises:
            ValueError: If the backend cannot express an operator.
        """
        pass

    @abstractmethod
    def get_upsert_payload(self, points: list[VectorPoint]) -> dict:
        pass

    @abstractmethod
    def get_delete_by_ids_payload(self, point_ids: list[int]) -> dict:
        pass

    @abstractmethod
    def get_delete_by_filter_payload(self, filter: dict) -> dict:
        pass

    @abstractmethod
    def get_set_payload_payload(self, payload: dict, filter: dict) -> dict:
        """Body writing the given payload fields on every point matching the translated filter."""
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, filter: dict) -> dict:
        """Body of a nearest-neighbour query.

        The filter is already translated and already contains the visibility predicate.
        """
        pass

    @abstractmethod
    def get_count_payload(self, filter: dict) -> dict:
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        pass

    @abstractmethod
    def get_payload_index_payload(self, field_name: str, field_schema: str) -> dict:
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        """Scored hits of a search response, best first."""
        pass

    @abstractmethod
    def extract_collection_vector_size(self, raw_response: dict) -> int | None:
        """Dimension of a collection description, None if the backend omits it."""
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    async def _do_with_retry(self, action: str, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run an awaitable request function, retrying transient network errors with linear backoff."""
        retrying = build_linear_retrying(
            attempts=self.retry_attempts,
            delay=self.retry_delay,
            logger=self.logging,
            action=f"{self.get_engine_name()} {action}",
        )
        return await retrying(func, *args, **kwargs)

    async def close(self) -> None:
        await super().close()
        self._dimension_verified = False

    ##########################################
    ############### REQUESTS #################
    ##########################################

    ################ COLLECTION ##################
    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the rag backend.

        Returns:
            bool: True if the collection exists, False otherwise.
        """
        resp = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_check_collection_existence(),
            raise_on_error=True,
        )
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_fetch_collection_vector_size(self) -> int | None:
        """Read the vector dimension the collection was created with.

        Returns:
            int | None: The configured dimension, None if the backend does not report it.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collection(), raise_on_error=True)
        return self.extract_collection_vector_size(resp.json())

    async def do_create_collection(self) -> httpx.Response:
        """Create the collection with the configured vector size and distance.

        Returns:
            httpx.Response: The response from the create collection request.
        """
        return await self.do_request(
            method="PUT",
            json=self.get_create_collection_payload(self.vector_size, self.distance),
            endpoint=self._get_endpoint_collection(),
            raise_on_error=True,
        )

    async def do_create_payload_index(self, field_name: str, field_schema: str) -> httpx.Response:
        """Create a payload index so that filters on the field stay fast."""
        return await self.do_request(
            method="PUT",
            json=self.get_payload_index_payload(field_name, field_schema),
            endpoint=self._get_endpoint_payload_index(),
            raise_on_error=True,
        )

    async def do_verify_collection_dimension(self) -> None:
        """Compare the collection's dimension with the configured vector size.

        Raises:
            VectorDimensionError: On mismatch.
        """
        collection_size = await self.do_fetch_collection_vector_size()
        if collection_size is not None and collection_size != self.vector_size:
            raise VectorDimensionError(
                f"Collection of {self.get_engine_name()} has dimension {collection_size}, "
                f"configured vector size is {self.vector_size}."
            )
        self._dimension_verified = True

    async def do_ensure_collection(self) -> bool:
        """Create the collection and its document_id index if missing, otherwise verify its dimension.

        Returns:
            bool: True if the collection was created.

        Raises:
            VectorDimensionError: If an existing collection has a different dimension.
        """
        if await self.do_existence_check():
            await self.do_verify_collection_dimension()
            return False
        self.logging.info(
            "Creating collection on %s with vector size %d and distance %s",
            self.get_engine_name(), self.vector_size, self.distance,
        )
        await self.do_create_collection()
        await self.do_create_payload_index(field_name="document_id", field_schema="integer")
        self._dimension_verified = True
        return True

    ################ POINTS ##################
    async def do_upsert_vectors(self, points: list[VectorPoint]) -> int:
        """Validate and upsert points, in batches, waiting for the backend to apply each batch.

        Inserts new points or replaces existing ones with the same id.

        Args:
            points (list[VectorPoint]): The points to write.

        Returns:
            int: Number of points written.

        Raises:
            VectorDimensionError: On vector or collection dimension mismatch.
            VectorIntegrityError: If a vector contains non-finite values.
        """
        if not points:
            return 0
        self.validate_vectors(points)
        if not self._dimension_verified:
            await self.do_verify_collection_dimension()

        for start in range(0, len(points), self.upsert_batch_size):
            batch = points[start:start + self.upsert_batch_size]
            await self._do_with_retry(
                "upsert",
                self.do_request,
                method="PUT",
                json=self.get_upsert_payload(batch),
                params={"wait": "true"},
                endpoint=self._get_endpoint_points(),
                raise_on_error=True,
            )
            self.logging.debug("Upserted %d points to %s", len(batch), self.get_engine_name())
        return len(points)

    async def do_delete_by_filter(self, predicate: Predicate) -> None:
        """Delete all points matching the predicate.

        Args:
            predicate (Predicate): The filter that identifies which points to delete.
        """
        await self._do_with_retry(
            "delete",
            self.do_request,
            method="POST",
            json=self.get_delete_by_filter_payload(self.translate_filter(predicate)),
            params={"wait": "true"},
            endpoint=self._get_endpoint_delete_points(),
            raise_on_error=True,
        )

    async def do_delete_by_document(self, document_id: int) -> None:
        """Delete every point of a document.

        Args:
            document_id (int): The document whose vectors are removed.
        """
        await self.do_delete_by_filter(where("document_id", "eq", document_id))
        self.logging.debug("Deleted all points of document %d from %s", document_id, self.get_engine_name())

    async def do_delete_by_chunk_ids(self, chunk_ids: list[int | str]) -> int:
        """Delete points by a mixed list of identifiers.

        Integers and digit-only strings are numeric point ids. Any other string is a
        stable chunk id and is matched against the ``chunk_id`` payload field.

        Args:
            chunk_ids (list[int | str]): Point ids and/or stable chunk ids.

        Returns:
            int: Number of identifiers submitted for deletion.
        """
        point_ids: list[int] = []
        stable_ids: list[str] = []
        for chunk_id in chunk_ids:
            if isinstance(chunk_id, bool):
                raise ValueError(f"Invalid chunk identifier: {chunk_id!r}")
            if isinstance(chunk_id, int):
                point_ids.append(chunk_id)
            elif chunk_id.strip().isdigit():
                point_ids.append(int(chunk_id.strip()))
            else:
                stable_ids.append(chunk_id)

        if point_ids:
            await self._do_with_retry(
                "delete",
                self.do_request,
                method="POST",
                json=self.get_delete_by_ids_payload(point_ids),
                params={"wait": "true"},
                endpoint=self._get_endpoint_delete_points(),
                raise_on_error=True,
            )
        if stable_ids:
            await self.do_delete_by_filter(where("chunk_id", "in", stable_ids))
        return len(point_ids) + len(stable_ids)

    async def do_update_document_payload(self, document_id: int, payload: dict) -> None:
        """Overwrite payload fields (e.g. hidden, title) on every point of a document.

        Args:
            document_id (int): The document whose points are updated.
            payload (dict): Field values to set.
        """
        await self._do_with_retry(
            "set payload",
            self.do_request,
            method="POST",
            json=self.get_set_payload_payload(payload, self.translate_filter(where("document_id", "eq", document_id))),
            params={"wait": "true"},
            endpoint=self._get_endpoint_set_payload(),
            raise_on_error=True,
        )

    async def do_search(self, vector: list[float], limit: int = 10, filter: Predicate | None = None) -> list[SearchHit]:
        """Similarity search restricted to visible documents.

        The caller's filter is ANDed with the visibility predicate, it can narrow
        the result set but never widen it to hidden documents.

        Args:
            vector (list[float]): Query vector.
            limit (int): Maximum number of hits.
            filter (Predicate | None): Optional caller filter.

        Returns:
            list[SearchHit]: Hits ordered by descending score.
        """
        predicate = all_of(self.get_visibility_filter(), filter)
        resp = await self._do_with_retry(
            "search",
            self.do_request,
            method="POST",
            json=self.get_search_payload(vector, limit, self.translate_filter(predicate)),
            endpoint=self._get_endpoint_search(),
            raise_on_error=True,
        )
        return self.extract_search_hits(resp.json())

    async def do_count(self, predicate: Predicate) -> int:
        """Count the points matching the predicate.

        Returns:
            int: Total number of matching points.
        """
        resp = await self.do_request(
            method="POST",
            json=self.get_count_payload(self.translate_filter(predicate)),
            endpoint=self._get_endpoint_count(),
            raise_on_error=True,
        )
        return int(resp.json().get("result", {}).get("count", 0))

    async def do_count_document_vectors(self, document_id: int) -> int:
        """Number of points stored for a document."""
        return await self.do_count(where("document_id", "eq", document_id))
