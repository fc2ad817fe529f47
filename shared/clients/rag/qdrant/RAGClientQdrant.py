from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Filter import (
    RANGE_OPERATORS,
    AndFilter,
    FieldCondition,
    FilterOperator,
    OrFilter,
    Predicate,
)
from shared.clients.rag.models.VectorPoint import SearchHit, VectorPoint
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    """Qdrant over its REST API. One collection holds the chunks of all documents."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection = self.get_config_val("COLLECTION", default="document_chunks", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="document_chunks"),
            EnvConfig(env_key="VECTOR_SIZE", val_type="int", default=1024),
            EnvConfig(env_key="DISTANCE", val_type="string", default="Cosine"),
            EnvConfig(env_key="RETRY_ATTEMPTS", val_type="int", default=3),
            EnvConfig(env_key="RETRY_DELAY", val_type="float", default=1.0),
            EnvConfig(env_key="UPSERT_BATCH_SIZE", val_type="int", default=100),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"api-key": self._api_key} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection}"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"{self._get_endpoint_collection()}/exists"

    def _get_endpoint_payload_index(self) -> str:
        return f"{self._get_endpoint_collection()}/index"

    def _get_endpoint_points(self) -> str:
        return f"{self._get_endpoint_collection()}/points"

    def _get_endpoint_delete_points(self) -> str:
        return f"{self._get_endpoint_points()}/delete"

    def _get_endpoint_search(self) -> str:
        return f"{self._get_endpoint_points()}/search"

    def _get_endpoint_set_payload(self) -> str:
        return f"{self._get_endpoint_points()}/payload"

    def _get_endpoint_count(self) -> str:
        return f"{self._get_endpoint_points()}/count"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def translate_filter(self, predicate: Predicate) -> dict:
        """Render a predicate tree as a Qdrant filter.

        AND becomes "must", OR becomes "should". Leaf operators map to
        match.value (eq), match.any (in), must_not + match.value (ne) and
        range (gt, gte, lt, lte).
        """
        if isinstance(predicate, AndFilter):
            return {"must": [self.translate_filter(clause) for clause in predicate.clauses]}
        if isinstance(predicate, OrFilter):
            return {"should": [self.translate_filter(clause) for clause in predicate.clauses]}
        return {"must": [self._translate_condition(predicate)]}

    def _translate_condition(self, condition: FieldCondition) -> dict:
        if condition.op == FilterOperator.EQ:
            return {"key": condition.key, "match": {"value": condition.value}}
        if condition.op == FilterOperator.NE:
            return {"must_not": [{"key": condition.key, "match": {"value": condition.value}}]}
        if condition.op == FilterOperator.IN:
            values = condition.value if isinstance(condition.value, list) else [condition.value]
            return {"key": condition.key, "match": {"any": values}}
        if condition.op in RANGE_OPERATORS:
            return {"key": condition.key, "range": {condition.op.value: condition.value}}
        raise ValueError(f"Unsupported filter operator '{condition.op}' for Qdrant.")

    def get_upsert_payload(self, points: list[VectorPoint]) -> dict:
        return {"points": [point.model_dump() for point in points]}

    def get_delete_by_ids_payload(self, point_ids: list[int]) -> dict:
        return {"points": point_ids}

    def get_delete_by_filter_payload(self, filter: dict) -> dict:
        return {"filter": filter}

    def get_set_payload_payload(self, payload: dict, filter: dict) -> dict:
        return {"payload": payload, "filter": filter}

    def get_search_payload(self, vector: list[float], limit: int, filter: dict) -> dict:
        return {"vector": vector, "limit": limit, "filter": filter, "with_payload": True, "with_vector": False}

    def get_count_payload(self, filter: dict) -> dict:
        return {"filter": filter, "exact": True}

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    def get_payload_index_payload(self, field_name: str, field_schema: str) -> dict:
        return {"field_name": field_name, "field_schema": field_schema}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_search_hits(self, raw_response: dict) -> list[SearchHit]:
        return [
            SearchHit(id=hit.get("id"), score=hit.get("score", 0.0), payload=hit.get("payload") or {})
            for hit in raw_response.get("result", [])
        ]

    def extract_collection_vector_size(self, raw_response: dict) -> int | None:
        # unnamed vectors only: result.config.params.vectors.size
        vectors = raw_response.get("result", {}).get("config", {}).get("params", {}).get("vectors")
        if isinstance(vectors, dict) and "size" in vectors:
            return int(vectors["size"])
        return None
