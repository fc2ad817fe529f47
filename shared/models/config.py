from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting required by a client engine.

    The key is relative to the client prefix, e.g. env_key "BASE_URL" on the
    Qdrant RAG client resolves to "RAG_QDRANT_BASE_URL".

    Attributes:
        env_key (str): The key/name of the environment variable, without the client prefix.
        val_type (str): The expected type of the value: "string", "number", "int", "float" or "bool".
        default (str | int | float | bool | None): Value used when the variable is not set. None marks the variable as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | None = None
