from abc import ABC, abstractmethod
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import Chunk
from shared.models.config import EnvConfig
from shared.models.document import Document, IndexStatus


class DocStoreInterface(ABC):
    """Access to the document store that owns documents and their chunk snapshots.

    The indexing core only reads documents. It writes chunk snapshots and the
    index status fields. Configuration keys are namespaced as
    DOCSTORE_{ENGINE}_{KEY}, e.g. "DOCSTORE_SQLITE_PATH".
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the store are set.

        Raises:
            ValueError: If any required configuration value is missing or invalid.
        """
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        return "docstore"

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the store in lowercase. E.g. "sqlite"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all required configurations for the store.

        Returns:
            list[EnvConfig]: A list containing the details of each required configuration key.
        """
        pass

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves the value of a configuration key for the store, e.g. "PATH" -> DOCSTORE_SQLITE_PATH.

        Raises:
            ValueError: If the value is missing without default, or val_type is unsupported.
        """
        key = f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "int":
            return self._helper_config.get_int_val(key, default=default)
        elif val_type == "float":
            return self._helper_config.get_float_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in document store '{self.get_engine_name()}'.")

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    @abstractmethod
    async def boot(self) -> None:
        """Open the connection to the store."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection to the store."""
        pass

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    @abstractmethod
    async def do_fetch_document(self, document_id: int) -> Document | None:
        """
        Read one document, soft-deleted ones included.

        Returns:
            Document | None: The document, or None if the id is unknown.
        """
        pass

    @abstractmethod
    async def do_fetch_documents(self, include_deleted: bool = False) -> list[Document]:
        """
        Read all documents ordered by id.

        Args:
            include_deleted (bool): Also return soft-deleted documents.
        """
        pass

    @abstractmethod
    async def do_save_document(self, title: str, content: str, hidden: bool = False, document_id: int | None = None) -> Document:
        """
        Create a document at version 1, or update an existing one.

        An update that changes title, content or visibility increments the version.

        Returns:
            Document: The stored document.
        """
        pass

    @abstractmethod
    async def do_soft_delete_document(self, document_id: int) -> bool:
        """
        Mark a document as deleted.

        Returns:
            bool: True if the document existed.
        """
        pass

    @abstractmethod
    async def do_update_index_status(self, document_id: int, status: IndexStatus, error: str | None = None) -> None:
        """
        Store the index status of a document.

        COMPLETED records the success timestamp and clears the error. FAILED stores the error message.
        """
        pass

    ##########################################
    ################ CHUNKS ##################
    ##########################################

    @abstractmethod
    async def do_fetch_latest_chunks(self, document_id: int, max_version: int) -> list[Chunk]:
        """
        Read the most recent chunk snapshot of a document whose version is <= max_version.

        Returns:
            list[Chunk]: The snapshot ordered by position, empty if there is none.
        """
        pass

    @abstractmethod
    async def do_replace_chunks(
        self, document_id: int, chunks: list[Chunk], title: str | None = None, hidden: bool | None = None
    ) -> None:
        """
        Atomically replace every chunk row of a document with the given snapshot.

        title and hidden are the payload values the snapshot's vectors carry. They are
        stored in the same transaction and read back as index_status.indexed_title and
        index_status.indexed_hidden.
        """
        pass

    @abstractmethod
    async def do_delete_chunks(self, document_id: int) -> int:
        """
        Delete every chunk row of a document and forget its indexed payload values.

        Returns:
            int: Number of deleted rows.
        """
        pass
