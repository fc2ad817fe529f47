from shared.helper.HelperConfig import HelperConfig
from shared.clients.docstore.DocStoreInterface import DocStoreInterface
from shared.clients.engine_loader import load_engine_class


class DocStoreManager:
    """Builds the document store selected by DOCSTORE_ENGINE (default "sqlite")."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        engine = helper_config.get_string_val("DOCSTORE_ENGINE", default="sqlite")
        client_class = load_engine_class("shared.clients.docstore", "DocStore", engine)
        self.client: DocStoreInterface = client_class(helper_config=helper_config)
        self.logging.debug("Document store engine '%s' ready", self.client.get_engine_name())

    def get_client(self) -> DocStoreInterface:
        return self.client
