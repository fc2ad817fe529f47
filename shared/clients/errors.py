"""Exception types raised by the indexing clients and pipeline.

The queue treats IndexingFatalError (and its subclasses) as final and retries
everything else.
"""


class IndexingError(Exception):
    """Base exception for indexing pipeline failures."""

    pass


class BackendRequestError(IndexingError):
    """A backend answered with an HTTP error status."""

    def __init__(self, message: str, status_code: int, url: str = "", body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.body = body


class EmbedPayloadTooLargeError(IndexingError):
    """The embedding provider rejected a request because its payload was too large."""

    def __init__(self, message: str, batch_size: int):
        super().__init__(message)
        self.batch_size = batch_size


class IndexingFatalError(IndexingError):
    """Configuration or data integrity error. Retrying the same task cannot succeed."""

    pass


class VectorDimensionError(IndexingFatalError):
    """Vector or collection dimension does not match the configured dimension."""

    pass


class VectorIntegrityError(IndexingFatalError):
    """An embedding vector contains non-finite values (NaN or Infinity)."""

    def __init__(self, message: str, item_index: int):
        super().__init__(message)
        self.item_index = item_index
