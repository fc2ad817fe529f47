"""Pydantic models for documents held by the external document store."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class IndexStatus(str, Enum):
    """Lifecycle of a document's index entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentIndexStatus(BaseModel):
    """Index status stored on the document record.

    Only the queue mutates it: pending on enqueue, the other states from the
    worker that owns the document.
    """

    status: IndexStatus | None = None
    error: str | None = None
    last_success_at: datetime | None = None
    # title and visibility carried by the vectors of the current chunk snapshot
    indexed_title: str | None = None
    indexed_hidden: bool | None = None


class Document(BaseModel):
    """Document as read from the document store.

    The version is monotonic and starts at 1. hidden documents are indexed
    but never returned by search.
    """

    id: int
    title: str
    content: str
    version: int = 1
    hidden: bool = False
    is_deleted: bool = False
    index_status: DocumentIndexStatus = DocumentIndexStatus()
