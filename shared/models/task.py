"""Pydantic models for indexing queue tasks and queue introspection."""

import time

from pydantic import BaseModel, Field


class IndexTask(BaseModel):
    """A request to bring the index of one document up to date.

    Attributes:
        document_id: Document to index.
        title:       Title snapshot, stored in the vector payload.
        content:     Markdown content snapshot to segment.
        hidden:      Visibility flag snapshot.
        priority:    Lower runs sooner.
        enqueued_at: Epoch seconds, breaks priority ties (earlier first).
        remove:      Drop every chunk and vector of the document instead of indexing it.
    """

    document_id: int
    title: str = ""
    content: str = ""
    hidden: bool = False
    priority: int = 10
    enqueued_at: float = Field(default_factory=time.time)
    remove: bool = False


class QueuedTaskInfo(BaseModel):
    """Summary of a pending task, as shown by the queue status."""

    document_id: int
    title: str
    priority: int
    remove: bool = False


class QueueStatus(BaseModel):
    """Snapshot of the indexing queue. Introspection only."""

    queue_length: int
    processing_count: int
    queued_tasks: list[QueuedTaskInfo]
    processing_document_ids: list[int]
    is_running: bool
