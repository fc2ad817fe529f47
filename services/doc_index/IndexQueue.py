"""Indexing queue.

A priority heap of pending tasks (lowest priority value first, then earliest
enqueue), a scheduler loop that moves tasks to a fixed pool of worker
coroutines while fewer than QUEUE_CONCURRENCY tasks are in flight, and
whole-task retry with a fixed delay. At most one task per document is pending
or in flight at any time.
"""

import asyncio
import heapq
import itertools

from services.doc_index.IndexingService import IndexingService
from shared.clients.docstore.DocStoreInterface import DocStoreInterface
from shared.clients.errors import IndexingFatalError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import IndexStatus
from shared.models.task import IndexTask, QueuedTaskInfo, QueueStatus


class IndexQueue:
    """Schedules IndexTasks onto a bounded pool of workers."""

    def __init__(self, helper_config: HelperConfig, indexing_service: IndexingService, doc_store: DocStoreInterface) -> None:
        self.logging = helper_config.get_logger()
        self._indexing_service = indexing_service
        self._doc_store = doc_store

        self.concurrency = helper_config.get_int_val("QUEUE_CONCURRENCY", default=2, minimum=1)
        self.max_retries = helper_config.get_int_val("QUEUE_MAX_RETRIES", default=2, minimum=0)
        self.retry_delay = helper_config.get_float_val("QUEUE_RETRY_DELAY", default=5.0, minimum=0)
        self.poll_interval = helper_config.get_float_val("QUEUE_POLL_INTERVAL", default=1.0, minimum=0.001)

        # heap entries: (priority, enqueued_at, seq, document_id); entries whose seq
        # no longer matches _pending are stale and skipped on pop
        self._heap: list[tuple[int, float, int, int]] = []
        self._pending: dict[int, tuple[int, IndexTask]] = {}
        self._processing: set[int] = set()
        # removals that arrived while their document was in flight, queued when it finishes
        self._deferred: dict[int, IndexTask] = {}
        self._seq = itertools.count()

        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._channel: asyncio.Queue[IndexTask] | None = None
        self._scheduler: asyncio.Task | None = None
        self._workers: list[asyncio.Task] = []
        self._running = False

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def start(self) -> None:
        """Start the scheduler loop and the worker pool."""
        if self._running:
            return
        self._running = True
        self._channel = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker_loop(worker_id), name=f"index-worker-{worker_id}")
            for worker_id in range(self.concurrency)
        ]
        self._scheduler = asyncio.create_task(self._scheduler_loop(), name="index-scheduler")
        self.logging.info(
            "Index queue started: concurrency %d, max retries %d, retry delay %.1fs.",
            self.concurrency, self.max_retries, self.retry_delay,
        )

    async def stop(self) -> None:
        """Stop dispatching, let in-flight tasks finish, then shut the workers down.

        Pending tasks stay queued and run after the next start().
        """
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        if self._scheduler is not None:
            await self._scheduler
            self._scheduler = None
        if self._channel is not None:
            await self._channel.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._channel = None
        self.logging.info("Index queue stopped, %d tasks left pending.", len(self._pending))

    async def join(self) -> None:
        """Wait until no task is pending or in flight. Blocks forever on a stopped queue with pending tasks."""
        await self._idle.wait()

    def is_running(self) -> bool:
        return self._running

    ##########################################
    ################ ENQUEUE #################
    ##########################################

    def enqueue(self, task: IndexTask) -> bool:
        """Add a task unless its document is already pending or in flight.

        A removal request for a document that is still pending turns the
        pending task into a removal. A removal request for a document that is
        in flight is held back and queued as soon as the running task ends, so
        vectors written by that task are removed as well. Other tasks for an in
        flight document are ignored.

        Args:
            task (IndexTask): The task to schedule.

        Returns:
            bool: True if the task was queued (or upgraded to a removal), False if ignored.
        """
        document_id = task.document_id
        if document_id in self._processing:
            if task.remove and document_id not in self._deferred:
                self._deferred[document_id] = task
                self.logging.debug("Document %d is being indexed, removal queued after it.", document_id)
                return True
            self.logging.debug("Document %d is already being indexed, ignoring task.", document_id)
            return False

        existing = self._pending.get(document_id)
        if existing is not None:
            queued = existing[1]
            if task.remove and not queued.remove:
                self._push(queued.model_copy(update={"remove": True, "priority": min(queued.priority, task.priority)}))
                self.logging.debug("Pending task of document %d upgraded to a removal.", document_id)
                return True
            self.logging.debug("Document %d is already queued, ignoring task.", document_id)
            return False

        self._push(task)
        self.logging.debug("Queued document %d with priority %d.", document_id, task.priority)
        return True

    def _push(self, task: IndexTask) -> None:
        seq = next(self._seq)
        self._pending[task.document_id] = (seq, task)
        heapq.heappush(self._heap, (task.priority, task.enqueued_at, seq, task.document_id))
        self._idle.clear()
        self._wakeup.set()

    async def queue_reindex(self, document_id: int, title: str, content: str, hidden: bool, priority: int = 10) -> bool:
        """Mark a document pending and queue it for indexing.

        Returns:
            bool: True if a new task was queued.
        """
        task = IndexTask(document_id=document_id, title=title, content=content, hidden=hidden, priority=priority)
        if self.is_tracked(document_id):
            return self.enqueue(task)
        await self._doc_store.do_update_index_status(document_id, IndexStatus.PENDING)
        return self.enqueue(task)

    async def queue_removal(self, document_id: int, priority: int = 0) -> bool:
        """Queue the removal of every chunk and vector of a document.

        Returns:
            bool: True if a removal was queued or a pending task was upgraded.
        """
        task = IndexTask(document_id=document_id, priority=priority, remove=True)
        if self.is_tracked(document_id):
            return self.enqueue(task)
        await self._doc_store.do_update_index_status(document_id, IndexStatus.PENDING)
        return self.enqueue(task)

    def is_tracked(self, document_id: int) -> bool:
        """True if the document has a pending, deferred or in-flight task."""
        return document_id in self._pending or document_id in self._processing

    ##########################################
    ############### SCHEDULING ###############
    ##########################################

    async def _scheduler_loop(self) -> None:
        while self._running:
            self._dispatch_ready()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

    def _dispatch_ready(self) -> None:
        """Hand the best pending tasks to the workers while below the concurrency limit."""
        while self._heap and len(self._processing) < self.concurrency:
            _, _, seq, document_id = heapq.heappop(self._heap)
            entry = self._pending.get(document_id)
            if entry is None or entry[0] != seq:
                continue
            del self._pending[document_id]
            self._processing.add(document_id)
            self._channel.put_nowait(entry[1])

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            task = await self._channel.get()
            try:
                await self._run_task(task)
            except Exception as exc:
                self.logging.exception("Worker %d crashed on document %d: %s", worker_id, task.document_id, exc)
            finally:
                self._processing.discard(task.document_id)
                follow_up = self._deferred.pop(task.document_id, None)
                if follow_up is not None:
                    self._push(follow_up)
                self._channel.task_done()
                if not self._pending and not self._processing:
                    self._idle.set()
                self._wakeup.set()

    async def _run_task(self, task: IndexTask) -> None:
        """Run a task, retrying the whole pipeline on failure.

        Fatal errors skip the retries. After the last failed attempt the
        document is marked failed with the error message.
        """
        document_id = task.document_id
        attempt = 0
        while True:
            attempt += 1
            await self._doc_store.do_update_index_status(document_id, IndexStatus.PROCESSING)
            try:
                result = await self._indexing_service.do_index_task(task)
            except IndexingFatalError as exc:
                self.logging.error("Indexing document %d failed with a fatal error: %s", document_id, exc)
                await self._doc_store.do_update_index_status(document_id, IndexStatus.FAILED, error=str(exc))
                return
            except Exception as exc:
                if attempt > self.max_retries:
                    self.logging.error(
                        "Indexing document %d failed after %d attempts: %s", document_id, attempt, exc
                    )
                    await self._doc_store.do_update_index_status(document_id, IndexStatus.FAILED, error=str(exc))
                    return
                self.logging.warning(
                    "Indexing document %d failed (attempt %d of %d), retrying in %.1fs: %s",
                    document_id, attempt, self.max_retries + 1, self.retry_delay, exc,
                )
                await asyncio.sleep(self.retry_delay)
                continue

            await self._doc_store.do_update_index_status(document_id, IndexStatus.COMPLETED)
            if result.removed_document:
                self.logging.info("Document %d removed from the index.", document_id, color="green")
            else:
                self.logging.info(
                    "Document %d v%s indexed: %d embedded, %d reused, %d vectors deleted.",
                    document_id, result.version, result.upserted_vectors, result.reused_count, result.deleted_vectors,
                    color="green",
                )
            return

    ##########################################
    ################# STATUS #################
    ##########################################

    def get_status(self) -> QueueStatus:
        """Snapshot of pending and in-flight tasks."""
        waiting = [*(task for _, task in self._pending.values()), *self._deferred.values()]
        pending = sorted(waiting, key=lambda task: (task.priority, task.enqueued_at))
        return QueueStatus(
            queue_length=len(pending),
            processing_count=len(self._processing),
            queued_tasks=[
                QueuedTaskInfo(document_id=task.document_id, title=task.title, priority=task.priority, remove=task.remove)
                for task in pending
            ],
            processing_document_ids=sorted(self._processing),
            is_running=self._running,
        )
