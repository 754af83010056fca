"""
In-process priority queue that turns voice notes into annotations.

Tasks drain highest priority first, then in enqueue order. Each drain takes at
most `batch_size` pending tasks and processes them concurrently; a drain that
starts while another is running returns immediately. Transient failures go
back to pending until `max_retries` attempts have failed; validation-style
failures fail at once. Finished tasks stay visible for `retention`, then are
purged.

Tasks live in memory only: pending work is lost when the process stops.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from inspection_core.core.errors import PERMANENT_ERRORS, NotFound, QueueProcessingError
from inspection_core.db.base import utcnow
from inspection_core.schemas.enums import PRIORITY_RANK, TaskPriority, TaskStatus
from inspection_core.schemas.voice import QueueStatus, QueueTask, VoiceNoteRequest

logger = logging.getLogger(__name__)

# Returns the id of the stored annotation.
Processor = Callable[[VoiceNoteRequest], Awaitable[UUID]]

_FINISHED = (TaskStatus.COMPLETED, TaskStatus.FAILED)


class AnnotationQueue:
    """Priority queue with bounded concurrent draining and retry accounting."""

    def __init__(
        self,
        processor: Processor,
        *,
        batch_size: int = 5,
        poll_interval_seconds: float = 5.0,
        max_retries: int = 3,
        retention: timedelta = timedelta(hours=24),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._processor = processor
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self.max_retries = max_retries
        self.retention = retention
        self._clock = clock or utcnow

        self._tasks: Dict[UUID, QueueTask] = {}
        self._seq = itertools.count()
        self._drain_lock = asyncio.Lock()
        self._stopping: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None

    # PUBLIC_INTERFACE
    def enqueue(self, request: VoiceNoteRequest, priority: TaskPriority = TaskPriority.MEDIUM) -> UUID:
        """Add a pending task and return its id."""
        task = QueueTask(
            id=uuid4(),
            tenant_id=request.tenant_id,
            priority=TaskPriority(priority),
            request=request,
            seq=next(self._seq),
            enqueued_at=self._clock(),
        )
        self._tasks[task.id] = task
        logger.info("Enqueued voice note task %s priority=%s", task.id, task.priority.value)
        return task.id

    # PUBLIC_INTERFACE
    def status(self, task_id: UUID) -> QueueTask:
        """
        Return a snapshot of the task.

        Raises:
            NotFound: unknown or already purged task id
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound("Queue task", task_id)
        return task.model_copy(deep=True)

    # PUBLIC_INTERFACE
    def stats(self) -> QueueStatus:
        counts = {s: 0 for s in TaskStatus}
        for task in self._tasks.values():
            counts[task.status] += 1
        return QueueStatus(
            pending=counts[TaskStatus.PENDING],
            processing=counts[TaskStatus.PROCESSING],
            failed=counts[TaskStatus.FAILED],
            completed=counts[TaskStatus.COMPLETED],
        )

    def pending_order(self) -> List[UUID]:
        """Ids of pending tasks in the order they would be drained."""
        pending = [t for t in self._tasks.values() if t.status == TaskStatus.PENDING]
        pending.sort(key=lambda t: (-PRIORITY_RANK[t.priority], t.seq))
        return [t.id for t in pending]

    @property
    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    # PUBLIC_INTERFACE
    async def drain(self) -> int:
        """
        Process one batch of pending tasks.

        Returns:
            Number of tasks taken; 0 when nothing is pending or another drain is running.
        """
        if self._drain_lock.locked():
            return 0
        async with self._drain_lock:
            batch = [self._tasks[i] for i in self.pending_order()[: self.batch_size]]
            if not batch:
                return 0
            started = self._clock()
            for task in batch:
                task.status = TaskStatus.PROCESSING
                task.started_at = started
            await asyncio.gather(*(self._run(task) for task in batch))
            return len(batch)

    async def _run(self, task: QueueTask) -> None:
        try:
            annotation_id = await self._processor(task.request)
        except PERMANENT_ERRORS as exc:
            task.error = str(exc)
            self._finish(task, TaskStatus.FAILED)
            logger.warning("Voice note task %s failed permanently: %s", task.id, exc)
        except Exception as exc:
            task.retry_count += 1
            task.error = str(QueueProcessingError(f"{type(exc).__name__}: {exc}"))
            if task.retry_count >= self.max_retries:
                self._finish(task, TaskStatus.FAILED)
                logger.error(
                    "Voice note task %s failed after %d attempts: %s", task.id, task.retry_count, exc
                )
            else:
                task.status = TaskStatus.PENDING
                logger.warning(
                    "Voice note task %s attempt %d failed, will retry: %s", task.id, task.retry_count, exc
                )
        else:
            task.annotation_id = annotation_id
            task.error = None
            self._finish(task, TaskStatus.COMPLETED)

    def _finish(self, task: QueueTask, status: TaskStatus) -> None:
        task.status = status
        task.finished_at = self._clock()

    # PUBLIC_INTERFACE
    def purge_expired(self) -> int:
        """Drop completed and failed tasks older than the retention window."""
        cutoff = self._clock() - self.retention
        expired = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status in _FINISHED and task.finished_at is not None and task.finished_at <= cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.info("Purged %d finished voice note tasks", len(expired))
        return len(expired)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start the background drain loop on the running event loop."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stopping = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run_loop())

    # PUBLIC_INTERFACE
    async def stop(self) -> None:
        """Stop the loop after the batch in flight, if any, has finished."""
        if self._loop_task is None:
            return
        assert self._stopping is not None
        self._stopping.set()
        await self._loop_task
        self._loop_task = None

    async def _run_loop(self) -> None:
        assert self._stopping is not None
        logger.info("Annotation queue started (batch_size=%d)", self.batch_size)
        while not self._stopping.is_set():
            try:
                await self.drain()
                self.purge_expired()
            except Exception:
                logger.exception("Annotation queue drain failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Annotation queue stopped")
