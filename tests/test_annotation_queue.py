"""
Unit tests for the annotation queue with a fake processor.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from inspection_core.core.errors import NotFound, ValidationError
from inspection_core.schemas.enums import TaskPriority, TaskStatus
from inspection_core.schemas.voice import VoiceNoteRequest
from inspection_core.services.annotation_queue import AnnotationQueue


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _request(text="battery good"):
    return VoiceNoteRequest(
        tenant_id=uuid.uuid4(),
        actor_id="tech-1",
        inspection_id=uuid.uuid4(),
        raw_text=text,
    )


class RecordingProcessor:
    def __init__(self):
        self.seen = []

    async def __call__(self, request):
        self.seen.append(request.raw_text)
        return uuid.uuid4()


class TestOrdering:

    async def test_high_priority_drains_before_earlier_low(self):
        processor = RecordingProcessor()
        queue = AnnotationQueue(processor, batch_size=1)
        low = queue.enqueue(_request("low"), TaskPriority.LOW)
        high = queue.enqueue(_request("high"), TaskPriority.HIGH)

        assert await queue.drain() == 1
        assert processor.seen == ["high"]
        assert queue.status(high).status == TaskStatus.COMPLETED
        assert queue.status(low).status == TaskStatus.PENDING

    async def test_fifo_within_tier(self):
        processor = RecordingProcessor()
        queue = AnnotationQueue(processor, batch_size=10)
        for name, prio in [("m1", "medium"), ("l1", "low"), ("m2", "medium"), ("h1", "high")]:
            queue.enqueue(_request(name), prio)
        await queue.drain()
        assert processor.seen == ["h1", "m1", "m2", "l1"]

    async def test_batch_size_bounds_one_drain(self):
        processor = RecordingProcessor()
        queue = AnnotationQueue(processor, batch_size=2)
        for i in range(5):
            queue.enqueue(_request(f"n{i}"))
        assert await queue.drain() == 2
        assert queue.stats().pending == 3
        assert queue.stats().completed == 2

    async def test_concurrent_drain_is_noop(self):
        release = asyncio.Event()

        async def slow(request):
            await release.wait()
            return uuid.uuid4()

        queue = AnnotationQueue(slow, batch_size=5)
        queue.enqueue(_request())
        first = asyncio.create_task(queue.drain())
        await asyncio.sleep(0)
        assert queue.is_draining
        assert await queue.drain() == 0
        assert queue.stats().processing == 1
        release.set()
        assert await first == 1


class TestRetries:

    async def test_transient_failure_retries_then_fails(self):
        processor = AsyncMock(side_effect=RuntimeError("db down"))
        queue = AnnotationQueue(processor, max_retries=3)
        task_id = queue.enqueue(_request())

        await queue.drain()
        snapshot = queue.status(task_id)
        assert snapshot.status == TaskStatus.PENDING
        assert snapshot.retry_count == 1

        await queue.drain()
        await queue.drain()
        snapshot = queue.status(task_id)
        assert snapshot.status == TaskStatus.FAILED
        assert snapshot.retry_count == 3
        assert "db down" in snapshot.error
        assert processor.await_count == 3

        assert await queue.drain() == 0

    async def test_recovers_after_transient_failure(self):
        annotation_id = uuid.uuid4()
        processor = AsyncMock(side_effect=[RuntimeError("blip"), annotation_id])
        queue = AnnotationQueue(processor)
        task_id = queue.enqueue(_request())
        await queue.drain()
        await queue.drain()
        snapshot = queue.status(task_id)
        assert snapshot.status == TaskStatus.COMPLETED
        assert snapshot.annotation_id == annotation_id
        assert snapshot.retry_count == 1
        assert snapshot.error is None

    async def test_retried_task_keeps_its_place(self):
        calls = []

        async def flaky(request):
            calls.append(request.raw_text)
            if request.raw_text == "first" and calls.count("first") == 1:
                raise RuntimeError("blip")
            return uuid.uuid4()

        queue = AnnotationQueue(flaky, batch_size=1)
        queue.enqueue(_request("first"))
        queue.enqueue(_request("second"))
        await queue.drain()
        await queue.drain()
        assert calls == ["first", "first"]

    async def test_validation_failure_is_permanent(self):
        processor = AsyncMock(side_effect=ValidationError("Voice note text must not be empty."))
        queue = AnnotationQueue(processor)
        task_id = queue.enqueue(_request())
        await queue.drain()
        snapshot = queue.status(task_id)
        assert snapshot.status == TaskStatus.FAILED
        assert snapshot.retry_count == 0
        assert processor.await_count == 1


class TestRetention:

    async def test_finished_tasks_purged_after_retention(self):
        clock = FakeClock()
        queue = AnnotationQueue(RecordingProcessor(), retention=timedelta(hours=24), clock=clock)
        done = queue.enqueue(_request())
        await queue.drain()
        waiting = queue.enqueue(_request())

        clock.advance(hours=23)
        assert queue.purge_expired() == 0
        clock.advance(hours=2)
        assert queue.purge_expired() == 1

        with pytest.raises(NotFound):
            queue.status(done)
        assert queue.status(waiting).status == TaskStatus.PENDING

    def test_status_returns_copy(self):
        queue = AnnotationQueue(RecordingProcessor())
        task_id = queue.enqueue(_request())
        snapshot = queue.status(task_id)
        snapshot.status = TaskStatus.FAILED
        assert queue.status(task_id).status == TaskStatus.PENDING

    def test_unknown_task(self):
        queue = AnnotationQueue(RecordingProcessor())
        with pytest.raises(NotFound):
            queue.status(uuid.uuid4())


class TestLoop:

    async def test_background_loop_drains(self):
        processor = RecordingProcessor()
        queue = AnnotationQueue(processor, poll_interval_seconds=0.01)
        queue.enqueue(_request("looped"))
        queue.start()
        for _ in range(100):
            if processor.seen:
                break
            await asyncio.sleep(0.01)
        await queue.stop()
        assert processor.seen == ["looped"]
        assert queue.stats().completed == 1

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            AnnotationQueue(RecordingProcessor(), batch_size=0)
