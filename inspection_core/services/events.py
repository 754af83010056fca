from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set
from uuid import UUID

from inspection_core.schemas.events import AuditRecord, DomainEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[DomainEvent], Awaitable[None]]
AuditSink = Callable[[AuditRecord], Awaitable[None]]


class EventBroadcaster:
    """
    Simple in-process pub-sub for post-commit domain events.

    Topics:
      - inspections:{tenant_id}

    Publishing happens only after the owning transaction committed; a failing
    subscriber is logged and never affects the caller or other subscribers.
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[Subscriber]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def tenant_topic(self, tenant_id: UUID | str) -> str:
        """Return the topic name for a tenant."""
        return f"inspections:{tenant_id}"

    async def _ensure_topic(self, topic: str) -> None:
        async with self._global_lock:
            if topic not in self._topics:
                self._topics[topic] = set()

    # PUBLIC_INTERFACE
    async def subscribe(self, tenant_id: UUID | str, subscriber: Subscriber) -> None:
        """Register an async callable for the tenant's events."""
        topic = self.tenant_topic(tenant_id)
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            self._topics[topic].add(subscriber)
            logger.info("Subscriber added to topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def unsubscribe(self, tenant_id: UUID | str, subscriber: Subscriber) -> None:
        topic = self.tenant_topic(tenant_id)
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            self._topics[topic].discard(subscriber)

    # PUBLIC_INTERFACE
    async def publish(self, event: DomainEvent, exclude: Optional[Subscriber] = None) -> int:
        """
        Deliver the event to every subscriber of its tenant topic.

        Subscribers are snapshotted under the topic lock and called after it
        is released, so a subscriber may subscribe or unsubscribe while
        handling an event. Returns the number of successful deliveries.
        """
        topic = self.tenant_topic(event.tenant_id)
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            subscribers = [s for s in self._topics[topic] if exclude is None or s is not exclude]

        delivered = 0
        for subscriber in subscribers:
            try:
                await subscriber(event)
                delivered += 1
            except Exception:
                logger.exception("Subscriber failed for event %s on topic=%s", event.type, topic)
        return delivered


class LoggingAuditSink:
    """Default audit sink: one structured log line per record."""

    def __init__(self, logger_name: str = "inspection_core.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    async def __call__(self, record: AuditRecord) -> None:
        self._logger.info(
            "audit action=%s entity=%s:%s actor=%s details=%s",
            record.action,
            record.entity_type,
            record.entity_id,
            record.actor_id,
            record.details,
        )


# PUBLIC_INTERFACE
async def emit_audit(sink: AuditSink, record: AuditRecord) -> None:
    """Fire-and-forget: a failing sink is logged, never raised."""
    try:
        await sink(record)
    except Exception:
        logger.exception("Audit sink failed for action=%s", record.action)
