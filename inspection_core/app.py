"""
InspectionCore: the operations exposed by the inspection workflow engine and
voice annotation pipeline.

Every call opens its own session, runs under a log context carrying the tenant
and a correlation id, and lets InspectionCoreError subclasses propagate.
Anything else is logged and re-raised as InternalError. Events and audit
records are emitted only after the owning transaction committed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inspection_core.core.errors import InspectionCoreError, InternalError, NotFound, ValidationError
from inspection_core.core.logging import configure_logging, log_context
from inspection_core.core.settings import AppSettings, get_app_settings
from inspection_core.core.tenancy import TenantContext, coerce_entity_id, coerce_tenant_id
from inspection_core.db.base import utcnow
from inspection_core.db.session import get_session_maker
from inspection_core.schemas.common import Page, Pagination
from inspection_core.schemas.enums import TaskPriority, TaskStatus, WorkflowState
from inspection_core.schemas.events import AuditRecord, DomainEvent
from inspection_core.schemas.inspection import (
    InspectionCreate,
    InspectionFilters,
    InspectionItemCreate,
    InspectionItemRead,
    InspectionRead,
    InspectionSummary,
    StateHistoryRead,
    TransitionRequest,
    WorkflowStatistics,
)
from inspection_core.schemas.voice import (
    AnnotationLookup,
    QueueStatus,
    VoiceAnnotationRead,
    VoiceNoteRequest,
    VoiceProcessingStatistics,
)
from inspection_core.services.annotation_queue import AnnotationQueue
from inspection_core.services.events import AuditSink, EventBroadcaster, LoggingAuditSink, emit_audit
from inspection_core.services.inspection import InspectionService
from inspection_core.services.transition_rules import DEFAULT_RULE_TABLE, TransitionRuleTable
from inspection_core.services.voice import VoiceAnnotationService
from inspection_core.services.workflow import WorkflowEngine

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

IdLike = Union[str, UUID]


def _validate(model: Type[M], **data: Any) -> M:
    """Build a boundary model, reporting pydantic failures as ValidationError."""
    try:
        return model(**data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__}", details=exc.errors(include_url=False, include_context=False)
        )


class InspectionCore:
    """
    Facade over the inspection services.

    Usage:
        core = InspectionCore.from_settings()
        await core.start()
        insp = await core.create_inspection(tenant_id, "tech-1", "VIN123", ["brakes squeal"])
        ...
        await core.stop()
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rules: Optional[TransitionRuleTable] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> None:
        self.settings = settings or get_app_settings()
        self._session_maker = session_maker
        self._clock = clock or utcnow
        self.rules = rules or DEFAULT_RULE_TABLE
        self.broadcaster = broadcaster or EventBroadcaster()
        self.audit_sink: AuditSink = audit_sink or LoggingAuditSink()
        self.queue = AnnotationQueue(
            self._process_voice_note,
            batch_size=self.settings.QUEUE_BATCH_SIZE,
            poll_interval_seconds=self.settings.QUEUE_POLL_INTERVAL_SECONDS,
            max_retries=self.settings.QUEUE_MAX_RETRIES,
            retention=timedelta(hours=self.settings.QUEUE_RETENTION_HOURS),
            clock=self._clock,
        )

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None, **kwargs: Any) -> "InspectionCore":
        """Build a core on the process-wide engine configured by db.config.Settings."""
        settings = settings or get_app_settings()
        configure_logging(settings.LOG_LEVEL)
        return cls(get_session_maker(), settings=settings, **kwargs)

    # PUBLIC_INTERFACE
    async def start(self) -> None:
        """Start the annotation queue poll loop."""
        self.queue.start()

    # PUBLIC_INTERFACE
    async def stop(self) -> None:
        await self.queue.stop()

    async def __aenter__(self) -> "InspectionCore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @asynccontextmanager
    async def _operation(self, name: str, tenant_id: Any = None) -> AsyncIterator[str]:
        with log_context(tenant_id) as corr:
            try:
                yield corr
            except InspectionCoreError:
                raise
            except Exception as exc:
                logger.exception("Unhandled error in %s", name)
                raise InternalError(corr) from exc

    def _context(self, tenant_id: IdLike, actor_id: str, actor_role: Optional[str] = None) -> TenantContext:
        return _validate(
            TenantContext,
            tenant_id=coerce_tenant_id(tenant_id),
            actor_id=actor_id,
            actor_role=actor_role,
        )

    async def _publish(self, event_type: str, tenant_id: UUID, payload: Dict[str, Any], corr: str) -> None:
        event = DomainEvent(
            type=event_type, tenant_id=tenant_id, payload=payload, at=self._clock(), correlation_id=corr
        )
        try:
            await self.broadcaster.publish(event)
        except Exception:
            logger.exception("Failed to publish %s", event_type)

    async def _audit(
        self,
        action: str,
        ctx: TenantContext,
        entity_type: str,
        entity_id: UUID,
        details: Dict[str, Any],
        corr: str,
    ) -> None:
        await emit_audit(
            self.audit_sink,
            AuditRecord(
                action=action,
                tenant_id=ctx.tenant_id,
                actor_id=ctx.actor_id,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
                at=self._clock(),
                correlation_id=corr,
            ),
        )

    # ---- Inspections -------------------------------------------------------

    # PUBLIC_INTERFACE
    async def create_inspection(
        self,
        tenant_id: IdLike,
        actor_id: str,
        vehicle_ref: str,
        concerns: Optional[Sequence[str]] = None,
        *,
        assigned_actor_id: Optional[str] = None,
    ) -> InspectionRead:
        """Create an inspection in draft at version 1."""
        async with self._operation("create_inspection", tenant_id) as corr:
            ctx = self._context(tenant_id, actor_id)
            payload = _validate(
                InspectionCreate,
                vehicle_ref=vehicle_ref,
                concerns=list(concerns or []),
                assigned_actor_id=assigned_actor_id,
            )
            async with self._session_maker() as session:
                created = await InspectionService(session, clock=self._clock).create_inspection(ctx, payload)
                result = InspectionRead.model_validate(created)
            await self._audit(
                "inspection.created", ctx, "inspection", result.id, {"vehicle_ref": result.vehicle_ref}, corr
            )
            return result

    # PUBLIC_INTERFACE
    async def get_inspection(self, inspection_id: IdLike, tenant_id: IdLike) -> InspectionRead:
        async with self._operation("get_inspection", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                found = await InspectionService(session, clock=self._clock).get_inspection(tid, iid)
                return InspectionRead.model_validate(found)

    # PUBLIC_INTERFACE
    async def query_inspections(
        self,
        tenant_id: IdLike,
        filters: Optional[Union[InspectionFilters, Dict[str, Any]]] = None,
        page: Optional[Union[Pagination, Dict[str, Any]]] = None,
    ) -> Page[InspectionSummary]:
        """List the tenant's inspections newest first, filtered and paginated."""
        async with self._operation("query_inspections", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            if isinstance(filters, dict):
                filters = _validate(InspectionFilters, **filters)
            if isinstance(page, dict):
                page = _validate(Pagination, **page)
            async with self._session_maker() as session:
                return await InspectionService(session, clock=self._clock).query_inspections(
                    tid, filters, page
                )

    # ---- Workflow ----------------------------------------------------------

    # PUBLIC_INTERFACE
    async def transition(
        self,
        inspection_id: IdLike,
        tenant_id: IdLike,
        actor_id: str,
        actor_role: str,
        target_state: Union[str, WorkflowState],
        expected_version: int,
        reason: Optional[str] = None,
    ) -> InspectionRead:
        """
        Move an inspection to target_state under optimistic concurrency.

        A rejection must carry a reason; any given reason is kept in the
        workflow history.

        Raises:
            ValidationError, NotFound, VersionConflict, InvalidTransition
        """
        async with self._operation("transition", tenant_id) as corr:
            ctx = self._context(tenant_id, actor_id, actor_role)
            request = _validate(
                TransitionRequest,
                actor_role=actor_role,
                target_state=target_state,
                expected_version=expected_version,
                reason=reason,
            )
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                engine = WorkflowEngine(session, rules=self.rules, clock=self._clock)
                moved = await engine.transition(
                    ctx, iid, request.target_state, request.expected_version, request.reason
                )
                result = InspectionRead.model_validate(moved)

            details = {
                "from_state": result.previous_state.value if result.previous_state else None,
                "to_state": result.state.value,
                "version": result.version,
                "urgency": result.urgency.value,
                "actor_role": request.actor_role.value,
                "reason": request.reason,
            }
            await self._audit("inspection.transitioned", ctx, "inspection", result.id, details, corr)
            await self._publish(
                "inspection.transitioned", ctx.tenant_id, {"inspection_id": str(result.id), **details}, corr
            )
            return result

    # PUBLIC_INTERFACE
    async def allowed_transitions(
        self, inspection_id: IdLike, tenant_id: IdLike, actor_id: str, actor_role: str
    ) -> List[WorkflowState]:
        async with self._operation("allowed_transitions", tenant_id):
            ctx = self._context(tenant_id, actor_id, actor_role)
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                engine = WorkflowEngine(session, rules=self.rules, clock=self._clock)
                return await engine.allowed_transitions(ctx, iid)

    # PUBLIC_INTERFACE
    async def get_workflow_history(self, inspection_id: IdLike, tenant_id: IdLike) -> List[StateHistoryRead]:
        """Recorded transitions of an inspection, oldest first."""
        async with self._operation("get_workflow_history", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                rows = await WorkflowEngine(session, rules=self.rules, clock=self._clock).history(tid, iid)
                return [StateHistoryRead.model_validate(r) for r in rows]

    # PUBLIC_INTERFACE
    async def get_workflow_statistics(self, tenant_id: IdLike, days: int = 30) -> WorkflowStatistics:
        """Transition counts and mean completion time over the trailing `days`."""
        async with self._operation("get_workflow_statistics", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            async with self._session_maker() as session:
                return await WorkflowEngine(session, rules=self.rules, clock=self._clock).statistics(tid, days)

    # ---- Items -------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def add_item(
        self,
        inspection_id: IdLike,
        tenant_id: IdLike,
        actor_id: str,
        category: str,
        component: str,
        condition: str = "good",
        notes: Optional[str] = None,
    ) -> InspectionItemRead:
        async with self._operation("add_item", tenant_id) as corr:
            ctx = self._context(tenant_id, actor_id)
            payload = _validate(
                InspectionItemCreate, category=category, component=component, condition=condition, notes=notes
            )
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                item = await InspectionService(session, clock=self._clock).add_item(ctx, iid, payload)
                result = InspectionItemRead.model_validate(item)
            await self._audit(
                "item.added", ctx, "inspection_item", result.id, {"inspection_id": str(iid)}, corr
            )
            return result

    # PUBLIC_INTERFACE
    async def list_items(self, inspection_id: IdLike, tenant_id: IdLike) -> List[InspectionItemRead]:
        async with self._operation("list_items", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            iid = coerce_entity_id("Inspection", inspection_id)
            async with self._session_maker() as session:
                rows = await InspectionService(session, clock=self._clock).list_items(tid, iid)
                return [InspectionItemRead.model_validate(r) for r in rows]

    # PUBLIC_INTERFACE
    async def set_item_condition(
        self,
        item_id: IdLike,
        tenant_id: IdLike,
        actor_id: str,
        condition: str,
        observed_at: Optional[datetime] = None,
    ) -> InspectionItemRead:
        """
        Set an item's condition manually. An observation older than the stored
        one is ignored and the stored item is returned unchanged.
        """
        async with self._operation("set_item_condition", tenant_id) as corr:
            ctx = self._context(tenant_id, actor_id)
            item_uuid = coerce_entity_id("Inspection item", item_id)
            async with self._session_maker() as session:
                item, applied = await InspectionService(session, clock=self._clock).set_item_condition(
                    ctx, item_uuid, condition, observed_at
                )
                result = InspectionItemRead.model_validate(item)
            if applied:
                await self._audit(
                    "item.condition_set", ctx, "inspection_item", result.id, {"condition": result.condition.value}, corr
                )
            return result

    # ---- Voice annotations -------------------------------------------------

    # PUBLIC_INTERFACE
    async def attach_voice_note(
        self,
        inspection_id: IdLike,
        item_id: Optional[IdLike],
        tenant_id: IdLike,
        actor_id: str,
        raw_text: str,
        audio_ref: Optional[str] = None,
        priority: Union[str, TaskPriority] = TaskPriority.MEDIUM,
        *,
        audio_duration_seconds: Optional[float] = None,
    ) -> UUID:
        """
        Validate a voice note and queue it for parsing.

        Returns:
            Task id to poll with get_annotation.
        Raises:
            ValidationError: blank or oversized text, unknown priority, or an
                item note on an inspection past the editable states
            NotFound: inspection or item not in this tenant
        """
        async with self._operation("attach_voice_note", tenant_id):
            ctx = self._context(tenant_id, actor_id)
            try:
                prio = TaskPriority(priority)
            except ValueError:
                raise ValidationError(f"Unknown priority: {priority!r}")
            request = _validate(
                VoiceNoteRequest,
                tenant_id=ctx.tenant_id,
                actor_id=ctx.actor_id,
                inspection_id=coerce_entity_id("Inspection", inspection_id),
                item_id=coerce_entity_id("Inspection item", item_id) if item_id is not None else None,
                raw_text=raw_text,
                audio_ref=audio_ref,
                audio_duration_seconds=audio_duration_seconds,
            )
            async with self._session_maker() as session:
                await VoiceAnnotationService(session, settings=self.settings, clock=self._clock).validate(request)
            return self.queue.enqueue(request, prio)

    async def _process_voice_note(self, request: VoiceNoteRequest) -> UUID:
        with log_context(request.tenant_id) as corr:
            async with self._session_maker() as session:
                service = VoiceAnnotationService(session, settings=self.settings, clock=self._clock)
                annotation = await service.process(request)
                result = VoiceAnnotationRead.from_row(annotation)

            ctx = TenantContext(tenant_id=request.tenant_id, actor_id=request.actor_id)
            details = {
                "inspection_id": str(result.inspection_id),
                "item_id": str(result.item_id) if result.item_id else None,
                "confidence": result.confidence,
                "condition_candidate": result.condition_candidate.value if result.condition_candidate else None,
            }
            await self._audit("annotation.completed", ctx, "voice_annotation", result.id, details, corr)
            await self._publish(
                "annotation.completed", request.tenant_id, {"annotation_id": str(result.id), **details}, corr
            )
            return result.id

    # PUBLIC_INTERFACE
    async def get_annotation(self, task_id: IdLike, tenant_id: IdLike) -> AnnotationLookup:
        """
        Poll a voice note task.

        Returns:
            AnnotationLookup; `annotation` is set once the task completed,
            `error` once it failed.
        Raises:
            NotFound: unknown, purged or foreign task
        """
        async with self._operation("get_annotation", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            tid_task = coerce_entity_id("Queue task", task_id)
            task = self.queue.status(tid_task)
            if task.tenant_id != tid:
                raise NotFound("Queue task", task_id)

            annotation = None
            if task.status == TaskStatus.COMPLETED and task.annotation_id is not None:
                async with self._session_maker() as session:
                    service = VoiceAnnotationService(session, settings=self.settings, clock=self._clock)
                    row = await service.get_annotation(tid, task.annotation_id)
                    annotation = VoiceAnnotationRead.from_row(row)
            return AnnotationLookup(
                task_id=task.id,
                status=task.status,
                retry_count=task.retry_count,
                error=task.error,
                annotation=annotation,
            )

    # PUBLIC_INTERFACE
    async def list_item_annotations(self, item_id: IdLike, tenant_id: IdLike) -> List[VoiceAnnotationRead]:
        """All annotations of an item, newest (current) first."""
        async with self._operation("list_item_annotations", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            item_uuid = coerce_entity_id("Inspection item", item_id)
            async with self._session_maker() as session:
                service = VoiceAnnotationService(session, settings=self.settings, clock=self._clock)
                rows = await service.list_for_item(tid, item_uuid)
                return [VoiceAnnotationRead.from_row(r) for r in rows]

    # PUBLIC_INTERFACE
    async def get_voice_statistics(self, tenant_id: IdLike, days: int = 30) -> VoiceProcessingStatistics:
        """Confidence, audio and component figures for annotations of the trailing `days`."""
        async with self._operation("get_voice_statistics", tenant_id):
            tid = coerce_tenant_id(tenant_id)
            async with self._session_maker() as session:
                service = VoiceAnnotationService(session, settings=self.settings, clock=self._clock)
                return await service.statistics(tid, days)

    # PUBLIC_INTERFACE
    def queue_status(self) -> QueueStatus:
        """Task counts by status."""
        return self.queue.stats()
