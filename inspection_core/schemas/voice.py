from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inspection_core.schemas.enums import (
    Condition,
    MeasurementUnit,
    RecommendedAction,
    TaskPriority,
    TaskStatus,
)


class Measurement(BaseModel):
    """Normalized measurement; fractions of an inch are already decimal inches."""
    model_config = ConfigDict(frozen=True)

    value: float = Field(..., description="Decimal value")
    unit: MeasurementUnit = Field(...)


class ParseResult(BaseModel):
    """Structured candidate finding extracted from free text."""
    model_config = ConfigDict(frozen=True)

    component: Optional[str] = Field(None, description="Part label, optionally position-qualified")
    condition_candidate: Optional[Condition] = Field(None)
    measurement: Optional[Measurement] = Field(None)
    action: Optional[RecommendedAction] = Field(None)
    confidence: float = Field(..., ge=0.0, le=1.0, description="Heuristic extraction score")
    needs_attention: bool = Field(
        False, description="Text asked for work ('needs', 'requires', ...) without naming a condition"
    )

    @property
    def fields_found(self) -> int:
        return sum(
            x is not None
            for x in (self.component, self.condition_candidate, self.measurement, self.action)
        )


class VoiceNoteRequest(BaseModel):
    """A voice note waiting to be parsed and stored."""
    model_config = ConfigDict(frozen=True)

    tenant_id: UUID
    actor_id: str
    inspection_id: UUID
    item_id: Optional[UUID] = None
    raw_text: str
    audio_ref: Optional[str] = None
    audio_duration_seconds: Optional[float] = Field(None, ge=0)


class VoiceAnnotationRead(BaseModel):
    """Voice annotation read model."""
    id: UUID
    inspection_id: UUID
    item_id: Optional[UUID] = None
    actor_id: str
    raw_text: str
    audio_ref: Optional[str] = None
    audio_duration_seconds: Optional[float] = None
    component: Optional[str] = None
    condition_candidate: Optional[Condition] = None
    measurement: Optional[Measurement] = None
    action: Optional[RecommendedAction] = None
    confidence: float
    needs_attention: bool = False
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "VoiceAnnotationRead":
        measurement = None
        if row.measurement_value is not None and row.measurement_unit:
            measurement = Measurement(value=row.measurement_value, unit=row.measurement_unit)
        return cls(
            id=row.id,
            inspection_id=row.inspection_id,
            item_id=row.item_id,
            actor_id=row.actor_id,
            raw_text=row.raw_text,
            audio_ref=row.audio_ref,
            audio_duration_seconds=row.audio_duration_seconds,
            component=row.component,
            condition_candidate=row.condition_candidate,
            measurement=measurement,
            action=row.action,
            confidence=row.confidence,
            needs_attention=row.needs_attention,
            warnings=list(row.warnings or []),
            suggestions=list(row.suggestions or []),
            created_at=row.created_at,
        )


class QueueTask(BaseModel):
    """
    Unit of deferred parsing work. Mutated only by the annotation queue;
    callers receive copies.
    """
    id: UUID
    tenant_id: UUID
    priority: TaskPriority
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = Field(0, ge=0)
    request: VoiceNoteRequest
    seq: int = Field(..., description="Enqueue order, kept across retries")
    error: Optional[str] = None
    annotation_id: Optional[UUID] = None
    enqueued_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class QueueStatus(BaseModel):
    """Task counts by status."""
    pending: int = 0
    processing: int = 0
    failed: int = 0
    completed: int = 0


class AnnotationLookup(BaseModel):
    """Result of polling a voice note task."""
    task_id: UUID
    status: TaskStatus
    retry_count: int = 0
    error: Optional[str] = None
    annotation: Optional[VoiceAnnotationRead] = None

    @property
    def is_pending(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.PROCESSING)


class VoiceProcessingStatistics(BaseModel):
    """Aggregate view of a tenant's stored annotations over a trailing window."""
    window_days: int
    since: datetime
    total_voice_notes: int = 0
    avg_confidence: Optional[float] = None
    high_confidence_count: int = Field(0, description="Confidence at or above the auto-apply threshold")
    low_confidence_count: int = Field(0, description="Confidence below 0.5")
    notes_with_audio: int = 0
    avg_audio_duration_seconds: Optional[float] = None
    most_common_components: Dict[str, int] = Field(
        default_factory=dict, description="Up to ten components, most annotated first"
    )
