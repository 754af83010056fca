from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inspection_core.schemas.enums import (
    ActorRole,
    Condition,
    ConditionSource,
    Urgency,
    WorkflowState,
)


class InspectionCreate(BaseModel):
    """Create inspection payload."""
    vehicle_ref: str = Field(..., min_length=1, description="Opaque vehicle reference")
    concerns: List[str] = Field(default_factory=list, description="Customer concerns, one per entry")
    assigned_actor_id: Optional[str] = Field(None, description="Technician the inspection is assigned to")

    @field_validator("vehicle_ref")
    @classmethod
    def _strip_vehicle(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("vehicle_ref must not be blank")
        return v

    @field_validator("concerns")
    @classmethod
    def _clean_concerns(cls, v: List[str]) -> List[str]:
        return [c.strip() for c in v if c and c.strip()]


class InspectionRead(BaseModel):
    """Inspection read model."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Inspection id")
    tenant_id: UUID = Field(..., description="Owning tenant")
    vehicle_ref: str = Field(...)
    concerns: List[str] = Field(default_factory=list)
    state: WorkflowState = Field(...)
    previous_state: Optional[WorkflowState] = Field(None)
    urgency: Urgency = Field(...)
    version: int = Field(..., ge=1)
    assigned_actor_id: Optional[str] = Field(None)
    created_by_actor_id: str = Field(...)
    state_changed_by: Optional[str] = Field(None)
    state_changed_at: datetime = Field(...)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")


class InspectionSummary(BaseModel):
    """Compact row returned by inspection queries."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    vehicle_ref: str
    state: WorkflowState
    urgency: Urgency
    version: int
    assigned_actor_id: Optional[str] = None
    created_by_actor_id: str
    state_changed_at: datetime
    created_at: datetime


class InspectionFilters(BaseModel):
    """Optional filters for inspection queries; all given filters must match."""
    states: Optional[List[WorkflowState]] = Field(None, description="Match any of these states")
    urgency: Optional[Urgency] = Field(None)
    assigned_actor_id: Optional[str] = Field(None)
    created_by_actor_id: Optional[str] = Field(None)
    vehicle_ref: Optional[str] = Field(None, description="Exact vehicle reference")


class InspectionItemCreate(BaseModel):
    """Create inspection item payload."""
    category: str = Field(..., min_length=1)
    component: str = Field(..., min_length=1)
    condition: Condition = Field(Condition.GOOD)
    notes: Optional[str] = Field(None)


class InspectionItemRead(BaseModel):
    """Inspection item read model."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    inspection_id: UUID
    category: str
    component: str
    condition: Condition
    condition_source: ConditionSource
    condition_updated_at: datetime
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TransitionRequest(BaseModel):
    """Validated arguments of a workflow transition."""
    actor_role: ActorRole
    target_state: WorkflowState
    expected_version: int = Field(..., ge=1)
    reason: Optional[str] = Field(
        None, max_length=2000, description="Why the transition was made; required when rejecting"
    )

    @field_validator("reason")
    @classmethod
    def _blank_reason_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class StateHistoryRead(BaseModel):
    """Recorded transition."""
    model_config = ConfigDict(from_attributes=True)

    from_state: WorkflowState
    to_state: WorkflowState
    version: int
    actor_id: str
    actor_role: ActorRole
    changed_at: datetime
    reason: Optional[str] = None


class WorkflowStatistics(BaseModel):
    """Transition counts for a tenant over a trailing window."""
    window_days: int
    since: datetime
    total_transitions: int = 0
    inspections_started: int = Field(0, description="draft -> in_progress")
    submitted_for_review: int = Field(0, description="in_progress -> pending_review")
    approved: int = Field(0, description="pending_review -> approved")
    rejected: int = Field(0, description="pending_review -> rejected")
    completed: int = Field(0, description="Transitions into completed")
    avg_completion_hours: Optional[float] = Field(
        None, description="Mean time from first start to completion of inspections completed in the window"
    )
