from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DomainEvent(BaseModel):
    """Envelope published to subscribers after a successful commit."""
    type: str = Field(..., description="Event type, e.g. inspection.transitioned")
    tenant_id: UUID
    payload: Dict[str, Any] = Field(default_factory=dict)
    at: datetime
    correlation_id: Optional[str] = None


class AuditRecord(BaseModel):
    """One audit-log entry handed to the audit sink."""
    action: str
    tenant_id: UUID
    actor_id: str
    entity_type: str
    entity_id: UUID
    details: Dict[str, Any] = Field(default_factory=dict)
    at: datetime
    correlation_id: Optional[str] = None
