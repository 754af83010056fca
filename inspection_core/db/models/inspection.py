from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from inspection_core.db.base import Base, JSONType, TenantMixin, TimestampMixin, UUIDPkMixin, utcnow
from inspection_core.schemas.enums import Condition, ConditionSource, Urgency, WorkflowState


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class Inspection(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """
    Inspection aggregate root.

    `version` is the optimistic-locking column: the mapper adds
    `WHERE version = <loaded>` to every UPDATE and bumps it by one.
    """
    __tablename__ = "inspections"

    vehicle_ref: Mapped[str] = mapped_column(Text, nullable=False)
    concerns: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    state: Mapped[str] = mapped_column(Text, nullable=False, default=WorkflowState.DRAFT.value)
    previous_state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    urgency: Mapped[str] = mapped_column(Text, nullable=False, default=Urgency.NORMAL.value)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_actor_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_actor_id: Mapped[str] = mapped_column(Text, nullable=False)
    state_changed_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint(_in_clause("state", WorkflowState), name="state"),
        CheckConstraint(_in_clause("urgency", Urgency), name="urgency"),
        Index("ix_inspections_tenant_state", "tenant_id", "state"),
    )


class InspectionItem(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Checklist line of an inspection. Condition is last-write-wins."""
    __tablename__ = "inspection_items"

    inspection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(Text, nullable=False)
    component: Mapped[str] = mapped_column(Text, nullable=False)
    condition: Mapped[str] = mapped_column(Text, nullable=False, default=Condition.GOOD.value)
    condition_source: Mapped[str] = mapped_column(
        Text, nullable=False, default=ConditionSource.MANUAL.value
    )
    condition_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(_in_clause("condition", Condition), name="condition"),
        CheckConstraint(_in_clause("condition_source", ConditionSource), name="condition_source"),
    )


class InspectionStateHistory(UUIDPkMixin, TenantMixin, Base):
    """One row per successful transition, written in the same transaction."""
    __tablename__ = "inspection_state_history"

    inspection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_state: Mapped[str] = mapped_column(Text, nullable=False)
    to_state: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str] = mapped_column(Text, nullable=False)
    actor_role: Mapped[str] = mapped_column(Text, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_inspection_state_history_tenant_changed_at", "tenant_id", "changed_at"),
    )
