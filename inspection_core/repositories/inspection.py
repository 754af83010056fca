from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inspection_core.db.models.inspection import Inspection, InspectionItem, InspectionStateHistory
from inspection_core.schemas.common import Pagination
from inspection_core.schemas.enums import ConditionSource, WorkflowState
from inspection_core.schemas.inspection import InspectionFilters
from .base import BaseRepository


class InspectionRepository(BaseRepository):
    """Repository for inspection aggregates."""

    model = Inspection
    label = "Inspection"

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_inspections(
        self, tenant_id: UUID, filters: InspectionFilters, page: Pagination
    ) -> Tuple[List[Inspection], int]:
        stmt = self.scoped(tenant_id)
        if filters.states:
            stmt = stmt.where(Inspection.state.in_([s.value for s in filters.states]))
        if filters.urgency:
            stmt = stmt.where(Inspection.urgency == filters.urgency.value)
        if filters.assigned_actor_id:
            stmt = stmt.where(Inspection.assigned_actor_id == filters.assigned_actor_id)
        if filters.created_by_actor_id:
            stmt = stmt.where(Inspection.created_by_actor_id == filters.created_by_actor_id)
        if filters.vehicle_ref:
            stmt = stmt.where(Inspection.vehicle_ref == filters.vehicle_ref)

        total = await self.count(stmt)
        stmt = (
            stmt.order_by(Inspection.created_at.desc(), Inspection.id)
            .offset(page.offset)
            .limit(page.limit)
        )
        res = await self.scalars(stmt)
        return list(res), total

    async def add_history(self, entry: InspectionStateHistory) -> None:
        await self.add(entry)

    async def list_history(self, inspection_id: UUID, tenant_id: UUID) -> List[InspectionStateHistory]:
        stmt = (
            select(InspectionStateHistory)
            .where(
                InspectionStateHistory.inspection_id == inspection_id,
                InspectionStateHistory.tenant_id == tenant_id,
            )
            .order_by(InspectionStateHistory.version.asc())
        )
        res = await self.scalars(stmt)
        return list(res)

    async def transition_counts(self, tenant_id: UUID, since: datetime) -> Dict[str, int]:
        """Counts of the tenant's transitions at or after `since`, by workflow milestone."""
        h = InspectionStateHistory

        def edge(from_state: Optional[WorkflowState], to_state: WorkflowState):
            cond = h.to_state == to_state.value
            if from_state is not None:
                cond = and_(h.from_state == from_state.value, cond)
            return func.count(case((cond, 1)))

        stmt = select(
            func.count(h.id).label("total_transitions"),
            edge(WorkflowState.DRAFT, WorkflowState.IN_PROGRESS).label("inspections_started"),
            edge(WorkflowState.IN_PROGRESS, WorkflowState.PENDING_REVIEW).label("submitted_for_review"),
            edge(WorkflowState.PENDING_REVIEW, WorkflowState.APPROVED).label("approved"),
            edge(WorkflowState.PENDING_REVIEW, WorkflowState.REJECTED).label("rejected"),
            edge(None, WorkflowState.COMPLETED).label("completed"),
        ).where(h.tenant_id == tenant_id, h.changed_at >= since)
        row = (await self.execute(stmt)).one()
        return {key: int(value or 0) for key, value in row._mapping.items()}

    async def completion_spans(self, tenant_id: UUID, since: datetime) -> List[Tuple[datetime, datetime]]:
        """
        (first started, completed) pairs for inspections completed at or after
        `since`. Inspections never moved out of draft through the workflow are
        skipped.
        """
        h = InspectionStateHistory
        completed = await self.execute(
            select(h.inspection_id, h.changed_at).where(
                h.tenant_id == tenant_id,
                h.to_state == WorkflowState.COMPLETED.value,
                h.changed_at >= since,
            )
        )
        completed_at = {row.inspection_id: row.changed_at for row in completed}
        if not completed_at:
            return []

        started = await self.execute(
            select(h.inspection_id, h.changed_at).where(
                h.tenant_id == tenant_id,
                h.inspection_id.in_(list(completed_at)),
                h.from_state == WorkflowState.DRAFT.value,
                h.to_state == WorkflowState.IN_PROGRESS.value,
            )
        )
        started_at: Dict[UUID, datetime] = {}
        for row in started:
            first = started_at.get(row.inspection_id)
            if first is None or row.changed_at < first:
                started_at[row.inspection_id] = row.changed_at
        return [(started_at[i], completed_at[i]) for i in completed_at if i in started_at]


class InspectionItemRepository(BaseRepository):
    """Repository for inspection checklist items."""

    model = InspectionItem
    label = "Inspection item"

    async def list_for_inspection(self, inspection_id: UUID, tenant_id: UUID) -> List[InspectionItem]:
        stmt = (
            self.scoped(tenant_id)
            .where(InspectionItem.inspection_id == inspection_id)
            .order_by(InspectionItem.created_at.asc(), InspectionItem.id)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def count_for_inspection(self, inspection_id: UUID, tenant_id: UUID) -> int:
        return await self.count(self.scoped(tenant_id).where(InspectionItem.inspection_id == inspection_id))

    async def conditions_for_inspection(self, inspection_id: UUID, tenant_id: UUID) -> List[str]:
        stmt = select(InspectionItem.condition).where(
            InspectionItem.inspection_id == inspection_id,
            InspectionItem.tenant_id == tenant_id,
        )
        res = await self.scalars(stmt)
        return list(res)

    async def apply_condition(
        self,
        item_id: UUID,
        tenant_id: UUID,
        *,
        condition: str,
        source: ConditionSource,
        observed_at: datetime,
    ) -> bool:
        """
        Last-write-wins update: applies only when `observed_at` is not older than
        the stored condition timestamp. Returns whether the write won.
        """
        stmt = (
            update(InspectionItem)
            .where(
                InspectionItem.id == item_id,
                InspectionItem.tenant_id == tenant_id,
                or_(
                    InspectionItem.condition_updated_at.is_(None),
                    InspectionItem.condition_updated_at <= observed_at,
                ),
            )
            .values(
                condition=condition,
                condition_source=source.value,
                condition_updated_at=observed_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        return (result.rowcount or 0) > 0

    async def find_in_inspection(
        self, item_id: UUID, inspection_id: UUID, tenant_id: UUID
    ) -> Optional[InspectionItem]:
        stmt = self.scoped(tenant_id).where(
            InspectionItem.id == item_id, InspectionItem.inspection_id == inspection_id
        )
        return await self.scalar_one_or_none(stmt)
