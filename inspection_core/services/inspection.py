from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from inspection_core.core.errors import ValidationError
from inspection_core.core.tenancy import TenantContext
from inspection_core.db.models.inspection import Inspection, InspectionItem
from inspection_core.repositories.inspection import InspectionItemRepository, InspectionRepository
from inspection_core.schemas.common import Page, Pagination
from inspection_core.schemas.enums import (
    EDITABLE_STATES,
    Condition,
    ConditionSource,
    Urgency,
    WorkflowState,
)
from inspection_core.schemas.inspection import (
    InspectionCreate,
    InspectionFilters,
    InspectionItemCreate,
    InspectionSummary,
)
from inspection_core.services.base import BaseService, Clock

logger = logging.getLogger(__name__)


def is_editable(inspection: Inspection) -> bool:
    return WorkflowState(inspection.state) in EDITABLE_STATES


# PUBLIC_INTERFACE
def ensure_editable(inspection: Inspection) -> Inspection:
    """Raise ValidationError unless the inspection's items may still change."""
    if not is_editable(inspection):
        raise ValidationError(
            f"Inspection {inspection.id} is {inspection.state}; items can only change while "
            "draft, in_progress or rejected."
        )
    return inspection


class InspectionService(BaseService):
    """
    Domain service for inspections and their checklist items.

    Workflow state is owned by WorkflowEngine; this service only creates
    inspections in draft and edits items while the inspection is editable.
    """

    def __init__(self, session: AsyncSession, *, clock: Optional[Clock] = None) -> None:
        super().__init__(session, clock=clock)
        self.inspections = InspectionRepository(session)
        self.items = InspectionItemRepository(session)

    # PUBLIC_INTERFACE
    async def create_inspection(self, ctx: TenantContext, payload: InspectionCreate) -> Inspection:
        """Create an inspection in draft at version 1."""
        now = self.clock()
        inspection = Inspection(
            tenant_id=ctx.tenant_id,
            vehicle_ref=payload.vehicle_ref,
            concerns=list(payload.concerns),
            state=WorkflowState.DRAFT.value,
            urgency=Urgency.NORMAL.value,
            assigned_actor_id=payload.assigned_actor_id,
            created_by_actor_id=ctx.actor_id,
            state_changed_at=now,
            created_at=now,
            updated_at=now,
        )
        await self.inspections.add(inspection)
        await self.inspections.commit()
        logger.info("Created inspection %s for vehicle %s", inspection.id, inspection.vehicle_ref)
        return inspection

    # PUBLIC_INTERFACE
    async def get_inspection(self, tenant_id: UUID, inspection_id: UUID) -> Inspection:
        return await self.inspections.get(inspection_id, tenant_id)

    # PUBLIC_INTERFACE
    async def query_inspections(
        self,
        tenant_id: UUID,
        filters: Optional[InspectionFilters] = None,
        page: Optional[Pagination] = None,
    ) -> Page[InspectionSummary]:
        """
        List the tenant's inspections newest first.

        Returns:
            Page of summaries; `total` counts every match, not just this page.
        """
        filters = filters or InspectionFilters()
        page = page or Pagination()
        rows, total = await self.inspections.list_inspections(tenant_id, filters, page)
        return Page[InspectionSummary](
            items=[InspectionSummary.model_validate(r) for r in rows],
            total=total,
            limit=page.limit,
            offset=page.offset,
        )

    async def _editable(self, tenant_id: UUID, inspection_id: UUID) -> Inspection:
        return ensure_editable(await self.inspections.get(inspection_id, tenant_id))

    # PUBLIC_INTERFACE
    async def add_item(
        self, ctx: TenantContext, inspection_id: UUID, payload: InspectionItemCreate
    ) -> InspectionItem:
        """Add a checklist item to an editable inspection."""
        await self._editable(ctx.tenant_id, inspection_id)
        now = self.clock()
        item = InspectionItem(
            tenant_id=ctx.tenant_id,
            inspection_id=inspection_id,
            category=payload.category,
            component=payload.component,
            condition=payload.condition.value,
            condition_source=ConditionSource.MANUAL.value,
            condition_updated_at=now,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        await self.items.add(item)
        await self.items.commit()
        return item

    # PUBLIC_INTERFACE
    async def list_items(self, tenant_id: UUID, inspection_id: UUID) -> List[InspectionItem]:
        await self.inspections.get(inspection_id, tenant_id)
        return await self.items.list_for_inspection(inspection_id, tenant_id)

    # PUBLIC_INTERFACE
    async def set_item_condition(
        self,
        ctx: TenantContext,
        item_id: UUID,
        condition: Union[str, Condition],
        observed_at: Optional[datetime] = None,
    ) -> Tuple[InspectionItem, bool]:
        """
        Manually set an item's condition, last write wins.

        Returns:
            (item as stored after the call, whether this write was applied)
        """
        try:
            value = Condition(condition)
        except ValueError:
            raise ValidationError(f"Unknown condition: {condition!r}")

        item = await self.items.get(item_id, ctx.tenant_id)
        await self._editable(ctx.tenant_id, item.inspection_id)
        applied = await self.items.apply_condition(
            item.id,
            ctx.tenant_id,
            condition=value.value,
            source=ConditionSource.MANUAL,
            observed_at=observed_at or self.clock(),
        )
        await self.items.commit()
        if not applied:
            logger.info("Ignored stale condition write on item %s", item_id)
        item = await self.items.get(item_id, ctx.tenant_id, fresh=True)
        return item, applied
