"""
Tests for inspection creation, queries and checklist items.
"""

from datetime import timedelta

import pytest

from inspection_core.core.errors import NotFound, ValidationError
from inspection_core.db.base import utcnow
from inspection_core.schemas.enums import Condition, ConditionSource, Urgency, WorkflowState
from inspection_core.schemas.inspection import InspectionFilters


class TestCreateInspection:

    async def test_blank_vehicle_rejected(self, core, tenant_id):
        with pytest.raises(ValidationError) as exc:
            await core.create_inspection(tenant_id, "tech-1", "   ", [])
        assert exc.value.details

    async def test_concerns_are_cleaned(self, core, tenant_id):
        created = await core.create_inspection(tenant_id, "tech-1", "VIN-3", [" pulls left ", "", "  "])
        assert created.concerns == ["pulls left"]

    async def test_blank_actor_rejected(self, core, tenant_id):
        with pytest.raises(ValidationError):
            await core.create_inspection(tenant_id, " ", "VIN-3", [])


class TestQueryInspections:

    async def test_scoped_to_tenant(self, core, tenant_id, other_tenant_id, draft):
        await core.create_inspection(other_tenant_id, "tech-1", "VIN-OTHER", [])
        page = await core.query_inspections(tenant_id)
        assert page.total == 1
        assert [s.id for s in page.items] == [draft.id]

    async def test_filters_and_paging(self, core, tenant_id):
        created = [await core.create_inspection(tenant_id, "tech-1", f"VIN-{i}", []) for i in range(5)]
        await core.transition(created[0].id, tenant_id, "tech-1", "mechanic", "in_progress", 1)

        page = await core.query_inspections(tenant_id, {"states": ["in_progress"]})
        assert page.total == 1
        assert page.items[0].id == created[0].id

        page = await core.query_inspections(
            tenant_id, InspectionFilters(states=[WorkflowState.DRAFT]), {"limit": 2, "offset": 0}
        )
        assert page.total == 4
        assert len(page.items) == 2
        assert page.has_more

        page = await core.query_inspections(tenant_id, {"vehicle_ref": "VIN-3"})
        assert [s.vehicle_ref for s in page.items] == ["VIN-3"]

    async def test_urgency_filter(self, core, tenant_id, draft):
        await core.add_item(draft.id, tenant_id, "tech-1", "tires", "rear", "poor")
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        page = await core.query_inspections(tenant_id, {"urgency": "high"})
        assert [s.id for s in page.items] == [draft.id]
        assert page.items[0].urgency == Urgency.HIGH

    async def test_bad_page_rejected(self, core, tenant_id):
        with pytest.raises(ValidationError):
            await core.query_inspections(tenant_id, None, {"limit": 0})


class TestItems:

    async def test_add_and_list(self, core, tenant_id, draft):
        item = await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "fair", "squeal")
        assert item.condition == Condition.FAIR
        assert item.condition_source == ConditionSource.MANUAL
        items = await core.list_items(draft.id, tenant_id)
        assert [i.id for i in items] == [item.id]

    async def test_unknown_condition(self, core, tenant_id, draft):
        with pytest.raises(ValidationError):
            await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "pads", "terrible")

    async def test_items_frozen_outside_editable_states(self, core, tenant_id, draft):
        item = await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "good")
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        with pytest.raises(ValidationError):
            await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "pads", "good")
        with pytest.raises(ValidationError):
            await core.set_item_condition(item.id, tenant_id, "tech-1", "poor")

    async def test_last_write_wins(self, core, tenant_id, draft):
        item = await core.add_item(draft.id, tenant_id, "tech-1", "tires", "left front", "good")
        later = utcnow() + timedelta(minutes=5)
        updated = await core.set_item_condition(item.id, tenant_id, "tech-1", "poor", observed_at=later)
        assert updated.condition == Condition.POOR

        earlier = later - timedelta(minutes=1)
        stale = await core.set_item_condition(item.id, tenant_id, "tech-2", "good", observed_at=earlier)
        assert stale.condition == Condition.POOR

    async def test_foreign_item_not_found(self, core, tenant_id, other_tenant_id, draft):
        item = await core.add_item(draft.id, tenant_id, "tech-1", "tires", "left front", "good")
        with pytest.raises(NotFound):
            await core.set_item_condition(item.id, other_tenant_id, "tech-1", "poor")
        with pytest.raises(NotFound):
            await core.list_items(draft.id, other_tenant_id)
