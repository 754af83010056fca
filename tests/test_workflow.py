"""
Tests for workflow transitions through InspectionCore.

Covers optimistic concurrency, rule-table enforcement, urgency recompute,
state history and tenant isolation.
"""

import asyncio
import uuid

import pytest

from inspection_core.core.errors import InvalidTransition, NotFound, ValidationError, VersionConflict
from inspection_core.schemas.enums import Condition, Urgency, WorkflowState
from inspection_core.services.workflow import compute_urgency


class TestComputeUrgency:

    def test_no_items_is_normal(self):
        assert compute_urgency([]) == Urgency.NORMAL

    def test_any_needs_immediate_is_critical(self):
        assert compute_urgency(["good", "poor", "needs_immediate"]) == Urgency.CRITICAL

    def test_any_poor_is_high(self):
        assert compute_urgency(["good", "fair", "poor"]) == Urgency.HIGH

    def test_all_good_is_low(self):
        assert compute_urgency([Condition.GOOD, Condition.GOOD]) == Urgency.LOW

    def test_fair_is_normal(self):
        assert compute_urgency(["good", "fair"]) == Urgency.NORMAL


class TestTransition:

    async def test_create_starts_in_draft(self, draft):
        assert draft.state == WorkflowState.DRAFT
        assert draft.version == 1
        assert draft.urgency == Urgency.NORMAL
        assert draft.concerns == ["grinding when braking"]

    async def test_owner_starts_work(self, core, tenant_id, draft):
        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        assert moved.state == WorkflowState.IN_PROGRESS
        assert moved.version == 2
        assert moved.previous_state == WorkflowState.DRAFT
        assert moved.state_changed_by == "tech-1"

    async def test_stale_version_conflicts(self, core, tenant_id, draft):
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        with pytest.raises(VersionConflict) as exc:
            await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        assert exc.value.expected == 1
        assert exc.value.actual == 2

    async def test_skipping_review_is_invalid(self, core, tenant_id, draft):
        with pytest.raises(InvalidTransition):
            await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 1)
        unchanged = await core.get_inspection(draft.id, tenant_id)
        assert unchanged.version == 1
        assert unchanged.state == WorkflowState.DRAFT

    async def test_non_owner_mechanic_rejected(self, core, tenant_id, draft):
        with pytest.raises(InvalidTransition):
            await core.transition(draft.id, tenant_id, "tech-2", "mechanic", "in_progress", 1)

    async def test_assignee_may_start(self, core, tenant_id):
        created = await core.create_inspection(
            tenant_id, "advisor-1", "VIN-2", [], assigned_actor_id="tech-9"
        )
        moved = await core.transition(created.id, tenant_id, "tech-9", "mechanic", "in_progress", 1)
        assert moved.state == WorkflowState.IN_PROGRESS

    @pytest.mark.parametrize(
        "role, target, version",
        [
            ("janitor", "in_progress", 1),
            ("mechanic", "finished", 1),
            ("mechanic", "in_progress", 0),
        ],
    )
    async def test_malformed_arguments(self, core, tenant_id, draft, role, target, version):
        with pytest.raises(ValidationError):
            await core.transition(draft.id, tenant_id, "tech-1", role, target, version)

    async def test_full_lifecycle_and_terminal(self, core, tenant_id, draft):
        await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "good")
        steps = [
            ("tech-1", "mechanic", "in_progress"),
            ("tech-1", "mechanic", "pending_review"),
            ("boss", "shop_manager", "approved"),
            ("scheduler", "system", "sent_to_customer"),
            ("boss", "shop_manager", "completed"),
        ]
        version = 1
        for actor, role, target in steps:
            moved = await core.transition(draft.id, tenant_id, actor, role, target, version)
            assert moved.version == version + 1
            version = moved.version
        assert moved.state == WorkflowState.COMPLETED

        with pytest.raises(InvalidTransition):
            await core.transition(draft.id, tenant_id, "root", "admin", "archived", version)

        history = await core.get_workflow_history(draft.id, tenant_id)
        assert [h.to_state for h in history] == [WorkflowState(t) for _, _, t in steps]
        assert [h.version for h in history] == [2, 3, 4, 5, 6]
        assert history[2].actor_role.value == "shop_manager"

    async def test_rework_after_rejection(self, core, tenant_id, draft):
        await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "poor")
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        await core.transition(
            draft.id, tenant_id, "boss", "shop_manager", "rejected", 3, reason="Photos of the pads missing"
        )
        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 4)
        assert moved.state == WorkflowState.IN_PROGRESS
        assert moved.version == 5

    async def test_allowed_transitions(self, core, tenant_id, draft):
        owner = await core.allowed_transitions(draft.id, tenant_id, "tech-1", "mechanic")
        assert owner == [WorkflowState.ARCHIVED, WorkflowState.IN_PROGRESS]
        stranger = await core.allowed_transitions(draft.id, tenant_id, "tech-2", "mechanic")
        assert stranger == []


class TestTransitionPreconditions:

    async def _submitted(self, core, tenant_id, draft):
        await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "poor")
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        return await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)

    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_rejection_needs_reason(self, core, tenant_id, draft, reason):
        submitted = await self._submitted(core, tenant_id, draft)
        with pytest.raises(ValidationError, match="Rejection reason is required"):
            await core.transition(
                draft.id, tenant_id, "boss", "shop_manager", "rejected", submitted.version, reason=reason
            )
        unchanged = await core.get_inspection(draft.id, tenant_id)
        assert unchanged.state == WorkflowState.PENDING_REVIEW
        assert unchanged.version == submitted.version

    async def test_reason_is_kept_in_history(self, core, tenant_id, draft):
        submitted = await self._submitted(core, tenant_id, draft)
        await core.transition(
            draft.id, tenant_id, "boss", "shop_manager", "rejected", submitted.version,
            reason="  Rotor measurements missing  ",
        )
        history = await core.get_workflow_history(draft.id, tenant_id)
        assert [h.reason for h in history] == [None, None, "Rotor measurements missing"]

    async def test_invalid_edge_reported_before_missing_reason(self, core, tenant_id, draft):
        with pytest.raises(InvalidTransition):
            await core.transition(draft.id, tenant_id, "boss", "shop_manager", "rejected", 1)

    async def test_review_needs_items(self, core, tenant_id, draft):
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        with pytest.raises(ValidationError):
            await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)

        await core.add_item(draft.id, tenant_id, "tech-1", "tires", "left front", "good")
        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        assert moved.state == WorkflowState.PENDING_REVIEW

    async def test_oversized_reason(self, core, tenant_id, draft):
        with pytest.raises(ValidationError):
            await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1, reason="x" * 2001)


class TestWorkflowStatistics:

    async def _inspection(self, core, tenant_id, vehicle):
        created = await core.create_inspection(tenant_id, "tech-1", vehicle, [])
        await core.add_item(created.id, tenant_id, "tech-1", "brakes", "front pads", "fair")
        return created

    async def test_counts_and_completion_time(self, clocked_core, clock, tenant_id, other_tenant_id):
        core = clocked_core
        start = clock.now

        # Started long before the window; not counted.
        clock.advance(days=-40)
        old = await self._inspection(core, tenant_id, "VIN-OLD")
        await core.transition(old.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        clock.now = start

        done = await self._inspection(core, tenant_id, "VIN-DONE")
        bounced = await self._inspection(core, tenant_id, "VIN-BOUNCED")
        await core.transition(done.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        await core.transition(bounced.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        clock.advance(hours=2)
        await core.transition(done.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        await core.transition(bounced.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        clock.advance(hours=1)
        await core.transition(done.id, tenant_id, "boss", "shop_manager", "approved", 3)
        await core.transition(bounced.id, tenant_id, "boss", "shop_manager", "rejected", 3, reason="No photos")
        await core.transition(done.id, tenant_id, "scheduler", "system", "sent_to_customer", 4)
        clock.advance(hours=3)
        await core.transition(done.id, tenant_id, "boss", "shop_manager", "completed", 5)

        stats = await core.get_workflow_statistics(tenant_id, days=30)
        assert stats.window_days == 30
        assert stats.total_transitions == 8
        assert stats.inspections_started == 2
        assert stats.submitted_for_review == 2
        assert stats.approved == 1
        assert stats.rejected == 1
        assert stats.completed == 1
        assert stats.avg_completion_hours == pytest.approx(6.0)

        wide = await core.get_workflow_statistics(tenant_id, days=60)
        assert wide.total_transitions == 9
        assert wide.inspections_started == 3

        foreign = await core.get_workflow_statistics(other_tenant_id)
        assert foreign.total_transitions == 0
        assert foreign.avg_completion_hours is None

    @pytest.mark.parametrize("days", [0, -1])
    async def test_window_must_be_positive(self, core, tenant_id, days):
        with pytest.raises(ValidationError):
            await core.get_workflow_statistics(tenant_id, days=days)


class TestUrgencyRecompute:

    async def test_needs_immediate_item_makes_critical(self, core, tenant_id, draft):
        await core.add_item(draft.id, tenant_id, "tech-1", "brakes", "front pads", "needs_immediate")
        await core.add_item(draft.id, tenant_id, "tech-1", "tires", "left front", "good")
        await core.add_item(draft.id, tenant_id, "tech-1", "fluids", "coolant", "good")

        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        assert moved.urgency == Urgency.CRITICAL

    async def test_only_qualifying_states_recompute(self, core, tenant_id, draft):
        item = await core.add_item(draft.id, tenant_id, "tech-1", "tires", "left front", "good")
        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        assert moved.urgency == Urgency.LOW

        await core.set_item_condition(item.id, tenant_id, "tech-1", "poor")
        moved = await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "pending_review", 2)
        assert moved.urgency == Urgency.LOW

        moved = await core.transition(draft.id, tenant_id, "boss", "shop_manager", "approved", 3)
        assert moved.urgency == Urgency.HIGH


class TestConcurrency:

    async def test_exactly_one_concurrent_transition_wins(self, core, tenant_id, draft):
        results = await asyncio.gather(
            core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1),
            core.transition(draft.id, tenant_id, "tech-1", "mechanic", "archived", 1),
            return_exceptions=True,
        )
        wins = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, VersionConflict)]
        assert len(wins) == 1
        assert len(conflicts) == 1
        assert wins[0].version == 2

        stored = await core.get_inspection(draft.id, tenant_id)
        assert stored.version == 2
        assert stored.state == wins[0].state
        history = await core.get_workflow_history(draft.id, tenant_id)
        assert len(history) == 1


class TestTenantIsolation:

    async def test_foreign_inspection_looks_missing(self, core, tenant_id, other_tenant_id, draft):
        with pytest.raises(NotFound) as foreign:
            await core.get_inspection(draft.id, other_tenant_id)
        missing_id = uuid.uuid4()
        with pytest.raises(NotFound) as missing:
            await core.get_inspection(missing_id, tenant_id)
        assert str(foreign.value) == f"Inspection {draft.id} not found"
        assert str(missing.value) == f"Inspection {missing_id} not found"

    async def test_foreign_transition_is_not_found(self, core, other_tenant_id, draft):
        with pytest.raises(NotFound):
            await core.transition(draft.id, other_tenant_id, "tech-1", "mechanic", "in_progress", 1)

    async def test_malformed_id_is_not_found(self, core, tenant_id):
        with pytest.raises(NotFound):
            await core.get_inspection("not-a-uuid", tenant_id)

    async def test_malformed_tenant_is_validation_error(self, core, draft):
        with pytest.raises(ValidationError):
            await core.get_inspection(draft.id, "shop-7")

    async def test_history_hidden_from_other_tenant(self, core, tenant_id, other_tenant_id, draft):
        await core.transition(draft.id, tenant_id, "tech-1", "mechanic", "in_progress", 1)
        with pytest.raises(NotFound):
            await core.get_workflow_history(draft.id, other_tenant_id)
