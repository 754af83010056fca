from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from inspection_core.core.errors import InvalidTransition, ValidationError, VersionConflict
from inspection_core.core.tenancy import TenantContext
from inspection_core.db.models.inspection import Inspection, InspectionStateHistory
from inspection_core.repositories.inspection import InspectionItemRepository, InspectionRepository
from inspection_core.schemas.enums import ActorRole, Condition, Urgency, WorkflowState
from inspection_core.schemas.inspection import WorkflowStatistics
from inspection_core.services.base import BaseService, Clock
from inspection_core.services.transition_rules import DEFAULT_RULE_TABLE, TransitionRuleTable

logger = logging.getLogger(__name__)

# Entering one of these states re-derives urgency from the item conditions.
URGENCY_RECOMPUTE_STATES = frozenset(
    {WorkflowState.IN_PROGRESS, WorkflowState.APPROVED, WorkflowState.COMPLETED}
)


# PUBLIC_INTERFACE
def compute_urgency(conditions: Iterable[Union[str, Condition]]) -> Urgency:
    """
    Derive inspection urgency from item conditions.

    critical when any item needs immediate work, high when any is poor,
    low when every item is good, normal otherwise (including no items).
    """
    values = {Condition(c) for c in conditions}
    if not values:
        return Urgency.NORMAL
    if Condition.NEEDS_IMMEDIATE in values:
        return Urgency.CRITICAL
    if Condition.POOR in values:
        return Urgency.HIGH
    if values == {Condition.GOOD}:
        return Urgency.LOW
    return Urgency.NORMAL


def _parse_role(value: Union[str, ActorRole, None]) -> ActorRole:
    try:
        return ActorRole(value)
    except ValueError:
        raise ValidationError(f"Unknown actor role: {value!r}")


def _parse_state(value: Union[str, WorkflowState]) -> WorkflowState:
    try:
        return WorkflowState(value)
    except ValueError:
        raise ValidationError(f"Unknown workflow state: {value!r}")


def is_owner(inspection: Inspection, actor_id: str) -> bool:
    return actor_id in (inspection.created_by_actor_id, inspection.assigned_actor_id)


class WorkflowEngine(BaseService):
    """
    Applies state transitions to inspections.

    Legality comes from the rule table only. A transition is one transaction:
    the state change, urgency recompute and history row commit together or
    not at all.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        rules: Optional[TransitionRuleTable] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(session, clock=clock)
        self.rules = rules or DEFAULT_RULE_TABLE
        self.inspections = InspectionRepository(session)
        self.items = InspectionItemRepository(session)

    # PUBLIC_INTERFACE
    async def transition(
        self,
        ctx: TenantContext,
        inspection_id: UUID,
        target_state: Union[str, WorkflowState],
        expected_version: int,
        reason: Optional[str] = None,
    ) -> Inspection:
        """
        Move an inspection to target_state.

        Parameters:
            ctx: caller identity; ctx.actor_role is checked against the rule table
            inspection_id: inspection to move
            target_state: requested state
            expected_version: version the caller last read
            reason: free-text justification, stored on the history row
        Raises:
            ValidationError: unknown role or state, a non-positive version, a
                rejection without a reason, or submitting an inspection with
                no items for review
            NotFound: inspection absent or owned by another tenant
            VersionConflict: expected_version is stale
            InvalidTransition: no rule allows the edge for this actor
        Returns:
            The committed Inspection with its new version.
        """
        role = _parse_role(ctx.actor_role)
        target = _parse_state(target_state)
        if not isinstance(expected_version, int) or expected_version < 1:
            raise ValidationError("expected_version must be a positive integer.")

        inspection = await self.inspections.get(inspection_id, ctx.tenant_id)
        if inspection.version != expected_version:
            raise VersionConflict(expected_version, inspection.version)

        current = WorkflowState(inspection.state)
        if not self.rules.is_allowed(current, target, role, is_owner=is_owner(inspection, ctx.actor_id)):
            raise InvalidTransition(current.value, target.value, role.value)
        reason = reason.strip() if reason and reason.strip() else None
        await self._check_preconditions(inspection, current, target, reason)

        now = self.clock()
        if target in URGENCY_RECOMPUTE_STATES:
            conditions = await self.items.conditions_for_inspection(inspection.id, ctx.tenant_id)
            inspection.urgency = compute_urgency(conditions).value

        inspection.previous_state = current.value
        inspection.state = target.value
        inspection.state_changed_at = now
        inspection.state_changed_by = ctx.actor_id

        try:
            # UPDATE ... WHERE version = expected_version; zero rows raises StaleDataError.
            await self.session.flush()
        except StaleDataError:
            await self.session.rollback()
            logger.info("Concurrent update lost the race on inspection %s", inspection_id)
            raise VersionConflict(expected_version)

        await self.inspections.add_history(
            InspectionStateHistory(
                tenant_id=ctx.tenant_id,
                inspection_id=inspection.id,
                from_state=current.value,
                to_state=target.value,
                version=inspection.version,
                actor_id=ctx.actor_id,
                actor_role=role.value,
                changed_at=now,
                reason=reason,
            )
        )
        await self.session.commit()
        await self.session.refresh(inspection)
        logger.info(
            "Inspection %s moved %s -> %s by %s (%s), version=%d",
            inspection.id,
            current.value,
            target.value,
            ctx.actor_id,
            role.value,
            inspection.version,
        )
        return inspection

    async def _check_preconditions(
        self,
        inspection: Inspection,
        current: WorkflowState,
        target: WorkflowState,
        reason: Optional[str],
    ) -> None:
        if target == WorkflowState.REJECTED and reason is None:
            raise ValidationError("Rejection reason is required.")
        if (current, target) == (WorkflowState.IN_PROGRESS, WorkflowState.PENDING_REVIEW):
            if await self.items.count_for_inspection(inspection.id, inspection.tenant_id) == 0:
                raise ValidationError("An inspection needs at least one item before review.")

    # PUBLIC_INTERFACE
    async def allowed_transitions(self, ctx: TenantContext, inspection_id: UUID) -> List[WorkflowState]:
        """Targets the actor may move this inspection to right now, sorted by name."""
        role = _parse_role(ctx.actor_role)
        inspection = await self.inspections.get(inspection_id, ctx.tenant_id)
        targets = self.rules.allowed_targets(
            WorkflowState(inspection.state), role, is_owner=is_owner(inspection, ctx.actor_id)
        )
        return sorted(targets, key=lambda s: s.value)

    # PUBLIC_INTERFACE
    async def history(self, tenant_id: UUID, inspection_id: UUID) -> List[InspectionStateHistory]:
        """Recorded transitions oldest first."""
        await self.inspections.get(inspection_id, tenant_id)
        return await self.inspections.list_history(inspection_id, tenant_id)

    # PUBLIC_INTERFACE
    async def statistics(self, tenant_id: UUID, days: int = 30) -> WorkflowStatistics:
        """
        Transition counts over the trailing `days` and the mean hours from
        starting to completing an inspection, for inspections completed in
        that window.
        """
        if not isinstance(days, int) or days < 1:
            raise ValidationError("days must be a positive integer.")
        since = self.clock() - timedelta(days=days)
        counts = await self.inspections.transition_counts(tenant_id, since)
        spans = await self.inspections.completion_spans(tenant_id, since)
        avg_hours = None
        if spans:
            total = sum((done - started).total_seconds() for started, done in spans)
            avg_hours = round(total / len(spans) / 3600, 2)
        return WorkflowStatistics(window_days=days, since=since, avg_completion_hours=avg_hours, **counts)
