"""
Transition rule table: the single source of truth for workflow legality.

Each rule grants a set of roles the right to move an inspection from one state
to a set of target states. Rules marked `owner_only` further require the actor
to be the inspection's creator or assignee. No other module checks roles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Tuple

from inspection_core.schemas.enums import (
    MANAGER_ROLES,
    TERMINAL_STATES,
    ActorRole,
    WorkflowState,
)

S = WorkflowState

_STAFF = frozenset({ActorRole.MECHANIC, ActorRole.SHOP_MANAGER, ActorRole.ADMIN})


@dataclass(frozen=True)
class TransitionRule:
    source: WorkflowState
    targets: FrozenSet[WorkflowState]
    roles: FrozenSet[ActorRole]
    owner_only: bool = False


def _rule(source, targets, roles, owner_only=False) -> TransitionRule:
    return TransitionRule(source, frozenset(targets), frozenset(roles), owner_only)


NON_TERMINAL_STATES: Tuple[WorkflowState, ...] = tuple(s for s in S if s not in TERMINAL_STATES)

TRANSITION_RULES: Tuple[TransitionRule, ...] = (
    _rule(S.DRAFT, {S.IN_PROGRESS, S.ARCHIVED}, _STAFF, owner_only=True),
    _rule(S.IN_PROGRESS, {S.PENDING_REVIEW, S.ARCHIVED}, _STAFF, owner_only=True),
    _rule(S.REJECTED, {S.IN_PROGRESS}, _STAFF, owner_only=True),
    _rule(S.PENDING_REVIEW, {S.APPROVED, S.REJECTED}, MANAGER_ROLES),
    _rule(S.APPROVED, {S.SENT_TO_CUSTOMER}, MANAGER_ROLES | {ActorRole.SYSTEM}),
    _rule(S.SENT_TO_CUSTOMER, {S.COMPLETED}, MANAGER_ROLES),
) + tuple(_rule(s, {S.ARCHIVED}, MANAGER_ROLES) for s in NON_TERMINAL_STATES)


class TransitionRuleTable:
    """Lookup over a sequence of rules."""

    def __init__(self, rules: Iterable[TransitionRule] = TRANSITION_RULES) -> None:
        self._rules = tuple(rules)
        for r in self._rules:
            if r.source in TERMINAL_STATES:
                raise ValueError(f"Terminal state {r.source.value} cannot have outbound rules")

    @property
    def rules(self) -> Tuple[TransitionRule, ...]:
        return self._rules

    # PUBLIC_INTERFACE
    def allowed_targets(
        self, state: WorkflowState, role: ActorRole, *, is_owner: bool
    ) -> FrozenSet[WorkflowState]:
        """Return every target reachable from `state` for this role and ownership."""
        targets: set[WorkflowState] = set()
        for r in self._rules:
            if r.source != state or role not in r.roles:
                continue
            if r.owner_only and not is_owner:
                continue
            targets |= r.targets
        return frozenset(targets)

    # PUBLIC_INTERFACE
    def is_allowed(
        self, state: WorkflowState, target: WorkflowState, role: ActorRole, *, is_owner: bool
    ) -> bool:
        return target in self.allowed_targets(state, role, is_owner=is_owner)

    def reachable_states(self, start: WorkflowState = S.DRAFT) -> FrozenSet[WorkflowState]:
        """All states reachable from `start` by any role."""
        seen = {start}
        frontier = [start]
        while frontier:
            state = frontier.pop()
            for r in self._rules:
                if r.source == state:
                    for t in r.targets - seen:
                        seen.add(t)
                        frontier.append(t)
        return frozenset(seen)


DEFAULT_RULE_TABLE = TransitionRuleTable()
