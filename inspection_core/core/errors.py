"""
Error taxonomy for the inspection core.

Caller-facing, synchronous:
- ValidationError     malformed input (empty text, unknown enum value)
- NotFound            entity absent or owned by another tenant
- VersionConflict     optimistic-lock failure; refetch and retry
- InvalidTransition   rejected by the transition rule table

Asynchronous, observed through queue status only:
- QueueProcessingError  transient failure while parsing/storing a voice note

Everything else surfaces as InternalError carrying only a correlation id.
"""

from __future__ import annotations

from typing import Any, Optional


class InspectionCoreError(Exception):
    """Base class; catch this to handle any inspection core error."""

    code = "error"

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(InspectionCoreError):
    """Malformed input. Never retried."""

    code = "validation_error"


class NotFound(InspectionCoreError):
    """
    Entity does not exist, or exists under another tenant.

    Both cases carry the same message so existence never leaks across tenants.
    """

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class VersionConflict(InspectionCoreError):
    """The caller's expected version no longer matches the stored one."""

    code = "version_conflict"

    def __init__(self, expected: int, actual: Optional[int] = None):
        msg = f"Expected version {expected}"
        if actual is not None:
            msg += f", found {actual}"
        super().__init__(msg, details={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class InvalidTransition(InspectionCoreError):
    """The transition rule table has no edge for this state, role and target."""

    code = "invalid_transition"

    def __init__(self, from_state: str, to_state: str, actor_role: str):
        super().__init__(
            f"Transition {from_state} -> {to_state} is not allowed for role {actor_role}",
            details={"from_state": from_state, "to_state": to_state, "actor_role": actor_role},
        )
        self.from_state = from_state
        self.to_state = to_state
        self.actor_role = actor_role


class QueueProcessingError(InspectionCoreError):
    """Transient failure inside the annotation queue."""

    code = "queue_processing_error"


class InternalError(InspectionCoreError):
    """Unexpected failure. Only the correlation id is exposed."""

    code = "internal_error"

    def __init__(self, correlation_id: Optional[str]):
        super().__init__("An unexpected error occurred", details={"correlation_id": correlation_id})
        self.correlation_id = correlation_id


# Errors that will fail identically on every attempt; the queue does not retry them.
PERMANENT_ERRORS = (ValidationError, NotFound, InvalidTransition)
