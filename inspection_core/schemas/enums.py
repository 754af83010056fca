from __future__ import annotations

from enum import Enum


class WorkflowState(str, Enum):
    """Lifecycle stage of an inspection."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT_TO_CUSTOMER = "sent_to_customer"
    COMPLETED = "completed"
    ARCHIVED = "archived"


TERMINAL_STATES = frozenset({WorkflowState.COMPLETED, WorkflowState.ARCHIVED})

# Items may be added or edited only while the inspection is being worked.
EDITABLE_STATES = frozenset(
    {WorkflowState.DRAFT, WorkflowState.IN_PROGRESS, WorkflowState.REJECTED}
)


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Condition(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    NEEDS_IMMEDIATE = "needs_immediate"


class ConditionSource(str, Enum):
    MANUAL = "manual"
    VOICE = "voice"


class ActorRole(str, Enum):
    MECHANIC = "mechanic"
    SHOP_MANAGER = "shop_manager"
    ADMIN = "admin"
    SYSTEM = "system"


MANAGER_ROLES = frozenset({ActorRole.SHOP_MANAGER, ActorRole.ADMIN})


class MeasurementUnit(str, Enum):
    MM = "mm"
    INCHES = "inches"
    PERCENT = "percent"
    PSI = "psi"


class RecommendedAction(str, Enum):
    REPLACE = "replace"
    INSPECT = "inspect"
    MONITOR = "monitor"
    TOP_OFF = "top_off"
    ROTATE = "rotate"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Higher drains first.
PRIORITY_RANK = {TaskPriority.HIGH: 3, TaskPriority.MEDIUM: 2, TaskPriority.LOW: 1}


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
