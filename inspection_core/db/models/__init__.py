"""
ORM models for the inspection workflow and voice annotations.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .inspection import (  # noqa: F401
    Inspection,
    InspectionItem,
    InspectionStateHistory,
)
from .voice import (  # noqa: F401
    VoiceAnnotation,
)
