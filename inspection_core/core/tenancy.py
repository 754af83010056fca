from __future__ import annotations

from typing import Any, Optional, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inspection_core.core.errors import NotFound, ValidationError

T = TypeVar("T")


class TenantContext(BaseModel):
    """
    Explicit caller identity threaded through every read and write.

    There is no ambient equivalent: services receive this object (or its parts)
    as arguments and scope every query with `tenant_id`.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: UUID = Field(..., description="Owning shop")
    actor_id: str = Field(..., min_length=1, description="Opaque caller identity")
    actor_role: Optional[str] = Field(default=None, description="Role name for workflow checks")

    @field_validator("actor_id")
    @classmethod
    def _strip_actor(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("actor_id must not be blank")
        return v


# PUBLIC_INTERFACE
def coerce_tenant_id(tenant_id: Union[str, UUID]) -> UUID:
    """Return tenant_id as a UUID or raise ValidationError."""
    if isinstance(tenant_id, UUID):
        return tenant_id
    try:
        return UUID(str(tenant_id))
    except (TypeError, ValueError):
        raise ValidationError("tenant_id must be a valid UUID string.")


# PUBLIC_INTERFACE
def coerce_entity_id(entity: str, entity_id: Union[str, UUID]) -> UUID:
    """
    Return entity_id as a UUID.

    A malformed id cannot name an existing entity, so it is reported as NotFound.
    """
    if isinstance(entity_id, UUID):
        return entity_id
    try:
        return UUID(str(entity_id))
    except (TypeError, ValueError):
        raise NotFound(entity, entity_id)


# PUBLIC_INTERFACE
def guard_tenant(entity: Optional[T], tenant_id: UUID, *, label: str, entity_id: Any) -> T:
    """
    Return the entity when it exists and belongs to tenant_id.

    Missing and foreign entities both raise the same NotFound.
    """
    if entity is None or getattr(entity, "tenant_id", None) != tenant_id:
        raise NotFound(label, entity_id)
    return entity
