from __future__ import annotations

from typing import Any, Optional, Type
from uuid import UUID

from sqlalchemy import Executable, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inspection_core.core.tenancy import guard_tenant



class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Note:
      Every read takes the caller's tenant_id explicitly and filters on it;
      there is no session-level tenant setting to rely on.
    """

    model: Type[Any]
    label: str = "Entity"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def count(self, statement: Select) -> int:
        """Count rows matched by a select, ignoring its ordering and paging."""
        stmt = select(func.count()).select_from(
            statement.order_by(None).limit(None).offset(None).subquery()
        )
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def flush(self) -> None:
        await self.session.flush()

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    def scoped(self, tenant_id: UUID) -> Select:
        """SELECT of this repository's model restricted to one tenant."""
        return select(self.model).where(self.model.tenant_id == tenant_id)

    async def find(self, entity_id: UUID, tenant_id: UUID, *, fresh: bool = False):
        """Return the tenant's entity or None."""
        stmt = self.scoped(tenant_id).where(self.model.id == entity_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def get(self, entity_id: UUID, tenant_id: UUID, *, fresh: bool = False):
        """Return the tenant's entity or raise NotFound (also for other tenants' rows)."""
        entity = await self.find(entity_id, tenant_id, fresh=fresh)
        return guard_tenant(entity, tenant_id, label=self.label, entity_id=entity_id)
