from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from inspection_core.db.base import utcnow

Clock = Callable[[], datetime]


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. Each service instance is bound to one unit of work.
    """

    def __init__(self, session: AsyncSession, *, clock: Optional[Clock] = None) -> None:
        self.session = session
        self.clock: Clock = clock or utcnow
