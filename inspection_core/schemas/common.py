from __future__ import annotations

from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Pagination(BaseModel):
    """Pagination parameters."""
    limit: int = Field(100, ge=1, le=1000, description="Max number of records to return")
    offset: int = Field(0, ge=0, description="Number of records to skip")


class Page(BaseModel, Generic[T]):
    """One page of results plus the total matching count."""
    items: List[T] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Total matching records across all pages")
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total

