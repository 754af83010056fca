from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from inspection_core.db.base import Base, JSONType, TenantMixin, UUIDPkMixin, utcnow


class VoiceAnnotation(UUIDPkMixin, TenantMixin, Base):
    """
    Immutable parse result of one voice note.

    Rows are insert-only. A later annotation on the same item supersedes
    earlier ones by `created_at`; nothing is updated or deleted.
    """
    __tablename__ = "voice_annotations"

    inspection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspection_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    actor_id: Mapped[str] = mapped_column(Text, nullable=False)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    audio_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    audio_duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    component: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    condition_candidate: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    measurement_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    measurement_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    needs_attention: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warnings: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    suggestions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
