from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Tuple
from uuid import UUID

from sqlalchemy import case, func, select

from inspection_core.db.models.voice import VoiceAnnotation
from .base import BaseRepository


class VoiceAnnotationRepository(BaseRepository):
    """Insert-only repository for voice annotations."""

    model = VoiceAnnotation
    label = "Voice annotation"

    async def create(self, annotation: VoiceAnnotation) -> VoiceAnnotation:
        await self.add(annotation)
        await self.flush()
        return annotation

    async def list_for_item(self, item_id: UUID, tenant_id: UUID) -> List[VoiceAnnotation]:
        """Newest first; the head of the list is the current annotation."""
        stmt = (
            self.scoped(tenant_id)
            .where(VoiceAnnotation.item_id == item_id)
            .order_by(VoiceAnnotation.created_at.desc(), VoiceAnnotation.id)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def confidence_summary(
        self, tenant_id: UUID, since: datetime, *, high_threshold: float, low_threshold: float = 0.5
    ) -> Dict[str, Any]:
        a = VoiceAnnotation
        stmt = select(
            func.count(a.id).label("total_voice_notes"),
            func.avg(a.confidence).label("avg_confidence"),
            func.count(case((a.confidence >= high_threshold, 1))).label("high_confidence_count"),
            func.count(case((a.confidence < low_threshold, 1))).label("low_confidence_count"),
            func.count(a.audio_ref).label("notes_with_audio"),
            func.avg(a.audio_duration_seconds).label("avg_audio_duration_seconds"),
        ).where(a.tenant_id == tenant_id, a.created_at >= since)
        row = (await self.execute(stmt)).one()
        return dict(row._mapping)

    async def component_counts(self, tenant_id: UUID, since: datetime, *, limit: int = 10) -> List[Tuple[str, int]]:
        """Most annotated components first; ties broken by name."""
        a = VoiceAnnotation
        n = func.count(a.id).label("n")
        stmt = (
            select(a.component, n)
            .where(a.tenant_id == tenant_id, a.created_at >= since, a.component.is_not(None))
            .group_by(a.component)
            .order_by(n.desc(), a.component.asc())
            .limit(limit)
        )
        return [(row.component, int(row.n)) for row in await self.execute(stmt)]
