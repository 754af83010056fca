from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from inspection_core.core.errors import NotFound, ValidationError
from inspection_core.core.settings import AppSettings, get_app_settings
from inspection_core.db.models.inspection import Inspection
from inspection_core.db.models.voice import VoiceAnnotation
from inspection_core.repositories.inspection import InspectionItemRepository, InspectionRepository
from inspection_core.repositories.voice import VoiceAnnotationRepository
from inspection_core.schemas.enums import ConditionSource
from inspection_core.schemas.voice import ParseResult, VoiceNoteRequest, VoiceProcessingStatistics
from inspection_core.services.advisories import measurement_warnings, parse_suggestions
from inspection_core.services.base import BaseService, Clock
from inspection_core.services.inspection import ensure_editable, is_editable
from inspection_core.services.voice_parser import VoiceParser

logger = logging.getLogger(__name__)


class VoiceAnnotationService(BaseService):
    """
    Validates voice notes and turns queued notes into stored annotations.

    Validation runs synchronously before a note is queued; processing runs
    inside the annotation queue and may be retried.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        settings: Optional[AppSettings] = None,
        parser: Optional[VoiceParser] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(session, clock=clock)
        self.settings = settings or get_app_settings()
        self.parser = parser or VoiceParser()
        self.inspections = InspectionRepository(session)
        self.items = InspectionItemRepository(session)
        self.annotations = VoiceAnnotationRepository(session)

    def check_text(self, raw_text: str) -> str:
        if not isinstance(raw_text, str) or not raw_text.strip():
            raise ValidationError("Voice note text must not be empty.")
        if len(raw_text) > self.settings.VOICE_MAX_TEXT_LENGTH:
            raise ValidationError(
                f"Voice note text exceeds {self.settings.VOICE_MAX_TEXT_LENGTH} characters."
            )
        return raw_text

    async def _check_targets(self, request: VoiceNoteRequest) -> Inspection:
        inspection = await self.inspections.get(request.inspection_id, request.tenant_id)
        if request.item_id is not None:
            item = await self.items.find_in_inspection(
                request.item_id, request.inspection_id, request.tenant_id
            )
            if item is None:
                raise NotFound("Inspection item", request.item_id)
        return inspection

    # PUBLIC_INTERFACE
    async def validate(self, request: VoiceNoteRequest) -> VoiceNoteRequest:
        """
        Check a note before it is queued.

        Raises:
            ValidationError: blank or oversized text, or an item note on an
                inspection whose items are frozen
            NotFound: inspection or item absent in the caller's tenant
        """
        self.check_text(request.raw_text)
        inspection = await self._check_targets(request)
        if request.item_id is not None:
            ensure_editable(inspection)
        return request

    # PUBLIC_INTERFACE
    async def process(self, request: VoiceNoteRequest) -> VoiceAnnotation:
        """
        Parse a queued note, store its annotation and, when the parse is
        confident enough, record the condition on the item (last write wins).

        The inspection may have left the editable states while the note sat
        in the queue; the annotation is still stored but the item is not
        touched.
        """
        self.check_text(request.raw_text)
        inspection = await self._check_targets(request)

        result = self.parser.parse(request.raw_text)
        now = self.clock()
        annotation = await self.annotations.create(self._build(request, result, now))

        updates_item = request.item_id is not None and self.should_update_condition(result)
        if updates_item and not is_editable(inspection):
            logger.info(
                "Voice annotation %s not applied to item %s: inspection %s is %s",
                annotation.id,
                request.item_id,
                inspection.id,
                inspection.state,
            )
        elif updates_item:
            applied = await self.items.apply_condition(
                request.item_id,
                request.tenant_id,
                condition=result.condition_candidate.value,
                source=ConditionSource.VOICE,
                observed_at=now,
            )
            logger.info(
                "Voice annotation %s condition=%s on item %s applied=%s",
                annotation.id,
                result.condition_candidate.value,
                request.item_id,
                applied,
            )

        await self.session.commit()
        return annotation

    def should_update_condition(self, result: ParseResult) -> bool:
        return (
            result.condition_candidate is not None
            and result.confidence >= self.settings.VOICE_HIGH_CONFIDENCE_THRESHOLD
        )

    def _build(self, request: VoiceNoteRequest, result: ParseResult, now) -> VoiceAnnotation:
        return VoiceAnnotation(
            tenant_id=request.tenant_id,
            inspection_id=request.inspection_id,
            item_id=request.item_id,
            actor_id=request.actor_id,
            raw_text=request.raw_text,
            audio_ref=request.audio_ref,
            audio_duration_seconds=request.audio_duration_seconds,
            component=result.component,
            condition_candidate=result.condition_candidate.value if result.condition_candidate else None,
            measurement_value=result.measurement.value if result.measurement else None,
            measurement_unit=result.measurement.unit.value if result.measurement else None,
            action=result.action.value if result.action else None,
            confidence=result.confidence,
            needs_attention=result.needs_attention,
            warnings=measurement_warnings(result, request.raw_text),
            suggestions=parse_suggestions(result),
            created_at=now,
        )

    # PUBLIC_INTERFACE
    async def get_annotation(self, tenant_id: UUID, annotation_id: UUID) -> VoiceAnnotation:
        return await self.annotations.get(annotation_id, tenant_id)

    # PUBLIC_INTERFACE
    async def list_for_item(self, tenant_id: UUID, item_id: UUID) -> List[VoiceAnnotation]:
        """All annotations of an item, newest (current) first."""
        await self.items.get(item_id, tenant_id)
        return await self.annotations.list_for_item(item_id, tenant_id)

    # PUBLIC_INTERFACE
    async def statistics(self, tenant_id: UUID, days: int = 30) -> VoiceProcessingStatistics:
        """Confidence, audio and component figures for annotations stored in the trailing `days`."""
        if not isinstance(days, int) or days < 1:
            raise ValidationError("days must be a positive integer.")
        since = self.clock() - timedelta(days=days)
        summary = await self.annotations.confidence_summary(
            tenant_id, since, high_threshold=self.settings.VOICE_HIGH_CONFIDENCE_THRESHOLD
        )
        components = await self.annotations.component_counts(tenant_id, since)
        return VoiceProcessingStatistics(
            window_days=days,
            since=since,
            total_voice_notes=summary["total_voice_notes"] or 0,
            avg_confidence=_rounded(summary["avg_confidence"], 3),
            high_confidence_count=summary["high_confidence_count"] or 0,
            low_confidence_count=summary["low_confidence_count"] or 0,
            notes_with_audio=summary["notes_with_audio"] or 0,
            avg_audio_duration_seconds=_rounded(summary["avg_audio_duration_seconds"], 1),
            most_common_components=dict(components),
        )


def _rounded(value, digits: int) -> Optional[float]:
    return None if value is None else round(float(value), digits)
