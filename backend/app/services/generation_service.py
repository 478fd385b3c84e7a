"""
Generation gateway: admission, upstream call, and recording.

Every generation endpoint goes through GenerationService.generate:
1. check_quota (fail closed: QuotaUnavailable propagates)
2. reject with QuotaExceeded if the window is full
3. call the upstream provider
4. if an image came back, store it with the source images and record exactly one event
5. a failed record is logged and counted, and the image is still returned
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.base import ImageProvider, GeneratedImage, GenerationResult
from app.models.generation_event import GenerationEvent, GenerationKind
from app.services.quota_ledger import (
    QuotaLedger,
    QuotaDecision,
    QuotaExceeded,
    QuotaCeilingReached,
    QuotaRecordFailed,
    QuotaUnavailable,
)
from app.storage.artifacts import ArtifactStore
from app.utils.metrics import (
    generations_total,
    generations_without_image_total,
    quota_rejections_total,
    quota_record_failures_total,
    quota_unavailable_total,
)
from app.utils.logging import (
    log_generation_completed,
    log_quota_exceeded,
    log_quota_record_failed,
    log_quota_unavailable,
)

logger = logging.getLogger(__name__)


class NoImageGenerated(Exception):
    """The provider answered but produced no image; nothing is recorded."""

    def __init__(self, result: GenerationResult):
        super().__init__("No image was generated")
        self.result = result


@dataclass
class GenerationOutcome:
    """What a generation endpoint returns to the caller."""
    kind: GenerationKind
    result: GenerationResult
    event: Optional[GenerationEvent]
    quota: QuotaDecision

    @property
    def recorded(self) -> bool:
        return self.event is not None


class GenerationService:
    """Runs one admitted generation for an authenticated user."""

    def __init__(
        self,
        db: AsyncSession,
        provider: ImageProvider,
        ledger: Optional[QuotaLedger] = None,
        artifacts: Optional[ArtifactStore] = None,
    ):
        self.db = db
        self.provider = provider
        self.ledger = ledger or QuotaLedger(db)
        self.artifacts = artifacts or ArtifactStore()

    async def generate(
        self,
        user_id: str,
        kind: GenerationKind,
        payload: Dict[str, Any],
        prompt: str,
        input_images: Optional[List[GeneratedImage]] = None,
    ) -> GenerationOutcome:
        """
        Args:
            user_id: Resolved user ID
            kind: Generation kind recorded on the event
            payload: Upstream request body
            prompt: Prompt text recorded on the event
            input_images: Source images in the payload, kept with the event

        Returns:
            GenerationOutcome. quota reflects the window after this generation
            (best effort: concurrent requests may move it further).

        Raises:
            QuotaUnavailable: Count could not be determined; deny the request
            QuotaExceeded: Window full (QuotaCeilingReached if lost at record time)
            UpstreamError: Provider failure; nothing recorded
            NoImageGenerated: Provider returned no image; nothing recorded
        """
        start_time = time.perf_counter()

        try:
            decision = await self.ledger.check_quota(user_id)
        except QuotaUnavailable as e:
            quota_unavailable_total.inc()
            log_quota_unavailable(logger, user_id=user_id, error=str(e))
            raise

        if not decision.allowed:
            quota_rejections_total.labels(stage="check").inc()
            log_quota_exceeded(
                logger,
                user_id=user_id,
                current_count=decision.current_count,
                limit=decision.limit,
                stage="check",
            )
            raise QuotaExceeded(decision)

        result = await self.provider.generate(payload, operation=kind.value)

        if not result.has_image:
            generations_without_image_total.labels(kind=kind.value).inc()
            raise NoImageGenerated(result)

        input_images = input_images or []
        result_ref = await self.artifacts.save(user_id, result.images[0])
        input_refs = [await self.artifacts.save(user_id, image) for image in input_images]

        event = None
        quota_after = decision
        try:
            event = await self.ledger.record_event(
                user_id,
                kind,
                prompt,
                result_ref,
                input_image_count=len(input_images),
                input_refs=input_refs,
            )
            quota_after = QuotaDecision.from_count(
                decision.current_count + 1, decision.limit, decision.window_date
            )
        except QuotaCeilingReached as e:
            quota_rejections_total.labels(stage="record").inc()
            log_quota_exceeded(
                logger,
                user_id=user_id,
                current_count=e.decision.current_count,
                limit=e.decision.limit,
                stage="record",
            )
            await self.artifacts.discard([result_ref, *input_refs])
            raise
        except QuotaRecordFailed as e:
            quota_record_failures_total.labels(kind=kind.value).inc()
            log_quota_record_failed(logger, user_id=user_id, kind=kind.value, error=str(e))

        generations_total.labels(kind=kind.value).inc()
        log_generation_completed(
            logger,
            user_id=user_id,
            kind=kind.value,
            event_id=event.id if event is not None else None,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            current_count=quota_after.current_count,
            limit=quota_after.limit,
        )

        return GenerationOutcome(kind=kind, result=result, event=event, quota=quota_after)
