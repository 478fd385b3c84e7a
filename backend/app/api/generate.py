"""
Image generation endpoints.
All endpoints require Firebase authentication and go through the same
admission path (GenerationService): quota check, upstream call, record.

Status codes are distinct per failure class so clients can tell them apart:
401 auth, 429 daily limit, 502/504 upstream, 503 quota check unavailable.
"""
import json
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.base import ImageProvider, GeneratedImage, UpstreamError
from app.ai.factory import get_image_provider
from app.auth.dependencies import get_current_user
from app.config import settings
from app.database import get_db
from app.models.base import utc_now
from app.models.generation_event import GenerationKind
from app.models.user import User
from app.schemas.generation import (
    TextToImageRequest,
    ImageEditRequest,
    MultiImageEditRequest,
    GenerationResponse,
    QuotaResponse,
)
from app.services.generation_service import GenerationService, NoImageGenerated
from app.services.quota_ledger import QuotaDecision, QuotaExceeded, QuotaUnavailable, window_bounds
from app.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_provider() -> ImageProvider:
    """Dependency returning the configured provider (503 if not configured)."""
    try:
        return get_image_provider()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "provider_not_configured", "message": str(e)},
        )


def get_artifact_store() -> ArtifactStore:
    return ArtifactStore()


def quota_exceeded_exception(decision: QuotaDecision) -> HTTPException:
    """429 with the window numbers and seconds until the next UTC midnight."""
    now = utc_now()
    _, window_end = window_bounds(now)
    retry_after = max(int((window_end - now) / timedelta(seconds=1)), 1)
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "daily_limit_exceeded",
            "message": "Daily generation limit reached, please try again tomorrow",
            **QuotaResponse.from_decision(decision).model_dump(by_alias=True, mode="json"),
        },
        headers={"Retry-After": str(retry_after)},
    )


def upstream_exception(error: UpstreamError) -> HTTPException:
    """
    Map a provider failure to a gateway status.
    Upstream 429 and auth errors are ours, not the caller's, so they never
    surface as 429 or 401.
    """
    if error.status_code == 400:
        status_code = status.HTTP_400_BAD_REQUEST
    elif error.status_code == 429:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif error.status_code == 504:
        status_code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        status_code = status.HTTP_502_BAD_GATEWAY

    return HTTPException(
        status_code=status_code,
        detail={
            "error": "upstream_error",
            "message": error.message,
            "upstream_status": error.status_code,
        },
    )


async def _run_generation(
    db: AsyncSession,
    current_user: User,
    provider: ImageProvider,
    artifacts: ArtifactStore,
    kind: GenerationKind,
    payload: dict,
    prompt: str,
    input_images: Optional[List[GeneratedImage]] = None,
) -> GenerationResponse:
    # Read before any rollback can expire the instance
    user_id = current_user.id
    service = GenerationService(db, provider, artifacts=artifacts)

    try:
        outcome = await service.generate(
            user_id,
            kind,
            payload,
            prompt,
            input_images=input_images,
        )
    except QuotaUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "quota_unavailable",
                "message": "Could not verify your daily limit, please try again shortly",
            },
        )
    except QuotaExceeded as e:
        raise quota_exceeded_exception(e.decision)
    except UpstreamError as e:
        raise upstream_exception(e)
    except NoImageGenerated as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "no_image_generated",
                "message": "No image was generated",
                "text": e.result.text,
            },
        )

    return GenerationResponse(
        kind=outcome.kind,
        images=[image.data_url for image in outcome.result.images],
        text=outcome.result.text,
        event_id=outcome.event.id if outcome.event is not None else None,
        recorded=outcome.recorded,
        quota=QuotaResponse.from_decision(outcome.quota),
        upstream=outcome.result.raw,
    )


@router.post("/image", response_model=GenerationResponse)
async def generate_image(
    request: TextToImageRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: ImageProvider = Depends(get_provider),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """Text-to-image generation. Body is a Gemini generateContent request."""
    return await _run_generation(
        db, current_user, provider, artifacts,
        kind=GenerationKind.TEXT_TO_IMAGE,
        payload=request.to_upstream(),
        prompt=request.prompt_text(),
        input_images=request.input_images(),
    )


@router.post("/edit", response_model=GenerationResponse)
async def edit_image(
    request: ImageEditRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: ImageProvider = Depends(get_provider),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """Single-image edit from {prompt, imageData, mimeType}."""
    return await _run_generation(
        db, current_user, provider, artifacts,
        kind=GenerationKind.IMAGE_EDIT,
        payload=request.to_upstream(),
        prompt=request.prompt,
        input_images=request.input_images(),
    )


@router.post("/multi-edit", response_model=GenerationResponse)
async def multi_image_edit(
    request: MultiImageEditRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    provider: ImageProvider = Depends(get_provider),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """
    Edit or combine up to MAX_EDIT_IMAGES source images with a text instruction.
    Returns 413 if the serialized payload exceeds MAX_REQUEST_BYTES.
    """
    payload = request.to_upstream()
    payload_size = len(json.dumps(payload))
    if payload_size > settings.max_request_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "error": "payload_too_large",
                "message": "Total image size exceeds the limit. Compress your images or use fewer images.",
                "current_size": payload_size,
                "max_size": settings.max_request_bytes,
            },
        )

    return await _run_generation(
        db, current_user, provider, artifacts,
        kind=GenerationKind.MULTI_IMAGE_EDIT,
        payload=payload,
        prompt=request.prompt_text(),
        input_images=request.input_images(),
    )
