"""
Generation history endpoints for the authenticated user.
Deleting history hides entries; it never refunds daily quota.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.generate import get_artifact_store
from app.auth.dependencies import get_current_user
from app.database import get_db
from app.models.generation_event import GenerationKind
from app.models.user import User
from app.schemas.history import HistoryItem, HistoryPage, HistoryDeleteResponse, Pagination
from app.services.history_service import HistoryService
from app.storage.artifacts import ArtifactStore

router = APIRouter()


@router.get("", response_model=HistoryPage)
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    kind: Optional[GenerationKind] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """List the caller's generations, newest first. Page size is capped at 100."""
    events, total, page_size = await HistoryService.list_events(
        db, current_user.id, page=page, limit=limit, kind=kind, search=search
    )

    return HistoryPage(
        items=[
            HistoryItem(
                id=event.id,
                kind=event.kind,
                prompt=event.prompt,
                result_url=artifacts.resolve_url(event.result_ref),
                input_image_count=event.input_image_count,
                input_image_urls=artifacts.resolve_urls(event.input_refs),
                created_at=event.occurred_at,
            )
            for event in events
        ],
        pagination=Pagination(
            page=page,
            limit=page_size,
            total=total,
            pages=math.ceil(total / page_size),
        ),
    )


@router.delete("/{event_id}", response_model=HistoryDeleteResponse)
async def delete_history_item(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """Remove one generation from the caller's history."""
    hidden = await HistoryService.hide_event(db, current_user.id, event_id, artifacts)
    if not hidden:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="History record not found"
        )

    return HistoryDeleteResponse(success=True, hidden=1, message="Record deleted successfully")


@router.delete("", response_model=HistoryDeleteResponse)
async def clear_history(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """Remove every generation from the caller's history."""
    hidden = await HistoryService.hide_all(db, current_user.id, artifacts)
    return HistoryDeleteResponse(
        success=True,
        hidden=hidden,
        message="All history records cleared successfully"
    )
