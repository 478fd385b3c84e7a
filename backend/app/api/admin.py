"""
Admin endpoints for viewing generation history across all users.
Access is restricted to emails listed in ADMIN_EMAILS.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.generate import get_artifact_store
from app.auth.dependencies import require_admin
from app.database import get_db
from app.models.generation_event import GenerationKind
from app.models.user import User
from app.schemas.history import AdminHistoryItem, AdminHistoryPage, Pagination
from app.services.history_service import HistoryService
from app.storage.artifacts import ArtifactStore

router = APIRouter()


@router.get("/history", response_model=AdminHistoryPage)
async def admin_history(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    kind: Optional[GenerationKind] = None,
    search: Optional[str] = None,
    user_id: Optional[str] = None,
    include_hidden: bool = False,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    artifacts: ArtifactStore = Depends(get_artifact_store),
):
    """
    List generations from all users, newest first, with owner details.
    Supports filtering by kind, prompt search and user_id.
    """
    rows, total, page_size = await HistoryService.list_all_events(
        db,
        page=page,
        limit=limit,
        kind=kind,
        search=search,
        user_id=user_id,
        include_hidden=include_hidden,
    )

    return AdminHistoryPage(
        items=[
            AdminHistoryItem(
                id=event.id,
                kind=event.kind,
                prompt=event.prompt,
                result_url=artifacts.resolve_url(event.result_ref),
                input_image_count=event.input_image_count,
                input_image_urls=artifacts.resolve_urls(event.input_refs),
                created_at=event.occurred_at,
                user_id=owner.id,
                user_email=owner.email,
                user_name=owner.name,
                hidden=event.hidden_at is not None,
            )
            for event, owner in rows
        ],
        pagination=Pagination(
            page=page,
            limit=page_size,
            total=total,
            pages=math.ceil(total / page_size),
        ),
    )
