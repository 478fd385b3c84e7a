"""
User profile endpoints.
Returns information about the authenticated user and today's quota.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from app.database import get_db
from app.models.user import User
from app.auth.dependencies import get_current_user
from app.schemas.generation import QuotaResponse
from app.services.quota_ledger import QuotaLedger, QuotaUnavailable

router = APIRouter()


class ProfileResponse(BaseModel):
    """Response schema for the profile endpoint."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


@router.get("", response_model=ProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """
    Return the authenticated user's profile.
    The user row is created or refreshed from token claims on every call.
    """
    return ProfileResponse(
        user_id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        avatar_url=current_user.avatar_url,
    )


@router.get("/generation-count", response_model=QuotaResponse)
async def get_generation_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get today's generation count, limit and remaining for the caller.
    Returns 503 if the count cannot be determined.
    """
    user_id = current_user.id
    try:
        decision = await QuotaLedger(db).check_quota(user_id)
    except QuotaUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "quota_unavailable",
                "message": "Could not load your generation count",
            },
        )

    return QuotaResponse.from_decision(decision)
