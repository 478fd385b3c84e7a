"""
Health check endpoint.
Verifies database connectivity and reports provider configuration.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.ai.gemini_provider import GeminiImageProvider
from app.database import get_db
from app.storage.r2_client import get_r2_client

router = APIRouter()


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    Returns 503 if the database is unreachable (quota checks would fail closed).
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "provider": "configured" if GeminiImageProvider().is_configured() else "not_configured",
        "storage": "r2" if get_r2_client().is_configured else "inline",
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except (SQLAlchemyError, OSError) as e:
        health_status["database"] = f"error: {str(e)}"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
