"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from app.api import health, generate, me, history, admin

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(generate.router, prefix="/generate", tags=["generate"])
api_router.include_router(me.router, prefix="/me", tags=["me"])
api_router.include_router(history.router, prefix="/history", tags=["history"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
