"""
Database models package.
"""
from app.models.base import Base
from app.models.user import User
from app.models.generation_event import GenerationEvent, GenerationKind
from app.models.quota_window_lock import QuotaWindowLock

__all__ = [
    "Base",
    "User",
    "GenerationEvent",
    "GenerationKind",
    "QuotaWindowLock",
]
