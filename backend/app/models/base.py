"""
Declarative base and shared column helpers.
All models inherit from this base.
"""
from datetime import datetime, timezone
from sqlalchemy.orm import DeclarativeBase
import uuid


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def generate_uuid():
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention for all timestamps)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
