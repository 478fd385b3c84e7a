"""
QuotaWindowLock model.
One row per (user, UTC day). The recording transaction upserts this row
first, which takes a row lock that serializes admissions for the same user
and day across all API instances. It carries no count of its own.
"""
from sqlalchemy import Column, String, Date, DateTime

from app.models.base import Base, utc_now


class QuotaWindowLock(Base):
    """Per-user, per-day admission lock row."""

    __tablename__ = "quota_window_locks"

    user_id = Column(String(36), primary_key=True)
    window_date = Column(Date, primary_key=True)
    touched_at = Column(DateTime, nullable=False, default=utc_now)

    def __repr__(self):
        return f"<QuotaWindowLock(user_id={self.user_id}, window_date={self.window_date})>"
