"""
User model.
Authenticated via Firebase (firebase_uid); rows are created on first request.
"""
from sqlalchemy import Column, String, Index, DateTime
from app.models.base import Base, generate_uuid, utc_now


class User(Base):
    """User synced from the identity provider's token claims."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    firebase_uid = Column(String(128), nullable=False, unique=True)  # Firebase user ID
    email = Column(String(255), nullable=True)  # Email from Firebase token
    name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    last_seen_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_user_firebase_uid", "firebase_uid"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, firebase_uid={self.firebase_uid}, email={self.email})>"
