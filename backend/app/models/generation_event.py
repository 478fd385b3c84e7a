"""
GenerationEvent model: one successful image generation by a user.

Rows are append-only for quota purposes. The daily quota is the number of
rows per user whose occurred_at falls in the current UTC day, so rows are
never deleted; history management only sets hidden_at.
"""
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from app.models.base import Base, generate_uuid, utc_now


class GenerationKind(str, enum.Enum):
    """Kind of upstream generation that produced the event."""
    TEXT_TO_IMAGE = "text_to_image"
    IMAGE_EDIT = "image_edit"
    MULTI_IMAGE_EDIT = "multi_image_edit"


class GenerationEvent(Base):
    """Append-only record of a delivered generation."""

    __tablename__ = "generation_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    kind = Column(SQLEnum(GenerationKind), nullable=False)
    prompt = Column(Text, nullable=False, default="")
    result_ref = Column(Text, nullable=False)  # r2:// key or inline data URL
    input_image_count = Column(Integer, nullable=False, default=0)
    input_refs = Column(JSON, nullable=False, default=list)  # Source images, same ref format as result_ref

    occurred_at = Column(DateTime, nullable=False, default=utc_now)
    hidden_at = Column(DateTime, nullable=True)  # Set when the user removes it from history

    user = relationship("User", backref="generation_events")

    __table_args__ = (
        Index("idx_generation_events_user_occurred", "user_id", "occurred_at"),
    )

    def __repr__(self):
        return f"<GenerationEvent(id={self.id}, user_id={self.user_id}, kind={self.kind})>"
