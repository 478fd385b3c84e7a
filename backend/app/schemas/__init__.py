"""
Pydantic schemas for API request/response validation.
"""
from app.schemas.generation import (
    TextToImageRequest,
    ImageEditRequest,
    MultiImageEditRequest,
    QuotaResponse,
    GenerationResponse,
)
from app.schemas.history import (
    HistoryItem,
    HistoryPage,
    AdminHistoryItem,
    AdminHistoryPage,
    HistoryDeleteResponse,
    Pagination,
)

__all__ = [
    "TextToImageRequest",
    "ImageEditRequest",
    "MultiImageEditRequest",
    "QuotaResponse",
    "GenerationResponse",
    "HistoryItem",
    "HistoryPage",
    "AdminHistoryItem",
    "AdminHistoryPage",
    "HistoryDeleteResponse",
    "Pagination",
]
