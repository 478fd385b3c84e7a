"""
Pydantic schemas for history endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.models.generation_event import GenerationKind


class HistoryItem(BaseModel):
    """One generation in a user's history."""
    id: str
    kind: GenerationKind
    prompt: str
    result_url: Optional[str] = None
    input_image_count: int = 0
    input_image_urls: List[str] = []
    created_at: datetime


class AdminHistoryItem(HistoryItem):
    """History item with owner details for the admin view."""
    user_id: str
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    hidden: bool = False


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class HistoryPage(BaseModel):
    items: List[HistoryItem]
    pagination: Pagination


class AdminHistoryPage(BaseModel):
    items: List[AdminHistoryItem]
    pagination: Pagination


class HistoryDeleteResponse(BaseModel):
    success: bool
    hidden: int
    message: str
