"""
Pydantic schemas for generation endpoints and quota responses.

Request bodies follow the Gemini generateContent format so existing clients
can post the same JSON they would send upstream. Both inlineData and
inline_data spellings are accepted; the upstream payload is always camelCase.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.ai.base import GeneratedImage
from app.config import settings
from app.models.generation_event import GenerationKind
from app.services.quota_ledger import QuotaDecision


class InlineData(BaseModel):
    """Base64 image part."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    mime_type: str = Field("image/png", alias="mimeType")
    data: str = Field(..., min_length=1)


class Part(BaseModel):
    """One content part: text or an inline image."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: Optional[str] = None
    inline_data: Optional[InlineData] = Field(None, alias="inlineData")


class Content(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None
    parts: List[Part] = Field(..., min_length=1)


class GenerateContentRequest(BaseModel):
    """A generateContent request body, forwarded upstream as-is."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    contents: List[Content] = Field(..., min_length=1)
    generation_config: Optional[Dict[str, Any]] = Field(None, alias="generationConfig")

    def prompt_text(self) -> str:
        """All text parts joined, the prompt recorded in history."""
        texts = [
            part.text.strip()
            for content in self.contents
            for part in content.parts
            if part.text and part.text.strip()
        ]
        return "\n".join(texts)

    def image_count(self) -> int:
        return sum(
            1
            for content in self.contents
            for part in content.parts
            if part.inline_data is not None
        )

    def input_images(self) -> List[GeneratedImage]:
        return [
            GeneratedImage(mime_type=part.inline_data.mime_type, data=part.inline_data.data)
            for content in self.contents
            for part in content.parts
            if part.inline_data is not None
        ]

    def to_upstream(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextToImageRequest(GenerateContentRequest):
    """Text-to-image request: needs at least one non-empty text part."""

    @model_validator(mode="after")
    def _require_prompt(self):
        if not self.prompt_text():
            raise ValueError("A text prompt is required")
        return self


class MultiImageEditRequest(GenerateContentRequest):
    """Edit request with one or more source images and a text instruction."""

    @model_validator(mode="after")
    def _check_parts(self):
        images = self.image_count()
        if images == 0:
            raise ValueError("At least one image is required")
        if images > settings.max_edit_images:
            raise ValueError(f"Maximum {settings.max_edit_images} images allowed")
        if not self.prompt_text():
            raise ValueError("Text prompt is required")
        return self


class ImageEditRequest(BaseModel):
    """Single-image edit in the simplified {prompt, imageData} form."""
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=1)
    image_data: str = Field(..., min_length=1, alias="imageData")
    mime_type: str = Field("image/png", alias="mimeType")

    @field_validator("image_data")
    @classmethod
    def _strip_data_url(cls, value: str) -> str:
        # Accept "data:image/png;base64,...." as sent by browsers
        if value.startswith("data:") and "," in value:
            return value.split(",", 1)[1]
        return value

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt cannot be blank")
        return value.strip()

    def input_images(self) -> List[GeneratedImage]:
        return [GeneratedImage(mime_type=self.mime_type, data=self.image_data)]

    def to_upstream(self) -> Dict[str, Any]:
        return {
            "contents": [{
                "parts": [
                    {"text": self.prompt},
                    {"inlineData": {"mimeType": self.mime_type, "data": self.image_data}},
                ]
            }]
        }


class QuotaResponse(BaseModel):
    """Today's quota window, serialized with the camelCase keys clients use."""
    model_config = ConfigDict(populate_by_name=True)

    allowed: bool
    current_count: int = Field(..., alias="currentCount")
    limit: int
    remaining: int
    window_date: date = Field(..., alias="date")

    @classmethod
    def from_decision(cls, decision: QuotaDecision) -> "QuotaResponse":
        return cls(
            allowed=decision.allowed,
            current_count=decision.current_count,
            limit=decision.limit,
            remaining=decision.remaining,
            window_date=decision.window_date,
        )


class GenerationResponse(BaseModel):
    """Result of a delivered generation."""
    model_config = ConfigDict(populate_by_name=True)

    kind: GenerationKind
    images: List[str]  # data URLs
    text: Optional[str] = None
    event_id: Optional[str] = Field(None, alias="eventId")
    recorded: bool
    quota: QuotaResponse
    upstream: Dict[str, Any]  # Raw generateContent response
