"""
Tests for Pydantic schemas validation.
"""
import pytest
from datetime import date
from pydantic import ValidationError

from app.schemas.generation import (
    TextToImageRequest,
    ImageEditRequest,
    MultiImageEditRequest,
    QuotaResponse,
)
from app.services.quota_ledger import QuotaDecision


def image_part(data: str = "iVBORw0KGgo=") -> dict:
    return {"inlineData": {"mimeType": "image/png", "data": data}}


class TestTextToImageRequest:
    """Tests for text-to-image request bodies."""

    def test_valid_request(self):
        request = TextToImageRequest(contents=[{"parts": [{"text": "  a red fox  "}]}])
        assert request.prompt_text() == "a red fox"
        assert request.image_count() == 0

    def test_missing_prompt(self):
        with pytest.raises(ValidationError):
            TextToImageRequest(contents=[{"parts": [{"text": "   "}]}])

    def test_empty_contents(self):
        with pytest.raises(ValidationError):
            TextToImageRequest(contents=[])

    def test_generation_config_passed_upstream(self):
        request = TextToImageRequest(
            contents=[{"parts": [{"text": "a red fox"}]}],
            generationConfig={"responseModalities": ["TEXT", "IMAGE"]},
        )
        upstream = request.to_upstream()
        assert upstream["generationConfig"] == {"responseModalities": ["TEXT", "IMAGE"]}
        assert upstream["contents"] == [{"parts": [{"text": "a red fox"}]}]


class TestMultiImageEditRequest:
    """Tests for multi-image edit request bodies."""

    def test_snake_case_parts_sent_upstream_as_camel_case(self):
        request = MultiImageEditRequest(contents=[{"parts": [
            {"text": "merge these"},
            {"inline_data": {"mime_type": "image/jpeg", "data": "/9j/4AAQ"}},
        ]}])

        upstream = request.to_upstream()
        assert upstream["contents"][0]["parts"][1] == {
            "inlineData": {"mimeType": "image/jpeg", "data": "/9j/4AAQ"}
        }
        assert request.image_count() == 1

    def test_requires_an_image(self):
        with pytest.raises(ValidationError):
            MultiImageEditRequest(contents=[{"parts": [{"text": "merge"}]}])

    def test_requires_text(self):
        with pytest.raises(ValidationError):
            MultiImageEditRequest(contents=[{"parts": [image_part()]}])

    def test_too_many_images(self):
        parts = [{"text": "merge"}] + [image_part() for _ in range(4)]
        with pytest.raises(ValidationError):
            MultiImageEditRequest(contents=[{"parts": parts}])


class TestImageEditRequest:
    """Tests for the simplified single-image edit body."""

    def test_strips_data_url_prefix(self):
        request = ImageEditRequest(prompt="make it blue", imageData="data:image/png;base64,iVBORw0KGgo=")
        assert request.image_data == "iVBORw0KGgo="
        assert request.to_upstream()["contents"][0]["parts"] == [
            {"text": "make it blue"},
            {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}},
        ]

    def test_blank_prompt(self):
        with pytest.raises(ValidationError):
            ImageEditRequest(prompt="   ", imageData="iVBORw0KGgo=")

    def test_missing_image(self):
        with pytest.raises(ValidationError):
            ImageEditRequest(prompt="make it blue")


class TestQuotaResponse:
    """Tests for quota serialization."""

    def test_serializes_client_keys(self):
        decision = QuotaDecision.from_count(7, 200, date(2025, 3, 14))
        data = QuotaResponse.from_decision(decision).model_dump(by_alias=True, mode="json")

        assert data == {
            "allowed": True,
            "currentCount": 7,
            "limit": 200,
            "remaining": 193,
            "date": "2025-03-14",
        }
