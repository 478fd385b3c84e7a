"""
Gemini image generation provider.
Forwards generateContent payloads to the Gemini REST API with httpx and
extracts inline images and text from the response.
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from app.ai.base import ImageProvider, GeneratedImage, GenerationResult, UpstreamError
from app.config import settings
from app.utils.metrics import (
    ai_provider_requests_total,
    ai_provider_failures_total,
    ai_provider_latency_seconds,
    ai_provider_tokens_total,
)
from app.utils.logging import log_provider_request, log_provider_failure

logger = logging.getLogger(__name__)


def parse_generate_content_response(data: Dict[str, Any]) -> GenerationResult:
    """
    Collect images and text from a generateContent response.

    Accepts both camelCase (inlineData) and snake_case (inline_data) parts.
    Parts without data are ignored.
    """
    images = []
    texts = []

    for candidate in data.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                images.append(GeneratedImage(mime_type=mime_type, data=inline["data"]))
            elif part.get("text"):
                texts.append(part["text"])

    return GenerationResult(
        images=images,
        text="\n".join(texts) if texts else None,
        raw=data,
    )


class GeminiImageProvider(ImageProvider):
    """
    Gemini provider for text-to-image and image editing.

    The API key is read from settings and never exposed to clients.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Gemini API key (default: settings.gemini_api_key)
            model: Model name (default: settings.gemini_model)
            base_url: API base URL (default: settings.gemini_api_base)
            timeout_seconds: Request timeout (default: settings.gemini_timeout_seconds)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_api_base).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.gemini_timeout_seconds
        self._transport = transport

    def is_configured(self) -> bool:
        """Check if Gemini API key is configured."""
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, payload: Dict[str, Any], operation: str = "generate") -> GenerationResult:
        if not self.is_configured():
            raise ValueError("Gemini API key not configured. Set GEMINI_API_KEY environment variable.")

        ai_provider_requests_total.labels(provider=self.name, operation=operation).inc()
        start_time = time.perf_counter()

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"x-goog-api-key": self.api_key},
                )
        except httpx.TimeoutException as e:
            self._record_failure(operation, start_time, f"timeout: {e}")
            raise UpstreamError(504, "Image generation timed out") from e
        except httpx.HTTPError as e:
            self._record_failure(operation, start_time, str(e))
            raise UpstreamError(502, f"Image generation service unreachable: {e}") from e

        duration = time.perf_counter() - start_time
        ai_provider_latency_seconds.labels(provider=self.name, operation=operation).observe(duration)

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            message = self._error_message(data) or f"Upstream returned HTTP {response.status_code}"
            self._record_failure(operation, start_time, message, status_code=response.status_code)
            raise UpstreamError(response.status_code, message, body=data)

        if not isinstance(data, dict):
            self._record_failure(operation, start_time, "non-JSON response", status_code=response.status_code)
            raise UpstreamError(502, "Image generation service returned an invalid response")

        self._record_usage(operation, data)
        log_provider_request(
            logger,
            provider=self.name,
            operation=operation,
            duration_ms=duration * 1000,
            model=self.model,
        )
        return parse_generate_content_response(data)

    @staticmethod
    def _error_message(data: Any) -> Optional[str]:
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            return data["error"].get("message")
        return None

    def _record_failure(self, operation: str, start_time: float, error: str, status_code: Optional[int] = None):
        ai_provider_failures_total.labels(provider=self.name, operation=operation).inc()
        log_provider_failure(
            logger,
            provider=self.name,
            operation=operation,
            error=error,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            status_code=status_code,
        )

    def _record_usage(self, operation: str, data: Dict[str, Any]):
        usage = data.get("usageMetadata") or {}
        for token_type, key in (("prompt", "promptTokenCount"), ("completion", "candidatesTokenCount")):
            if usage.get(key):
                ai_provider_tokens_total.labels(
                    provider=self.name,
                    operation=operation,
                    token_type=token_type
                ).inc(usage[key])
