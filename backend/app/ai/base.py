"""
Base class for image generation providers.
All providers must implement this interface so the generation gateway can
use any of them without knowing which one.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class UpstreamError(Exception):
    """
    The upstream provider rejected the request or could not be reached.

    Attributes:
        status_code: Upstream HTTP status, or 502/504 for transport failures
        body: Parsed upstream error body when available
    """

    def __init__(self, status_code: int, message: str, body: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.body = body


@dataclass
class GeneratedImage:
    """One image returned by the provider (base64 payload)."""
    mime_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass
class GenerationResult:
    """Parsed provider response."""
    images: List[GeneratedImage] = field(default_factory=list)
    text: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_image(self) -> bool:
        return len(self.images) > 0


class ImageProvider(ABC):
    """
    Abstract base class for image generation providers.

    All providers must implement:
    - generate(): send a generation payload and parse the response
    - is_configured(): report whether credentials are present
    """

    name: str = "unknown"

    @abstractmethod
    async def generate(self, payload: Dict[str, Any], operation: str = "generate") -> GenerationResult:
        """
        Run one generation request.

        Args:
            payload: Provider request body
            operation: Label used for metrics and logs (e.g. generation kind)

        Returns:
            GenerationResult; may contain zero images

        Raises:
            UpstreamError: If the provider returns an error or is unreachable
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """
        Check if provider is properly configured (API key present, etc.).

        Returns:
            True if provider can be used, False otherwise
        """
        pass
