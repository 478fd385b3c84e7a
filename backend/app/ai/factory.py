"""
Image provider factory.
Returns the configured provider; used as a FastAPI dependency so tests can
override it.
"""
import logging
from app.ai.base import ImageProvider
from app.ai.gemini_provider import GeminiImageProvider

logger = logging.getLogger(__name__)


def get_image_provider() -> ImageProvider:
    """
    Factory function to get the configured image provider.

    Returns:
        ImageProvider instance

    Raises:
        ValueError: If the provider API key is not configured
    """
    provider = GeminiImageProvider()
    if not provider.is_configured():
        logger.warning("Gemini provider selected but API key not configured")
        raise ValueError("Gemini API key not configured. Set GEMINI_API_KEY environment variable.")
    return provider
