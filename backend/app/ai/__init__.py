"""
Image provider abstraction module.
"""
from app.ai.base import ImageProvider, GenerationResult, GeneratedImage, UpstreamError
from app.ai.factory import get_image_provider

__all__ = [
    "ImageProvider",
    "GenerationResult",
    "GeneratedImage",
    "UpstreamError",
    "get_image_provider",
]
