"""
Generated-image persistence.

Turns an image into the opaque ref stored on a GenerationEvent (result_ref
for the output, input_refs for the source images): an "r2://<key>"
reference when R2 is configured, otherwise the image itself as a data URL.
"""
import asyncio
import base64
import binascii
import logging
import mimetypes
from typing import Iterable, List, Optional

from app.ai.base import GeneratedImage
from app.models.base import generate_uuid, utc_now
from app.storage.r2_client import R2Client, get_r2_client

logger = logging.getLogger(__name__)

R2_REF_PREFIX = "r2://"


class ArtifactStore:
    """Stores generated images and resolves result_ref values to URLs."""

    def __init__(self, r2_client: Optional[R2Client] = None):
        self.r2 = r2_client or get_r2_client()

    def _object_key(self, user_id: str, mime_type: str) -> str:
        extension = mimetypes.guess_extension(mime_type) or ".bin"
        day = utc_now().strftime("%Y/%m/%d")
        return f"generations/{user_id}/{day}/{generate_uuid()}{extension}"

    async def save(self, user_id: str, image: GeneratedImage) -> str:
        """
        Persist an image and return its result_ref.
        Falls back to an inline data URL if the upload fails.
        """
        if not self.r2.is_configured:
            return image.data_url

        try:
            data = base64.b64decode(image.data, validate=True)
        except (binascii.Error, ValueError):
            logger.warning(f"Generated image for user {user_id} is not valid base64; storing inline")
            return image.data_url

        key = self._object_key(user_id, image.mime_type)
        # boto3 is blocking
        uploaded = await asyncio.to_thread(self.r2.upload_bytes, key, data, image.mime_type)
        if not uploaded:
            return image.data_url
        return f"{R2_REF_PREFIX}{key}"

    def resolve_url(self, result_ref: str) -> Optional[str]:
        """Return a URL the client can load, or None if the artifact was discarded."""
        if not result_ref:
            return None
        if result_ref.startswith(R2_REF_PREFIX):
            return self.r2.get_presigned_read_url(result_ref[len(R2_REF_PREFIX):])
        return result_ref

    def resolve_urls(self, refs: Optional[Iterable[str]]) -> List[str]:
        """Resolve several refs, skipping discarded or unresolvable ones."""
        urls = [self.resolve_url(ref) for ref in refs or []]
        return [url for url in urls if url]

    async def discard(self, result_refs: Iterable[str]) -> int:
        """
        Delete stored objects for the given refs. Inline refs need no cleanup.

        Returns:
            Number of objects deleted
        """
        keys = [ref[len(R2_REF_PREFIX):] for ref in result_refs if ref and ref.startswith(R2_REF_PREFIX)]
        if not keys:
            return 0
        deleted, _failed = await asyncio.to_thread(self.r2.delete_objects_batch, keys)
        return deleted
