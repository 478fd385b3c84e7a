"""
Cloudflare R2 / S3-compatible storage client for generated images.

Uses boto3 with the S3-compatible API. The bucket stays private; clients
receive short-lived presigned read URLs.
"""
import logging
from typing import List, Optional, Tuple
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings

logger = logging.getLogger(__name__)

# S3 batch delete supports max 1000 objects per call
DELETE_BATCH_SIZE = 1000


class R2Client:
    """
    S3-compatible client for Cloudflare R2.

    Fails soft when not configured: is_configured is False and callers keep
    images inline instead.
    """

    def __init__(self, client=None):
        """
        Args:
            client: Optional pre-built boto3 S3 client (tests pass a stub)
        """
        self._client = client
        self._configured = client is not None

        if client is not None:
            return

        if not all([
            settings.r2_endpoint,
            settings.r2_access_key,
            settings.r2_secret_key
        ]):
            logger.info("R2 storage not configured; generated images will be stored inline")
            return

        try:
            self._client = boto3.client(
                's3',
                endpoint_url=settings.r2_endpoint,
                aws_access_key_id=settings.r2_access_key,
                aws_secret_access_key=settings.r2_secret_key,
                region_name=settings.r2_region,
                config=Config(
                    signature_version='s3v4',
                    s3={'addressing_style': 'path'}  # R2 uses path-style
                )
            )
            self._configured = True
            logger.info(f"R2 client initialized for bucket: {settings.r2_bucket}")
        except (BotoCoreError, ValueError) as e:
            logger.error(f"Failed to initialize R2 client: {e}")

    @property
    def is_configured(self) -> bool:
        """Check if R2 client is properly configured."""
        return self._configured and self._client is not None

    @property
    def bucket(self) -> str:
        """Get configured bucket name."""
        return settings.r2_bucket

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> bool:
        """
        Upload an object.

        Args:
            object_key: The S3 object key (path in bucket)
            data: Object bytes
            content_type: MIME type (e.g. image/png)

        Returns:
            True if the upload succeeded
        """
        if not self.is_configured:
            return False

        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
            logger.debug(f"Uploaded {object_key} ({len(data)} bytes)")
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {object_key} to R2: {e}")
            return False

    def get_presigned_read_url(self, object_key: str, expiration: Optional[int] = None) -> Optional[str]:
        """
        Generate a presigned GET URL for reading an object.

        Args:
            object_key: The S3 object key
            expiration: URL expiration in seconds (default from settings)

        Returns:
            Presigned URL string, or None if generation fails
        """
        if not self.is_configured:
            return None

        if expiration is None:
            expiration = settings.r2_presign_expiration

        try:
            return self._client.generate_presigned_url(
                ClientMethod='get_object',
                Params={
                    'Bucket': self.bucket,
                    'Key': object_key,
                },
                ExpiresIn=expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned read URL for {object_key}: {e}")
            return None

    def delete_objects_batch(self, object_keys: List[str]) -> Tuple[int, int]:
        """
        Delete multiple objects, chunked to the S3 batch limit.

        Args:
            object_keys: List of S3 object keys to delete

        Returns:
            Tuple of (successful_count, failed_count)
        """
        if not self.is_configured:
            return (0, len(object_keys))

        successful = 0
        failed = 0

        for i in range(0, len(object_keys), DELETE_BATCH_SIZE):
            batch = object_keys[i:i + DELETE_BATCH_SIZE]
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={
                        'Objects': [{'Key': key} for key in batch],
                        'Quiet': True  # Only return errors
                    }
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Batch delete failed: {e}")
                failed += len(batch)
                continue

            errors = response.get('Errors', [])
            for error in errors[:5]:
                logger.warning(
                    f"Failed to delete {error.get('Key')}: "
                    f"{error.get('Code')} - {error.get('Message')}"
                )
            failed += len(errors)
            successful += len(batch) - len(errors)

        if object_keys:
            logger.info(f"R2 batch delete: {successful} deleted, {failed} failed")
        return (successful, failed)


# Singleton instance
_r2_client: Optional[R2Client] = None


def get_r2_client() -> R2Client:
    """
    Get the singleton R2 client instance.

    Returns:
        R2Client instance (may or may not be configured)
    """
    global _r2_client
    if _r2_client is None:
        _r2_client = R2Client()
    return _r2_client
