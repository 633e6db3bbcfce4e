"""
R2 storage service for finished videos.

Cloudflare R2 speaks the S3 API, so this wraps a boto3 S3 client pointed at the
R2 endpoint. Handles streaming uploads, ranged reads and existence checks.
Object keys are append-only: a key is never overwritten.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional, Tuple

import boto3
from botocore.exceptions import ClientError
import structlog
from config import settings

logger = structlog.get_logger()

VIDEO_CONTENT_TYPE = "video/mp4"

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StoredObject:
    """
    A (possibly partial) object read from storage.

    Attributes:
        body: Streaming body (iter_chunks()/read()/close())
        size: Number of bytes in body
        total_size: Size of the whole object
        range: (start, end) inclusive byte range, or None for the full object
    """

    body: Any
    size: int
    total_size: int
    content_type: Optional[str] = None
    range: Optional[Tuple[int, int]] = None


class R2StorageService:
    """
    Service for managing R2 file operations.
    """

    def __init__(self, client=None, bucket_name: Optional[str] = None):
        """
        Initialize R2 client.

        Args:
            client: Optional preconfigured S3 client
            bucket_name: Bucket name (default from settings)
        """
        self.s3_client = client or boto3.client(
            's3',
            endpoint_url=settings.R2_ENDPOINT or None,
            region_name=settings.R2_REGION,
            aws_access_key_id=settings.R2_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY or None
        )
        self.bucket_name = bucket_name or settings.STORAGE_BUCKET

        logger.info(
            "r2_storage_initialized",
            bucket=self.bucket_name,
            endpoint=settings.R2_ENDPOINT
        )

    def upload_fileobj(
        self,
        file_data: BinaryIO,
        key: str,
        content_type: str = VIDEO_CONTENT_TYPE,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Stream a file-like object into R2.

        upload_fileobj reads the source in parts (multipart above the
        threshold), so the payload is never held in memory as a whole.

        Args:
            file_data: File-like object positioned at the start
            key: Object key (path within bucket)
            content_type: MIME type
            metadata: Custom metadata (ASCII string values)

        Returns:
            Key of uploaded object

        Raises:
            ClientError if upload fails
        """
        key = validate_s3_key(key, "key")
        extra_args = {'ContentType': content_type}
        if metadata:
            extra_args['Metadata'] = metadata

        try:
            self.s3_client.upload_fileobj(
                file_data,
                self.bucket_name,
                key,
                ExtraArgs=extra_args
            )
        except ClientError as e:
            logger.error(
                "r2_upload_failed",
                key=key,
                error=str(e),
                exc_info=True
            )
            raise

        logger.info(
            "r2_file_uploaded",
            bucket=self.bucket_name,
            key=key,
            content_type=content_type
        )

        return key

    def head_object(self, key: str) -> Optional[int]:
        """
        Get the size of an object.

        Args:
            key: Object key

        Returns:
            Size in bytes, or None if the object does not exist
        """
        try:
            response = self.s3_client.head_object(
                Bucket=self.bucket_name,
                Key=key
            )
            return int(response['ContentLength'])
        except ClientError as e:
            if e.response['Error']['Code'] in _MISSING_CODES:
                return None
            logger.error(
                "r2_head_failed",
                key=key,
                error=str(e),
                exc_info=True
            )
            raise

    def get_object(
        self,
        key: str,
        byte_range: Optional[Tuple[int, int]] = None
    ) -> Optional[StoredObject]:
        """
        Read an object, optionally restricted to an inclusive byte range.

        Args:
            key: Object key
            byte_range: (start, end) inclusive, already validated against the size

        Returns:
            StoredObject, or None if the object does not exist
        """
        kwargs = {'Bucket': self.bucket_name, 'Key': key}
        if byte_range is not None:
            kwargs['Range'] = f"bytes={byte_range[0]}-{byte_range[1]}"

        try:
            response = self.s3_client.get_object(**kwargs)
        except ClientError as e:
            if e.response['Error']['Code'] in _MISSING_CODES:
                logger.warning("r2_object_missing", key=key)
                return None
            logger.error(
                "r2_get_failed",
                key=key,
                error=str(e),
                exc_info=True
            )
            raise

        size = int(response['ContentLength'])
        total_size = size
        content_range = response.get('ContentRange')
        if content_range and "/" in content_range:
            total_size = int(content_range.rsplit("/", 1)[1])

        return StoredObject(
            body=response['Body'],
            size=size,
            total_size=total_size,
            content_type=response.get('ContentType'),
            range=byte_range
        )

    # Async wrappers for use in async contexts

    async def upload_fileobj_async(
        self,
        file_data: BinaryIO,
        key: str,
        content_type: str = VIDEO_CONTENT_TYPE,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Async wrapper for upload_fileobj.

        Runs the sync operation in a thread pool executor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.upload_fileobj(file_data, key, content_type, metadata)
        )

    async def head_object_async(self, key: str) -> Optional[int]:
        """Async wrapper for head_object."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.head_object, key)

    async def get_object_async(
        self,
        key: str,
        byte_range: Optional[Tuple[int, int]] = None
    ) -> Optional[StoredObject]:
        """Async wrapper for get_object."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_object, key, byte_range)


def generate_video_key(video_id: str, timestamp_ms: int) -> str:
    """
    Generate the object key for a video copy.

    Keys are namespaced by video id and made unique by the copy timestamp so a
    retried copy never overwrites an earlier object.

    Examples:
        >>> generate_video_key("123", 1700000000000)
        "videos/123/1700000000000.mp4"
    """
    return f"videos/{video_id}/{timestamp_ms}.mp4"


def validate_s3_key(s3_key: Optional[str], field_name: str = "S3 key") -> Optional[str]:
    """
    Validate that an object key is not a URL.

    Keys should be paths like "videos/{id}/{ts}.mp4", not URLs like
    "https://..." or "s3://...". This ensures we never accidentally save
    an upstream or presigned URL where a durable key belongs.

    Args:
        s3_key: Key to validate (can be None)
        field_name: Name of the field for error messages

    Returns:
        The validated key (or None if input was None)

    Raises:
        ValueError: If s3_key appears to be a URL instead of a key
    """
    if s3_key is None:
        return None

    s3_key = s3_key.strip()

    # Check for URL patterns
    if s3_key.startswith(("http://", "https://", "s3://")):
        raise ValueError(
            f"{field_name} must be an object key (e.g., 'videos/{{id}}/{{ts}}.mp4'), "
            f"not a URL. Received: {s3_key[:50]}..."
        )

    # Check for presigned URL patterns (signature parameters)
    if "?" in s3_key and ("X-Amz-" in s3_key or "AWSAccessKeyId" in s3_key or "X-Goog-" in s3_key):
        raise ValueError(
            f"{field_name} must be an object key, not a presigned URL. "
            f"Presigned URLs contain query parameters and expire. Received: {s3_key[:50]}..."
        )

    return s3_key


# Singleton instance
_r2_storage_service: Optional[R2StorageService] = None


def get_r2_storage_service() -> R2StorageService:
    """
    Get singleton R2 storage service instance.

    Returns:
        R2StorageService instance
    """
    global _r2_storage_service
    if _r2_storage_service is None:
        _r2_storage_service = R2StorageService()
    return _r2_storage_service
