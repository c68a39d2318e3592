"""
MinIO Object Storage Client
Streaming reads and presigned URLs for application documents and images
"""

import asyncio
from datetime import timedelta
from typing import AsyncIterator, Optional

from minio import Minio
from minio.error import MinioException
from urllib3.exceptions import HTTPError

from edumatch.core.config import settings
from edumatch.core.exceptions import AppException, NotFoundException, StorageException
from edumatch.core.logging import get_logger
from edumatch.services.access.models import StoredObject

logger = get_logger(__name__)

# Global storage
_storage: Optional["ObjectStorage"] = None

CHUNK_SIZE = 64 * 1024

MISSING_OBJECT_CODES = ("NoSuchKey", "NoSuchBucket", "NoSuchObject")


def _endpoint() -> str:
    endpoint = settings.MINIO_ENDPOINT
    if "://" in endpoint:
        endpoint = endpoint.split("://")[1]
    return endpoint.rstrip("/")


class ObjectStorage:
    """S3-compatible storage accessed through the MinIO client"""

    def __init__(self, client: Minio, bucket: Optional[str] = None):
        self.client = client
        self.bucket = bucket or settings.STORAGE_BUCKET

    def _raise_for(self, error: Exception, key: str, operation: str):
        # S3Error carries the S3 error code
        if getattr(error, "code", None) in MISSING_OBJECT_CODES:
            logger.info(f"Object not found: {self.bucket}/{key}")
            raise NotFoundException("File")

        # AccessDenied lands here too: the request was already authorized
        logger.error(f"Failed to {operation} {self.bucket}/{key}: {error}")
        raise StorageException(
            message=f"Failed to {operation}",
            details={"bucket": self.bucket, "key": key},
        )

    async def get_object(self, key: str) -> StoredObject:
        """
        Open an object for streaming

        Raises:
            NotFoundException: The object or bucket does not exist
            StorageException: Any other backend failure
        """
        try:
            response = await asyncio.to_thread(self.client.get_object, self.bucket, key)
        except (MinioException, HTTPError) as e:
            self._raise_for(e, key, "read file")

        content_length = response.headers.get("Content-Length")
        logger.debug(f"Opened object: {self.bucket}/{key}")
        return StoredObject(
            stream=self._iter_response(response, key),
            content_type=response.headers.get("Content-Type") or "application/octet-stream",
            content_length=int(content_length) if content_length else None,
        )

    async def _iter_response(self, response, key: str) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(response.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        except HTTPError as e:
            logger.error(f"Stream interrupted for {self.bucket}/{key}: {e}")
            raise StorageException(
                message="Failed to read file",
                details={"bucket": self.bucket, "key": key},
            )
        finally:
            response.close()
            response.release_conn()

    async def get_presigned_url(self, key: str, expires: int) -> str:
        """Generate a presigned GET URL valid for ``expires`` seconds"""
        try:
            return await asyncio.to_thread(
                self.client.presigned_get_object,
                self.bucket,
                key,
                expires=timedelta(seconds=expires),
            )
        except (MinioException, HTTPError) as e:
            self._raise_for(e, key, "generate presigned URL")

    async def ensure_bucket(self) -> None:
        """Create the document bucket if it does not exist"""
        try:
            if not await asyncio.to_thread(self.client.bucket_exists, self.bucket):
                await asyncio.to_thread(self.client.make_bucket, self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
            else:
                logger.debug(f"Bucket exists: {self.bucket}")
        except MinioException as e:
            logger.error(f"Failed to create bucket {self.bucket}: {e}")


def get_object_storage() -> ObjectStorage:
    """Get object storage"""
    if _storage is None:
        raise AppException("MinIO client not initialized")
    return _storage


async def init_minio() -> None:
    """Initialize MinIO client and the document bucket"""
    global _storage

    try:
        logger.info(f"Connecting to MinIO at {settings.MINIO_ENDPOINT}")

        client = Minio(
            _endpoint(),
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL,
            region=settings.MINIO_REGION,
        )

        # Check connection
        await asyncio.to_thread(client.list_buckets)

        _storage = ObjectStorage(client)
        await _storage.ensure_bucket()

        logger.info("MinIO initialized successfully")

    except (MinioException, HTTPError) as e:
        logger.error(f"Failed to initialize MinIO: {e}")
        raise AppException(
            message="Failed to initialize object storage",
            details={"error": str(e)},
        )
