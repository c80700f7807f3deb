import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict
from urllib.parse import urlparse

from minio import Minio

from mealmind.core.config import Settings
from mealmind.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class ObjectStorageClient(ABC):
    """Blob storage used for meal photos. Implementations must be safe to share across requests."""

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Store bytes under key. Raises StorageError on failure."""

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Remove the object under key. Raises StorageError on failure."""

    @abstractmethod
    def presign_get(self, key: str, ttl_seconds: int) -> str:
        """Return a time-limited read URL for key. Raises StorageError on failure."""


class MinioObjectStorage(ObjectStorageClient):
    """S3-compatible storage backed by the MinIO SDK."""

    def __init__(
        self,
        bucket_name: str,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        ensure_bucket: bool = True,
    ) -> None:
        # The SDK wants host:port; the scheme decides TLS
        parsed = urlparse(endpoint if "://" in endpoint else f"https://{endpoint}")
        self.client = Minio(
            endpoint=parsed.netloc,
            access_key=access_key,
            secret_key=secret_key,
            secure=parsed.scheme == "https",
            region=region,
        )
        self.bucket_name = bucket_name
        if ensure_bucket:
            self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        try:
            if not self.client.bucket_exists(bucket_name=self.bucket_name):
                self.client.make_bucket(bucket_name=self.bucket_name)
                logger.info("Created bucket %s", self.bucket_name)
        except Exception as e:
            raise StorageError(f"bucket check failed for {self.bucket_name}") from e

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        try:
            # The SDK reads from a stream and needs the exact length up front
            self.client.put_object(
                bucket_name=self.bucket_name,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except Exception as e:
            raise StorageError(f"put_object {key}") from e

    def delete_object(self, key: str) -> None:
        try:
            self.client.remove_object(bucket_name=self.bucket_name, object_name=key)
        except Exception as e:
            raise StorageError(f"delete_object {key}") from e

    def presign_get(self, key: str, ttl_seconds: int) -> str:
        try:
            return self.client.presigned_get_object(
                bucket_name=self.bucket_name,
                object_name=key,
                expires=timedelta(seconds=ttl_seconds),
            )
        except Exception as e:
            raise StorageError(f"presign {key}") from e


@dataclass(frozen=True)
class StoredObject:
    key: str
    data: bytes
    content_type: str


class InMemoryObjectStorage(ObjectStorageClient):
    """Process-local storage for development and tests. Presigned URLs are not fetchable."""

    def __init__(self, bucket_name: str = "mealmind") -> None:
        self.bucket_name = bucket_name
        self.objects: Dict[str, StoredObject] = {}

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = StoredObject(key=key, data=bytes(data), content_type=content_type)

    def delete_object(self, key: str) -> None:
        if self.objects.pop(key, None) is None:
            raise StorageError(f"delete_object {key}: no such key")

    def presign_get(self, key: str, ttl_seconds: int) -> str:
        return f"memory://{self.bucket_name}/{key}?expires={ttl_seconds}"


def build_storage(config: Settings) -> ObjectStorageClient:
    """Pick the storage backend named by STORAGE_BACKEND."""
    # Case-insensitive so MINIO and minio both work
    backend = config.STORAGE_BACKEND.lower()
    if backend == "minio":
        return MinioObjectStorage(
            config.MINIO_BUCKET,
            endpoint=config.MINIO_ENDPOINT,
            access_key=config.MINIO_ACCESS_KEY,
            secret_key=config.MINIO_SECRET_KEY,
            region=config.MINIO_REGION,
        )
    if backend == "memory":
        logger.warning("Using in-memory object storage; photos are lost on restart")
        return InMemoryObjectStorage(config.MINIO_BUCKET)
    raise ValueError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")
