"""Object storage backends for rendered assets."""
import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
import structlog
import boto3
from botocore.config import Config
from ..config import get_settings

log = structlog.get_logger()

# boto3 is synchronous; uploads run here
_executor = ThreadPoolExecutor(max_workers=4)


class StorageBackend(ABC):
    """Abstract upload target."""

    name = "abstract"

    @abstractmethod
    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        """
        Store bytes under ``key``.

        Returns:
            Public URL of the stored object
        """
        pass


class MemoryStorageBackend(StorageBackend):
    """Keeps uploaded objects in a dict; URLs use the ``memory://`` scheme."""

    name = "memory"

    def __init__(self, base_url: str = "memory://assets"):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        self.objects[key] = (data, content_type)
        log.debug("storage.uploaded", backend=self.name, key=key, size=len(data))
        return f"{self.base_url}/{key}"


class S3StorageBackend(StorageBackend):
    """S3 (or S3-compatible) bucket via boto3."""

    name = "s3"

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ):
        settings = get_settings()
        self.bucket = bucket or settings.AWS_S3_BUCKET
        if not self.bucket:
            raise ValueError("AWS_S3_BUCKET must be set for the s3 storage backend")
        self.region = region or settings.AWS_REGION
        self.endpoint_url = endpoint_url or settings.S3_ENDPOINT_URL
        # Retries are owned by the caller's backoff loop
        self.client = client or boto3.client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            config=Config(retries={"max_attempts": 1, "mode": "standard"}),
        )
        log.info("storage.initialized", backend=self.name, bucket=self.bucket)

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _sync_upload(self, data: bytes, key: str, content_type: str):
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(_executor, self._sync_upload, data, key, content_type)
        url = self.public_url(key)
        log.info("storage.uploaded", backend=self.name, key=key, size=len(data))
        return url


def create_storage_backend() -> StorageBackend:
    settings = get_settings()
    if settings.STORAGE_BACKEND == "s3":
        return S3StorageBackend()
    return MemoryStorageBackend()
