"""
MinIO Storage Service.

Stores the persisted media index in MinIO (S3-compatible) object storage.
The minio SDK is synchronous; every call runs in the default executor so the
build pipeline never blocks the event loop.
"""

import asyncio
import logging
from functools import partial
from io import BytesIO
from typing import Any, Callable, Optional

from minio import Minio
from minio.error import S3Error

from media_insights.config import settings
from media_insights.core.shared.config_loader import config_loader
from media_insights.core.storage.object_store import ObjectStat, ObjectStore

logger = logging.getLogger("media_insights.minio")

_MISSING_CODES = {"NoSuchKey", "NoSuchObject", "NoSuchBucket"}


class MinIOService(ObjectStore):
    """
    MinIO-backed object store.

    Configuration Sources (priority order):
        1. Constructor arguments
        2. config.yml (if present) via config_loader.get_minio_config()
        3. Environment variables via settings
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: Optional[bool] = None,
        bucket: Optional[str] = None,
        client: Optional[Minio] = None,
    ):
        self._client: Optional[Minio] = client
        self._bucket_ready = False
        self._load_config()

        self.endpoint = endpoint or self.endpoint
        self.access_key = access_key or self.access_key
        self.secret_key = secret_key or self.secret_key
        self.secure = self.secure if secure is None else secure
        self.bucket = bucket or self.bucket

    def _load_config(self):
        """Load MinIO configuration from config.yml or environment variables."""
        minio_config = config_loader.get_minio_config()

        if minio_config:
            logger.info("Loading MinIO configuration from config.yml")
            self.endpoint = minio_config.endpoint
            self.access_key = minio_config.access_key
            self.secret_key = minio_config.secret_key
            self.secure = minio_config.secure
            self.bucket = minio_config.bucket
        else:
            logger.debug("Loading MinIO configuration from environment variables")
            self.endpoint = settings.minio_endpoint
            self.access_key = settings.minio_access_key
            self.secret_key = settings.minio_secret_key
            self.secure = settings.minio_secure
            self.bucket = settings.minio_bucket

    @property
    def client(self) -> Minio:
        """Get or create MinIO client (lazy initialization)."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
            )
            logger.info(
                f"MinIO client initialized (endpoint={self.endpoint}, "
                f"secure={self.secure})"
            )
        return self._client

    async def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args, **kwargs))

    def ensure_bucket(self) -> bool:
        """
        Create the index bucket if it doesn't exist.

        Returns:
            True if bucket was created, False if it already existed
        """
        if self._bucket_ready:
            return False
        try:
            created = False
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
                created = True
            self._bucket_ready = True
            return created
        except S3Error as e:
            logger.error(f"Failed to create bucket {self.bucket}: {e}")
            raise

    # =========================================================================
    # OBJECT OPERATIONS
    # =========================================================================

    def _get_object_sync(self, key: str) -> Optional[bytes]:
        response = None
        try:
            response = self.client.get_object(self.bucket, key)
            return response.read()
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return None
            raise
        finally:
            if response:
                response.close()
                response.release_conn()

    def _put_object_sync(self, key: str, data: bytes, content_type: str) -> None:
        self.ensure_bucket()
        self.client.put_object(
            bucket_name=self.bucket,
            object_name=key,
            data=BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        logger.debug(f"Uploaded object {self.bucket}/{key} ({len(data)} bytes)")

    def _delete_object_sync(self, key: str) -> bool:
        try:
            self.client.remove_object(self.bucket, key)
            logger.debug(f"Deleted object {self.bucket}/{key}")
            return True
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return True
            raise

    def _stat_object_sync(self, key: str) -> Optional[ObjectStat]:
        try:
            stat = self.client.stat_object(self.bucket, key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                return None
            raise
        last_modified = None
        if stat.last_modified is not None:
            last_modified = int(stat.last_modified.timestamp() * 1000)
        return ObjectStat(key=key, size=stat.size or 0, last_modified=last_modified)

    async def get_object(self, key: str) -> Optional[bytes]:
        return await self._run(self._get_object_sync, key)

    async def put_object(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        await self._run(self._put_object_sync, key, data, content_type)

    async def delete_object(self, key: str) -> bool:
        return await self._run(self._delete_object_sync, key)

    async def stat_object(self, key: str) -> Optional[ObjectStat]:
        return await self._run(self._stat_object_sync, key)
