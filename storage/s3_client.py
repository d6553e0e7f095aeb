from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from settings.config import Settings, settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects or fails a request."""


def build_object_path(user_id: uuid.UUID | str, filename: str) -> str:
    """
    Namespaced, collision-free key for an uploaded file: `<userId>/<uuid>.<ext>`.
    """
    _, ext = os.path.splitext(filename or "")
    ext = ext.lower().lstrip(".")
    name = uuid.uuid4().hex
    return f"{user_id}/{name}.{ext}" if ext else f"{user_id}/{name}"


class S3Client:
    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        region: Optional[str] = None,
        public_url: Optional[str] = None,
    ):
        self.endpoint_url = endpoint_url
        self.region = region or settings.STORAGE_REGION
        self.public_url = (public_url or endpoint_url).rstrip("/")
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._session = aioboto3.Session()

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "S3Client":
        missing = [
            name
            for name in ("STORAGE_ENDPOINT_URL", "STORAGE_ACCESS_KEY_ID", "STORAGE_SECRET_ACCESS_KEY")
            if not getattr(cfg, name)
        ]
        if missing:
            raise RuntimeError(f"Object storage is not configured; missing {', '.join(missing)}")
        return cls(
            endpoint_url=cfg.STORAGE_ENDPOINT_URL,  # type: ignore[arg-type]
            access_key_id=cfg.STORAGE_ACCESS_KEY_ID,  # type: ignore[arg-type]
            secret_access_key=cfg.STORAGE_SECRET_ACCESS_KEY,  # type: ignore[arg-type]
            region=cfg.STORAGE_REGION,
            public_url=cfg.STORAGE_PUBLIC_URL,
        )

    def _client(self):
        return self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            region_name=self.region,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
        )

    def object_url(self, bucket: str, key: str) -> str:
        return f"{self.public_url}/{bucket}/{key}"

    def parse_object_url(self, url: str) -> Optional[tuple[str, str]]:
        """
        Map a URL produced by `object_url` (or an `s3://bucket/key` URI) back to (bucket, key).
        Returns None for URLs that do not point at this store.
        """
        if url.startswith("s3://"):
            bucket, _, key = url[len("s3://"):].partition("/")
            return (bucket, key) if bucket and key else None
        prefix = self.public_url + "/"
        if not url.startswith(prefix):
            return None
        bucket, _, key = url[len(prefix):].partition("/")
        return (bucket, key) if bucket and key else None

    async def upload_bytes(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        """Write an object (overwriting any existing key) and return its URL."""
        try:
            async with self._client() as s3:
                await s3.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error uploading {bucket}/{key}: {e}")
            raise StorageError(f"Error uploading file to storage: {e}") from e
        logger.info(f"Uploaded {len(data)} bytes to {bucket}/{key}")
        return self.object_url(bucket, key)

    async def get_bytes(self, bucket: str, key: str) -> bytes:
        try:
            async with self._client() as s3:
                obj = await s3.get_object(Bucket=bucket, Key=key)
                async with obj["Body"] as stream:
                    return await stream.read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Error downloading {bucket}/{key} from storage: {e}") from e

    async def ensure_bucket(self, bucket: str) -> bool:
        """Create the bucket when missing. Returns True when it was created."""
        try:
            async with self._client() as s3:
                try:
                    await s3.head_bucket(Bucket=bucket)
                    return False
                except ClientError as e:
                    code = str(e.response.get("Error", {}).get("Code", ""))
                    if code not in ("404", "NoSuchBucket", "NotFound"):
                        raise
                await s3.create_bucket(Bucket=bucket)
                return True
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Error creating bucket '{bucket}': {e}") from e

