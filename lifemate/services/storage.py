# lifemate/services/storage.py
import asyncio
import logging
import re
from dataclasses import dataclass
from functools import partial
from pathlib import Path

import aiofiles
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from lifemate.core.config import Settings

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_.-]")


class StorageError(Exception):
    pass


@dataclass(frozen=True)
class StoredObject:
    id: str
    url: str
    size: int


def safe_name(name: str) -> str:
    return _UNSAFE_NAME.sub("_", name or "file")


class BlobStorage:
    """
    S3-compatible object storage (AWS, Cloudflare R2, MinIO).

    Without an endpoint and credentials, objects are written under
    LOCAL_UPLOAD_DIR instead; ids of local objects start with "local:".
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.bucket = settings.S3_BUCKET
        self.local_dir = Path(settings.LOCAL_UPLOAD_DIR)
        self._client = None

    def _get_s3_client(self):
        """
        Return a boto3 S3 client, or None when S3 is not configured.
        """
        s = self.settings
        if not s.S3_ENDPOINT or not s.S3_ACCESS_KEY or not s.S3_SECRET_KEY or not self.bucket:
            return None
        if self._client is None:
            # s3v4 signatures work for R2 and MinIO
            self._client = boto3.client(
                "s3",
                endpoint_url=str(s.S3_ENDPOINT),
                aws_access_key_id=s.S3_ACCESS_KEY,
                aws_secret_access_key=s.S3_SECRET_KEY,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=s.S3_TIMEOUT_SECONDS,
                    read_timeout=s.S3_TIMEOUT_SECONDS,
                    retries={"max_attempts": 2},
                ),
                region_name=(s.S3_REGION or None),
            )
        return self._client

    def _object_url(self, client, key: str) -> str:
        base = self.settings.S3_PUBLIC_BASE_URL
        if base:
            return f"{base.rstrip('/')}/{key}"
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.settings.S3_PRESIGN_EXPIRES_SECONDS,
        )

    def _put_blocking(self, client, key: str, data: bytes, mime_type: str) -> str:
        client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=mime_type)
        return self._object_url(client, key)

    async def upload(
        self, data: bytes, name: str, folder: str = "", mime_type: str = "application/octet-stream"
    ) -> StoredObject:
        """Store `data` and return its id and URL. Raises StorageError on failure."""
        key = "/".join(p.strip("/") for p in (folder, safe_name(name)) if p)

        s3 = self._get_s3_client()
        if s3 is not None:
            loop = asyncio.get_running_loop()
            try:
                url = await loop.run_in_executor(None, partial(self._put_blocking, s3, key, data, mime_type))
            except (BotoCoreError, ClientError) as exc:
                logger.error("S3 upload of %s failed: %r", key, exc)
                raise StorageError(f"Failed to upload {name}") from exc
            logger.info("Uploaded %s (%d bytes) to bucket %s", key, len(data), self.bucket)
            return StoredObject(id=key, url=url, size=len(data))

        # Fallback: local filesystem
        local_path = self.local_dir / key
        local_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(local_path, "wb") as out:
            await out.write(data)
        logger.info("Stored %s locally at %s", name, local_path)
        return StoredObject(id=f"local:{key}", url=f"file://{local_path.resolve()}", size=len(data))

    async def delete(self, object_id: str) -> None:
        """Remove a stored object. Missing objects are not an error."""
        if not object_id:
            return
        if object_id.startswith("local:"):
            path = self.local_dir / object_id[len("local:"):]
            path.unlink(missing_ok=True)
            return

        s3 = self._get_s3_client()
        if s3 is None:
            raise StorageError("S3 is not configured; cannot delete remote object")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, partial(s3.delete_object, Bucket=self.bucket, Key=object_id))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return
            raise StorageError(f"Failed to delete {object_id}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete {object_id}") from exc
