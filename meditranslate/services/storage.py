"""Audio blob stores.

Amazon S3 is used in deployments; the local directory store backs
development setups where the API serves the files itself.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

import boto3
import botocore.config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ServiceUnavailable, UploadFailed

logger = logging.getLogger(__name__)

AUDIO_EXTENSION = "webm"


def audio_key(conversation_id: str, now_ms: Optional[int] = None) -> str:
    """Key for a new recording: ``{conversation_id}/{epoch-ms}-{random}.webm``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{conversation_id}/{now_ms}-{uuid.uuid4().hex[:12]}.{AUDIO_EXTENSION}"


class LocalBlobStore:
    """Write blobs below a directory and address them under ``base_url``."""

    def __init__(self, root: str, base_url: str = "/audio") -> None:
        self.root = Path(root).expanduser().resolve()
        self.base_url = base_url.rstrip("/")

    def _write(self, key: str, data: bytes) -> Path:
        target = (self.root / key).resolve()
        if self.root not in target.parents:
            raise UploadFailed(f"Refusing to write outside the audio directory: {key}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            path = await asyncio.to_thread(self._write, key, data)
        except OSError as exc:
            raise UploadFailed(f"Audio upload failed: {exc}") from exc
        logger.info("Stored %d bytes of %s at %s", len(data), content_type, path)
        return f"{self.base_url}/{key}"


class S3BlobStore:
    """Upload blobs to an S3 bucket and hand out their public object URL."""

    def __init__(
        self,
        bucket: Optional[str],
        region: str = "us-east-1",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        timeout: float = 60.0,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region = region
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.public_base_url = (
            public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com"
        ).rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if not self.bucket:
            raise ServiceUnavailable(
                "No S3 bucket is configured; audio upload is unavailable.",
                step="audio_upload",
            )
        if self._client is None:
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=self.region,
                config=botocore.config.Config(
                    signature_version="s3v4",
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 1},
                ),
            )
        return self._client

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=3600",
            )
        except (BotoCoreError, ClientError) as exc:
            raise UploadFailed(f"Audio upload failed: {exc}") from exc
        logger.info("Uploaded %d bytes to s3://%s/%s", len(data), self.bucket, key)
        return f"{self.public_base_url}/{key}"
