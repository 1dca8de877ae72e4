"""
S3 storage provider.

Objects are stored under the server-built ref as key:
    s3://<BUCKET>/users/<owner_id>/documents/<document_id>/<filename>

Credentials come from the environment (IAM role in production,
AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY in local dev).
"""

from __future__ import annotations

import logging
from uuid import UUID

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from paperfix.core.config import settings
from paperfix.core.exceptions import StorageReadError
from paperfix.storage.base import StorageProvider, StoredFile, build_ref

logger = logging.getLogger(__name__)


class S3Storage(StorageProvider):

    def __init__(self, bucket: str | None = None, region: str | None = None) -> None:
        self._bucket = bucket or settings.s3_bucket
        self._region = region or settings.aws_region
        self._session = aioboto3.Session()

    @property
    def backend_name(self) -> str:
        return "s3"

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    async def write(
        self,
        owner_id:     UUID,
        document_id:  UUID,
        filename:     str,
        data:         bytes,
        content_type: str,
    ) -> StoredFile:
        key = build_ref(owner_id, document_id, filename)
        async with self._client() as s3:
            await s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
                Metadata={
                    "owner_id":    str(owner_id),
                    "document_id": str(document_id),
                },
            )

        logger.info("S3 upload ok | bucket=%s key=%s size=%d", self._bucket, key, len(data))
        return StoredFile(ref=key, size_bytes=len(data), content_type=content_type)

    async def read(self, ref: str) -> bytes:
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=ref)
                return await resp["Body"].read()
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise StorageReadError(f"Stored file not found: {ref}") from exc
                raise StorageReadError(f"Could not read stored file {ref}: {code}") from exc
            except BotoCoreError as exc:
                raise StorageReadError(f"Could not read stored file {ref}: {exc}") from exc
