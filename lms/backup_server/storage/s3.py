"""
S3 blob store for backup archives.

Works against AWS S3 and S3-compatible stores (Cloudflare R2, MinIO) via
aiobotocore. Use as an async context manager so the client is closed:

    async with S3BlobStore(s3_config) as store:
        await store.put(key, body, "application/gzip")

Invariants:
    - Listing follows pagination to the end
    - A delete response with per-key errors is a failed delete
    - No retries here; the external scheduler re-invokes the job

How to change safely:
    - Keep metadata tag names stable (operators read them in the console)
    - Test against MinIO before changing request parameters
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import S3Config
from ..errors import StorageError
from .base import MAX_DELETE_BATCH, ArchiveHandle

logger = logging.getLogger(__name__)


class S3BlobStore:
    """BlobStore backed by an S3 bucket.

    Attributes:
        s3_config: S3 configuration
    """

    def __init__(self, s3_config: S3Config, client: Any = None) -> None:
        """Initialize the store.

        Args:
            s3_config: S3Config instance
            client: Already-open S3 client (tests, shared clients)
        """
        self.s3_config = s3_config
        self._s3_client = client
        self._s3_ctx = None
        self._session = None

    async def __aenter__(self) -> S3BlobStore:
        if self._s3_client is None:
            await self._init_s3_client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _init_s3_client(self) -> None:
        """Initialize S3 client."""
        self._session = get_session()

        client_kwargs = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        self._s3_ctx = self._session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()

    async def close(self) -> None:
        """Close S3 client (only if this store opened it)."""
        if self._s3_ctx is not None:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_ctx = None
            self._s3_client = None

    @property
    def client(self) -> Any:
        if self._s3_client is None:
            raise StorageError("S3 client is not open; use 'async with S3BlobStore(...)'")
        return self._s3_client

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str,
        tags: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Upload an archive with metadata tags."""
        try:
            await self.client.put_object(
                Bucket=self.s3_config.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                Metadata=dict(tags or {}),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {key}: {e}", operation="put", key=key)

        logger.info(
            "Uploaded archive",
            extra={"bucket": self.s3_config.bucket, "key": key, "size_bytes": len(body)},
        )

    async def list(self, prefix: str) -> List[ArchiveHandle]:
        """List every object under prefix."""
        handles: List[ArchiveHandle] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.s3_config.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    if not obj.get("Key") or obj.get("LastModified") is None:
                        continue
                    handles.append(
                        ArchiveHandle(
                            key=obj["Key"],
                            size_bytes=int(obj.get("Size", 0)),
                            last_modified=obj["LastModified"],
                        )
                    )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to list {prefix}: {e}", operation="list", key=prefix)

        return handles

    async def delete_batch(self, keys: Sequence[str]) -> None:
        """Delete up to MAX_DELETE_BATCH keys in one request."""
        if not keys:
            return
        if len(keys) > MAX_DELETE_BATCH:
            raise ValueError(f"delete_batch accepts at most {MAX_DELETE_BATCH} keys, got {len(keys)}")

        try:
            response = await self.client.delete_objects(
                Bucket=self.s3_config.bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {len(keys)} objects: {e}", operation="delete")

        errors = response.get("Errors") or []
        if errors:
            failed = [err.get("Key", "") for err in errors]
            raise StorageError(
                f"Failed to delete {len(failed)} of {len(keys)} objects: "
                f"{errors[0].get('Code')} {errors[0].get('Message')}",
                operation="delete",
                failed_keys=failed,
            )

    async def get(self, key: str) -> bytes:
        """Download an archive."""
        try:
            response = await self.client.get_object(Bucket=self.s3_config.bucket, Key=key)
            return await response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {key}: {e}", operation="get", key=key)
