"""
Unit tests for the S3 blob store.

Tests cover:
- Upload parameters and metadata tags
- Paginated listing
- Batch delete with per-key errors
- Error mapping to StorageError

Uses a fake client in place of aiobotocore's S3 client.
"""

from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from lms.backup_server.config import S3Config
from lms.backup_server.errors import StorageError
from lms.backup_server.storage.s3 import S3BlobStore

MODIFIED = datetime(2024, 6, 1, tzinfo=timezone.utc)


class FakeBody:
    def __init__(self, data):
        self.data = data

    async def read(self):
        return self.data


class FakePaginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    async def _iterate(self):
        for page in self.pages:
            yield page

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return self._iterate()


class FakeS3Client:
    """Records calls the way the aiobotocore client receives them."""

    def __init__(self):
        self.put_calls = []
        self.delete_calls = []
        self.pages = []
        self.paginator = None
        self.objects = {}
        self.delete_errors = []
        self.raise_on_put = None

    async def put_object(self, **kwargs):
        if self.raise_on_put:
            raise self.raise_on_put
        self.put_calls.append(kwargs)
        self.objects[kwargs["Key"]] = kwargs["Body"]
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        self.paginator = FakePaginator(self.pages)
        return self.paginator

    async def delete_objects(self, **kwargs):
        self.delete_calls.append(kwargs)
        return {"Errors": self.delete_errors} if self.delete_errors else {}

    async def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not found"}}, "GetObject")
        return {"Body": FakeBody(self.objects[Key])}


@pytest.fixture
def client():
    return FakeS3Client()


@pytest.fixture
def store(client):
    return S3BlobStore(S3Config(bucket="lms-test"), client=client)


class TestS3BlobStore:
    """Tests for S3BlobStore."""

    @pytest.mark.asyncio
    async def test_put_sends_metadata(self, store, client):
        await store.put("backups/a.json.gz", b"data", "application/gzip", tags={"total-records": "3"})

        call = client.put_calls[0]
        assert call["Bucket"] == "lms-test"
        assert call["Key"] == "backups/a.json.gz"
        assert call["ContentType"] == "application/gzip"
        assert call["Metadata"] == {"total-records": "3"}

    @pytest.mark.asyncio
    async def test_put_error_mapped(self, store, client):
        client.raise_on_put = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")

        with pytest.raises(StorageError) as exc_info:
            await store.put("backups/a.json.gz", b"data", "application/gzip")

        assert exc_info.value.operation == "put"

    @pytest.mark.asyncio
    async def test_list_follows_pages(self, store, client):
        client.pages = [
            {"Contents": [{"Key": "backups/a", "Size": 1, "LastModified": MODIFIED}]},
            {"Contents": [{"Key": "backups/b", "Size": 2, "LastModified": MODIFIED}]},
            {},
        ]

        handles = await store.list("backups/")

        assert [h.key for h in handles] == ["backups/a", "backups/b"]
        assert handles[1].size_bytes == 2
        assert client.paginator.kwargs == {"Bucket": "lms-test", "Prefix": "backups/"}

    @pytest.mark.asyncio
    async def test_delete_batch(self, store, client):
        await store.delete_batch(["backups/a", "backups/b"])

        delete = client.delete_calls[0]["Delete"]
        assert delete["Objects"] == [{"Key": "backups/a"}, {"Key": "backups/b"}]
        assert delete["Quiet"] is True

    @pytest.mark.asyncio
    async def test_delete_empty_is_noop(self, store, client):
        await store.delete_batch([])

        assert client.delete_calls == []

    @pytest.mark.asyncio
    async def test_delete_rejects_oversized_batch(self, store):
        with pytest.raises(ValueError):
            await store.delete_batch([f"k{i}" for i in range(1001)])

    @pytest.mark.asyncio
    async def test_delete_partial_errors_raise(self, store, client):
        client.delete_errors = [{"Key": "backups/b", "Code": "AccessDenied", "Message": "no"}]

        with pytest.raises(StorageError) as exc_info:
            await store.delete_batch(["backups/a", "backups/b"])

        assert exc_info.value.failed_keys == ["backups/b"]

    @pytest.mark.asyncio
    async def test_get(self, store, client):
        client.objects["backups/a"] = b"archive"

        assert await store.get("backups/a") == b"archive"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, store):
        with pytest.raises(StorageError) as exc_info:
            await store.get("backups/missing")

        assert exc_info.value.key == "backups/missing"

    @pytest.mark.asyncio
    async def test_closed_store_raises(self):
        store = S3BlobStore(S3Config(bucket="lms-test"))

        with pytest.raises(StorageError, match="not open"):
            await store.put("k", b"", "application/gzip")

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self, store, client):
        async with store:
            pass

        assert store.client is client
