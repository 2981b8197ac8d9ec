"""Tests for blob store implementations."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from droplets_api.exceptions import StorageError
from droplets_api.storage import LocalBlobStore, S3BlobStore, create_blob_store


def client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestLocalBlobStore:
    """Test LocalBlobStore."""

    @pytest.mark.asyncio
    async def test_put_get_round_trip(self, tmp_path):
        store = LocalBlobStore(tmp_path / "images")
        await store.startup()

        await store.put(
            "cr_abc.png", b"\x89PNGdata", content_type="image/png", cache_control="public"
        )
        blob = await store.get("cr_abc.png")

        assert blob is not None
        assert blob.body == b"\x89PNGdata"
        assert blob.content_type == "image/png"
        assert blob.cache_control == "public"
        assert blob.etag.startswith('"') and blob.etag.endswith('"')

    @pytest.mark.asyncio
    async def test_overwrite_is_idempotent(self, tmp_path):
        store = LocalBlobStore(tmp_path / "images")
        await store.startup()

        await store.put("a.png", b"one", content_type="image/png")
        first = await store.get("a.png")
        await store.put("a.png", b"one", content_type="image/png")
        second = await store.get("a.png")

        assert first.etag == second.etag

    @pytest.mark.asyncio
    async def test_missing_exists_delete(self, tmp_path):
        store = LocalBlobStore(tmp_path / "images")
        await store.startup()

        assert await store.get("nope.png") is None
        assert not await store.exists("nope.png")

        await store.put("yes.png", b"data", content_type="image/png")
        assert await store.exists("yes.png")
        await store.delete("yes.png")
        assert not await store.exists("yes.png")
        await store.delete("yes.png")

    @pytest.mark.asyncio
    async def test_rejects_path_traversal(self, tmp_path):
        store = LocalBlobStore(tmp_path / "images")
        await store.startup()

        with pytest.raises(StorageError):
            await store.put("../escape.png", b"x", content_type="image/png")

    @pytest.mark.asyncio
    async def test_health_check(self, tmp_path):
        store = LocalBlobStore(tmp_path / "images")
        assert await store.health_check() is False
        await store.startup()
        assert await store.health_check() is True


class TestS3BlobStore:
    """Test S3BlobStore with a mocked boto3 client."""

    @pytest.fixture
    def store(self) -> S3BlobStore:
        store = S3BlobStore("droplets-images", region="us-east-1")
        store.client = MagicMock()
        return store

    @pytest.mark.asyncio
    async def test_put(self, store):
        await store.put("cr_a.png", b"png", content_type="image/png", cache_control="immutable")

        store.client.put_object.assert_called_once_with(
            Bucket="droplets-images",
            Key="cr_a.png",
            Body=b"png",
            ContentType="image/png",
            CacheControl="immutable",
        )

    @pytest.mark.asyncio
    async def test_get(self, store):
        body = MagicMock()
        body.read.return_value = b"png-bytes"
        store.client.get_object.return_value = {
            "Body": body,
            "ContentType": "image/png",
            "CacheControl": "immutable",
            "ETag": '"abc"',
        }

        blob = await store.get("cr_a.png")

        assert blob.body == b"png-bytes"
        assert blob.content_type == "image/png"
        assert blob.etag == '"abc"'

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        store.client.get_object.side_effect = client_error("NoSuchKey")
        assert await store.get("cr_a.png") is None

    @pytest.mark.asyncio
    async def test_get_other_error_raises(self, store):
        store.client.get_object.side_effect = client_error("AccessDenied")
        with pytest.raises(StorageError):
            await store.get("cr_a.png")

    @pytest.mark.asyncio
    async def test_exists(self, store):
        assert await store.exists("cr_a.png") is True

        store.client.head_object.side_effect = client_error("404", "HeadObject")
        assert await store.exists("cr_a.png") is False

    @pytest.mark.asyncio
    async def test_not_started(self):
        store = S3BlobStore("bucket")
        with pytest.raises(StorageError, match="not started"):
            await store.get("key")


class TestCreateBlobStore:
    """Test create_blob_store URL parsing."""

    def test_file_url(self, tmp_path):
        store = create_blob_store(f"file://{tmp_path}/images")
        assert isinstance(store, LocalBlobStore)
        assert str(store.root) == f"{tmp_path}/images"

    def test_bare_path(self):
        store = create_blob_store("./data/images")
        assert isinstance(store, LocalBlobStore)

    def test_s3_url(self):
        store = create_blob_store(
            "s3://droplets?region=auto&endpoint=https://r2.example.com", region="us-east-1"
        )
        assert isinstance(store, S3BlobStore)
        assert store.bucket == "droplets"
        assert store.region == "auto"
        assert store.endpoint_url == "https://r2.example.com"

    def test_s3_default_region(self):
        store = create_blob_store("s3://droplets", region="eu-west-1")
        assert store.region == "eu-west-1"
        assert store.endpoint_url is None
