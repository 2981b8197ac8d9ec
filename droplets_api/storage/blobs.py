"""Blob storage implementations for creation images."""

import asyncio
import hashlib
import json
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from loguru import logger

from ..exceptions import StorageError
from .protocols import BlobObject


class LocalBlobStore:
    """Filesystem blob store. Metadata lives next to each object in a ``.meta`` file."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    async def startup(self) -> None:
        """Create the storage directory."""
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local blob store at {self.root.resolve()}")

    async def shutdown(self) -> None:
        """No cleanup needed."""
        pass

    def _path(self, key: str) -> Path:
        if "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid blob key: {key!r}")
        return self.root / key

    def _write(self, key: str, data: bytes, content_type: str, cache_control: str | None) -> None:
        path = self._path(key)
        meta = {
            "content_type": content_type,
            "cache_control": cache_control,
            "etag": f'"{hashlib.md5(data).hexdigest()}"',  # noqa: S324 - content fingerprint
        }
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        path.with_suffix(path.suffix + ".meta").write_text(json.dumps(meta))

    def _read(self, key: str) -> BlobObject | None:
        path = self._path(key)
        if not path.exists():
            return None
        meta_path = path.with_suffix(path.suffix + ".meta")
        meta = json.loads(meta_path.read_text()) if meta_path.exists() else {}
        body = path.read_bytes()
        return BlobObject(
            key=key,
            body=body,
            content_type=meta.get("content_type", "application/octet-stream"),
            cache_control=meta.get("cache_control"),
            etag=meta.get("etag") or f'"{hashlib.md5(body).hexdigest()}"',  # noqa: S324
        )

    def _remove(self, key: str) -> None:
        path = self._path(key)
        path.unlink(missing_ok=True)
        path.with_suffix(path.suffix + ".meta").unlink(missing_ok=True)

    async def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, key, data, content_type, cache_control)
        except OSError as e:
            raise StorageError(f"Failed to write blob {key}: {e}") from e

    async def get(self, key: str) -> BlobObject | None:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._read, key)
        except OSError as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e

    async def exists(self, key: str) -> bool:
        return self._path(key).exists()

    async def delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._remove, key)

    async def health_check(self) -> bool:
        return self.root.is_dir()


class S3BlobStore:
    """S3 (or any S3-compatible service such as R2) blob store using boto3."""

    def __init__(self, bucket: str, region: str | None = None, endpoint_url: str | None = None):
        """Initialize S3 blob store.

        Args:
            bucket: Bucket name.
            region: AWS region.
            endpoint_url: Custom endpoint for S3-compatible services.
        """
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = None

    async def startup(self) -> None:
        """Initialize the boto3 client."""
        import boto3

        self.client = boto3.client("s3", region_name=self.region, endpoint_url=self.endpoint_url)
        logger.info(f"S3 blob store using bucket: {self.bucket}")

    async def shutdown(self) -> None:
        """No cleanup needed for S3."""
        pass

    async def _run(self, method: str, **kwargs):
        if self.client is None:
            raise StorageError("S3 blob store is not started")
        func = getattr(self.client, method)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(**kwargs))

    @staticmethod
    def _is_missing(error: Exception) -> bool:
        response = getattr(error, "response", None) or {}
        code = str(response.get("Error", {}).get("Code", ""))
        return code in ("404", "NoSuchKey", "NotFound")

    async def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
    ) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        params = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        if cache_control:
            params["CacheControl"] = cache_control
        try:
            await self._run("put_object", **params)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload blob {key}: {e}") from e

    async def get(self, key: str) -> BlobObject | None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = await self._run("get_object", Bucket=self.bucket, Key=key)
            body = await asyncio.get_running_loop().run_in_executor(None, response["Body"].read)
        except ClientError as e:
            if self._is_missing(e):
                return None
            raise StorageError(f"Failed to download blob {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to download blob {key}: {e}") from e

        return BlobObject(
            key=key,
            body=body,
            content_type=response.get("ContentType", "application/octet-stream"),
            cache_control=response.get("CacheControl"),
            etag=response.get("ETag", ""),
        )

    async def exists(self, key: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            await self._run("head_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise StorageError(f"Failed to check blob {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check blob {key}: {e}") from e
        return True

    async def delete(self, key: str) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            await self._run("delete_object", Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

    async def health_check(self) -> bool:
        try:
            await self._run("head_bucket", Bucket=self.bucket)
            return True
        except Exception as e:  # noqa: BLE001
            logger.error(f"S3 health check failed: {e}")
            return False


def create_blob_store(blob_url: str, region: str | None = None) -> LocalBlobStore | S3BlobStore:
    """Create blob store from a URL.

    Args:
        blob_url: ``s3://bucket?region=...&endpoint=...`` or ``file://path`` (a bare path also works).
        region: Default region when the URL does not name one.

    Returns:
        Blob store instance.
    """
    parsed = urlparse(blob_url)

    if parsed.scheme == "s3":
        query = parse_qs(parsed.query)
        bucket = parsed.netloc or parsed.path.lstrip("/")
        logger.info(f"Creating S3 blob store for bucket {bucket}")
        return S3BlobStore(
            bucket,
            region=query.get("region", [region])[0],
            endpoint_url=query.get("endpoint", [None])[0],
        )

    path = parsed.netloc + parsed.path if parsed.scheme == "file" else blob_url
    logger.info(f"Creating local blob store at {path}")
    return LocalBlobStore(path)
