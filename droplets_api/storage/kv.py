"""Key-value store implementations."""

import json
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis
from loguru import logger
from redis.exceptions import RedisError

from ..exceptions import StorageError


class BaseKV:
    """JSON helpers shared by the KV implementations."""

    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        raise NotImplementedError

    async def get_json(self, key: str) -> Any | None:
        """Get value decoded from JSON.

        Args:
            key: Key to read.

        Returns:
            Decoded value, or None when missing or not valid JSON.
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding non-JSON value under key {key}")
            return None

    async def put_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store value encoded as JSON."""
        await self.put(key, json.dumps(value), ttl)


class InMemoryKV(BaseKV):
    """In-memory KV store for development, tests and single-process deployments.

    ``put_if_absent`` never awaits between the check and the write, so it is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, namespace: str = "default", clock: Callable[[], float] = time.time) -> None:
        self.namespace = namespace
        self.clock = clock
        self.data: dict[str, tuple[str, float | None]] = {}

    async def startup(self) -> None:
        """No initialization needed."""
        logger.info(f"In-memory KV namespace '{self.namespace}' ready")

    async def shutdown(self) -> None:
        """No cleanup needed."""
        pass

    def _live(self, key: str) -> str | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    def _expiry(self, ttl: int | None) -> float | None:
        return self.clock() + ttl if ttl else None

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        self.data[key] = (value, self._expiry(ttl))

    async def put_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        if self._live(key) is not None:
            return False
        self.data[key] = (value, self._expiry(ttl))
        return True

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def health_check(self) -> bool:
        """Health check always returns True for in-memory."""
        return True


class RedisKV(BaseKV):
    """Redis-backed KV namespace. Keys are prefixed with the namespace name."""

    def __init__(self, redis_url: str, namespace: str) -> None:
        """Initialize Redis KV.

        Args:
            redis_url: Redis connection URL.
            namespace: Prefix separating this namespace from others on the same server.
        """
        self.redis_url = redis_url
        self.namespace = namespace
        self.redis = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def startup(self) -> None:
        """Initialize Redis connection."""
        try:
            self.redis = aioredis.from_url(self.redis_url, decode_responses=True)
            await self.redis.ping()
            logger.info(f"Redis KV namespace '{self.namespace}' connected")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(f"Redis connection failed for namespace '{self.namespace}': {e}")
            raise StorageError(f"Redis connection failed: {e}") from e

    async def shutdown(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()

    def _client(self):
        if self.redis is None:
            raise StorageError(f"Redis KV namespace '{self.namespace}' is not connected")
        return self.redis

    async def get(self, key: str) -> str | None:
        try:
            return await self._client().get(self._key(key))
        except RedisError as e:
            raise StorageError(f"KV get failed for {key}: {e}") from e

    async def put(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            await self._client().set(self._key(key), value, ex=ttl or None)
        except RedisError as e:
            raise StorageError(f"KV put failed for {key}: {e}") from e

    async def put_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Store value with SET NX, which Redis applies atomically."""
        try:
            stored = await self._client().set(self._key(key), value, ex=ttl or None, nx=True)
        except RedisError as e:
            raise StorageError(f"KV conditional put failed for {key}: {e}") from e
        return bool(stored)

    async def delete(self, key: str) -> None:
        try:
            await self._client().delete(self._key(key))
        except RedisError as e:
            raise StorageError(f"KV delete failed for {key}: {e}") from e

    async def health_check(self) -> bool:
        if not self.redis:
            return False
        try:
            return bool(await self.redis.ping())
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Redis health check failed: {e}")
            return False
