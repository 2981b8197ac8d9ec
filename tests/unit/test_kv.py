"""Tests for KV store implementations."""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from droplets_api.exceptions import StorageError
from droplets_api.storage import InMemoryKV, RedisKV, create_kv


class TestInMemoryKV:
    """Test InMemoryKV."""

    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        kv = InMemoryKV("test")
        await kv.put("key", "value")

        assert await kv.get("key") == "value"
        await kv.delete("key")
        assert await kv.get("key") is None

    @pytest.mark.asyncio
    async def test_json_helpers(self):
        kv = InMemoryKV("test")
        await kv.put_json("doc", {"a": [1, 2]})

        assert await kv.get_json("doc") == {"a": [1, 2]}
        assert await kv.get_json("missing") is None

    @pytest.mark.asyncio
    async def test_non_json_value_reads_as_none(self):
        kv = InMemoryKV("test")
        await kv.put("raw", "{not json")

        assert await kv.get_json("raw") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        now = [1000.0]
        kv = InMemoryKV("test", clock=lambda: now[0])
        await kv.put("key", "value", ttl=10)

        now[0] = 1009.0
        assert await kv.get("key") == "value"
        now[0] = 1010.0
        assert await kv.get("key") is None

    @pytest.mark.asyncio
    async def test_put_if_absent(self):
        """Only the first conditional write wins until the key expires."""
        now = [0.0]
        kv = InMemoryKV("test", clock=lambda: now[0])

        assert await kv.put_if_absent("slot", "first", ttl=5)
        assert not await kv.put_if_absent("slot", "second", ttl=5)
        assert await kv.get("slot") == "first"

        now[0] = 6.0
        assert await kv.put_if_absent("slot", "third")

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await InMemoryKV().health_check() is True


class TestRedisKV:
    """Test RedisKV with a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.ping.return_value = True
        return client

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, redis_client):
        kv = RedisKV("redis://localhost:6379", "creations")
        with patch("droplets_api.storage.kv.aioredis.from_url", return_value=redis_client):
            await kv.startup()

        redis_client.get.return_value = "value"
        assert await kv.get("cr_abc") == "value"
        redis_client.get.assert_called_once_with("creations:cr_abc")

        await kv.put("cr_abc", "value", ttl=60)
        redis_client.set.assert_called_once_with("creations:cr_abc", "value", ex=60)

    @pytest.mark.asyncio
    async def test_put_if_absent_uses_set_nx(self, redis_client):
        kv = RedisKV("redis://localhost:6379", "cache")
        with patch("droplets_api.storage.kv.aioredis.from_url", return_value=redis_client):
            await kv.startup()

        redis_client.set.return_value = None
        assert await kv.put_if_absent("slot", "1", ttl=30) is False
        redis_client.set.assert_called_once_with("cache:slot", "1", ex=30, nx=True)

        redis_client.set.return_value = True
        assert await kv.put_if_absent("slot", "1", ttl=30) is True

    @pytest.mark.asyncio
    async def test_startup_failure_raises_storage_error(self, redis_client):
        redis_client.ping.side_effect = RedisConnectionError("refused")
        kv = RedisKV("redis://localhost:6379", "cache")

        with patch("droplets_api.storage.kv.aioredis.from_url", return_value=redis_client):
            with pytest.raises(StorageError, match="Redis connection failed"):
                await kv.startup()

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self, redis_client):
        kv = RedisKV("redis://localhost:6379", "cache")
        with patch("droplets_api.storage.kv.aioredis.from_url", return_value=redis_client):
            await kv.startup()

        redis_client.get.side_effect = RedisConnectionError("gone")
        with pytest.raises(StorageError):
            await kv.get("key")

    @pytest.mark.asyncio
    async def test_not_started(self):
        kv = RedisKV("redis://localhost:6379", "cache")

        with pytest.raises(StorageError, match="not connected"):
            await kv.get("key")
        assert await kv.health_check() is False


def test_create_kv_selects_backend():
    assert isinstance(create_kv("cache"), InMemoryKV)
    assert isinstance(create_kv("cache", "redis://localhost:6379"), RedisKV)
