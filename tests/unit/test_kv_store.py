"""
Unit tests for key-value store backends
"""
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from coursebot.core.exceptions import ConfigurationError, ContextUnavailable
from coursebot.services.kv_store import InMemoryKeyValueStore, RedisKeyValueStore, create_kv_store


class TestInMemoryKeyValueStore:
    """Tests for the in-memory backend's TTL semantics"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_get_delete(self, memory_kv):
        await memory_kv.set("k", "v", 60)
        assert await memory_kv.get("k") == "v"

        await memory_kv.delete("k")
        assert await memory_kv.get("k") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ttl_values(self, memory_kv, fake_clock):
        await memory_kv.set("expiring", "v", 60)
        await memory_kv.set("forever", "v", 0)

        fake_clock.advance(15)

        assert await memory_kv.ttl("expiring") == 45
        assert await memory_kv.ttl("forever") == -1
        assert await memory_kv.ttl("missing") == -2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_key_is_gone(self, memory_kv, fake_clock):
        await memory_kv.set("k", "v", 10)
        fake_clock.advance(10)

        assert await memory_kv.get("k") is None
        assert await memory_kv.ttl("k") == -2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_missing_key(self, memory_kv):
        await memory_kv.delete("missing")
        assert await memory_kv.ping() is True


class TestRedisKeyValueStore:
    """Tests for the Redis backend with a mocked client"""

    @pytest.fixture
    def redis_client(self):
        client = Mock()
        client.get = AsyncMock(return_value='{"history": []}')
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.ttl = AsyncMock(return_value=1799)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_operations_delegate(self, redis_client):
        store = RedisKeyValueStore(client=redis_client)

        assert await store.get("conversation:u1") == '{"history": []}'
        await store.set("conversation:u1", "{}", 1800)
        assert await store.ttl("conversation:u1") == 1799
        await store.delete("conversation:u1")

        redis_client.set.assert_awaited_once_with("conversation:u1", "{}", ex=1800)
        redis_client.delete.assert_awaited_once_with("conversation:u1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "set", "delete", "ttl"])
    async def test_connection_errors_become_unavailable(self, redis_client, operation):
        getattr(redis_client, operation).side_effect = RedisConnectionError("Connection refused")
        store = RedisKeyValueStore(client=redis_client)
        args = {"get": ("k",), "set": ("k", "v", 10), "delete": ("k",), "ttl": ("k",)}[operation]

        with pytest.raises(ContextUnavailable):
            await getattr(store, operation)(*args)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ping_failure_reports_false(self, redis_client):
        redis_client.ping.side_effect = RedisConnectionError("Connection refused")
        store = RedisKeyValueStore(client=redis_client)

        assert await store.ping() is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        store = RedisKeyValueStore(client=redis_client)

        await store.close()
        await store.close()

        redis_client.aclose.assert_awaited_once()


class TestCreateKeyValueStore:
    @pytest.mark.unit
    def test_backends(self):
        assert isinstance(create_kv_store("memory"), InMemoryKeyValueStore)
        assert isinstance(create_kv_store("Redis"), RedisKeyValueStore)

    @pytest.mark.unit
    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_kv_store("memcached")
