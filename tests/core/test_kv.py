"""
Tests for the key/value store backends.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from seo_ranking.core.exceptions import KVStoreError
from seo_ranking.core.kv import MemoryKVStore
from seo_ranking.core.redis import RedisKVStore


# ─────────────────────────────────────────────
# Memory Store Tests
# ─────────────────────────────────────────────

class TestMemoryKVStore:

    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        kv = MemoryKVStore()
        await kv.put("index", '[{"url": "https://a.com", "score": 1}]')

        assert await kv.get("index") == [{"url": "https://a.com", "score": 1}]
        await kv.delete("index")
        assert await kv.get("index") is None

    @pytest.mark.asyncio
    async def test_get_many_includes_missing_keys(self):
        kv = MemoryKVStore({"a": "1"})
        assert await kv.get_many(["a", "b"]) == {"a": 1, "b": None}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        kv = MemoryKVStore({"meta": "{not json"})
        with pytest.raises(KVStoreError, match="meta"):
            await kv.get("meta")

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self):
        kv = MemoryKVStore()
        await kv.delete("page:9")
        assert kv.keys() == []


# ─────────────────────────────────────────────
# Redis Store Tests
# ─────────────────────────────────────────────

class TestRedisKVStore:

    @pytest.fixture
    def redis(self) -> AsyncMock:
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_keys_are_namespaced(self, redis):
        redis.get.return_value = '{"totalEntries": 3}'
        kv = RedisKVStore(redis, namespace="seo")

        assert await kv.get("meta") == {"totalEntries": 3}
        redis.get.assert_awaited_once_with("seo:meta")

        await kv.put("page:1", "{}")
        redis.set.assert_awaited_once_with("seo:page:1", "{}")

        await kv.delete("page:2")
        redis.delete.assert_awaited_once_with("seo:page:2")

    @pytest.mark.asyncio
    async def test_get_many_maps_values_to_keys(self, redis):
        redis.mget.return_value = ['{"score": 1}', None]
        kv = RedisKVStore(redis)

        result = await kv.get_many(["entry:a", "entry:b"])
        assert result == {"entry:a": {"score": 1}, "entry:b": None}
        redis.mget.assert_awaited_once_with(["seo:entry:a", "seo:entry:b"])

    @pytest.mark.asyncio
    async def test_get_many_without_keys_skips_redis(self, redis):
        assert await RedisKVStore(redis).get_many([]) == {}
        redis.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_key(self, redis):
        redis.get.return_value = None
        assert await RedisKVStore(redis).get("index") is None

    @pytest.mark.asyncio
    async def test_redis_errors_are_wrapped(self, redis):
        redis.get.side_effect = RedisConnectionError("down")
        redis.set.side_effect = RedisConnectionError("down")
        kv = RedisKVStore(redis)

        with pytest.raises(KVStoreError, match="get"):
            await kv.get("index")
        with pytest.raises(KVStoreError, match="put"):
            await kv.put("index", "[]")
