"""
Redis client factory with connection pooling, and the Redis-backed KV store.
"""

from collections.abc import Sequence
from typing import Annotated, Any

import redis.asyncio as aioredis
import structlog
from fastapi import Depends
from redis.exceptions import RedisError

from seo_ranking.core.config import get_settings
from seo_ranking.core.exceptions import KVStoreError
from seo_ranking.core.kv import KVStore, MemoryKVStore, decode_json

logger = structlog.get_logger(__name__)
settings = get_settings()

_redis_pool: aioredis.ConnectionPool | None = None
_memory_store: MemoryKVStore | None = None


def _get_pool() -> aioredis.ConnectionPool:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.REDIS_DSN),
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=5.0,
            retry_on_timeout=True,
            health_check_interval=30,
            decode_responses=True,
        )
    return _redis_pool


async def get_redis_client() -> aioredis.Redis:
    """Get a Redis client from the connection pool."""
    return aioredis.Redis(connection_pool=_get_pool())


async def close_redis_pool() -> None:
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


class RedisKVStore(KVStore):
    """KV store on Redis strings, with namespaced keys and no TTL."""

    def __init__(self, redis: aioredis.Redis, namespace: str = "seo"):
        self.redis = redis
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(self._key(key))
        except RedisError as exc:
            raise KVStoreError("get", key, str(exc)) from exc
        return decode_json(key, raw)

    async def get_many(self, keys: Sequence[str]) -> dict[str, Any | None]:
        if not keys:
            return {}
        try:
            values = await self.redis.mget([self._key(k) for k in keys])
        except RedisError as exc:
            raise KVStoreError("mget", ",".join(keys[:5]), str(exc)) from exc
        return {key: decode_json(key, raw) for key, raw in zip(keys, values)}

    async def put(self, key: str, value: str) -> None:
        try:
            await self.redis.set(self._key(key), value)
        except RedisError as exc:
            raise KVStoreError("put", key, str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as exc:
            raise KVStoreError("delete", key, str(exc)) from exc


async def get_kv_store() -> KVStore:
    """FastAPI dependency for the configured KV backend."""
    global _memory_store
    if settings.KV_BACKEND == "memory":
        if _memory_store is None:
            _memory_store = MemoryKVStore()
        return _memory_store
    return RedisKVStore(await get_redis_client(), namespace=settings.KV_NAMESPACE)


KVStoreDep = Annotated[KVStore, Depends(get_kv_store)]
