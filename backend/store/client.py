"""Key-value store client used by the snapshot, grid level and equity stores.

The stores only depend on the small ``KeyValueStore`` protocol below, so the
Redis-backed implementation is constructed once at startup and passed in
explicitly; tests pass an in-memory implementation instead.
"""

import logging
from typing import Protocol

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def mget(self, keys: list[str]) -> list[str | None]: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    async def delete(self, *keys: str) -> int: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hgetall_many(self, keys: list[str]) -> list[dict[str, str]]: ...

    async def hdel(self, key: str, field: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisStore:
    """``KeyValueStore`` backed by a shared ``redis.asyncio`` connection pool.

    The underlying client is safe for concurrent use by many in-flight
    coroutines, so one instance is shared by every store.
    """

    def __init__(self, redis: aioredis.Redis, scan_count: int = 500):
        self._redis = redis
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return await self._redis.mget(keys)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is None:
            await self._redis.set(key, value)
        else:
            await self._redis.setex(key, ttl_seconds, value)

    async def scan_keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large keyspaces don't block the server
        return [key async for key in self._redis.scan_iter(match=pattern, count=self._scan_count)]

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._redis.delete(*keys)

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._redis.hset(key, field, value)

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self._redis.hgetall(key)

    async def hgetall_many(self, keys: list[str]) -> list[dict[str, str]]:
        """Fetch several hashes in one round trip."""
        if not keys:
            return []
        async with self._redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.hgetall(key)
            return await pipe.execute()

    async def hdel(self, key: str, field: str) -> int:
        return await self._redis.hdel(key, field)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except aioredis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()


# Errors a store call may raise when the server is unreachable or misbehaving.
# The stores catch these and degrade to "no data" instead of propagating.
STORE_ERRORS = (aioredis.RedisError, OSError)
