"""
Key-value stores for best-effort client-side caches.

The account limits snapshot lives under a single string key. Production uses
Redis; server contexts without storage get the null store. Every store is
allowed to fail: callers treat errors as a cache miss.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from smartzap.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


class KeyValueStore(ABC):
    """Abstract string key-value store. Any method may raise."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class RedisKeyValueStore(KeyValueStore):
    """Store backed by the shared Redis connection."""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        redis = await get_redis()
        return await redis.get(key)

    async def set(self, key: str, value: str) -> None:
        redis = await get_redis()
        if self.ttl_seconds:
            await redis.set(key, value, ex=self.ttl_seconds)
        else:
            await redis.set(key, value)

    async def delete(self, key: str) -> None:
        redis = await get_redis()
        await redis.delete(key)


class MemoryKeyValueStore(KeyValueStore):
    """Per-process dict store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class NullKeyValueStore(KeyValueStore):
    """No storage available: reads miss, writes vanish."""

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None
