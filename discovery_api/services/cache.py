"""
Cache backends: in-memory with TTL (local runs, tests) and Redis.

Values are opaque strings; CacheLayer handles JSON. Redis errors are raised as
CacheUnavailable and CacheLayer treats them as misses.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from discovery.errors import CacheUnavailable

logger = logging.getLogger(__name__)


class InMemoryCacheBackend:
    """Dict-backed cache; expired keys are dropped lazily on access."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left for key (None when absent or without expiry)."""
        entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()


class RedisCacheBackend:
    """CacheBackend over redis.asyncio; key listing uses SCAN, never KEYS."""

    SCAN_COUNT = 100

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self._client = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.warning("[redis] PING_FAILED url=%s error=%s", self.redis_url, e)
            return False

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheUnavailable(str(e)) from e

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds or None)
        except RedisError as e:
            raise CacheUnavailable(str(e)) from e

    async def delete(self, key: str) -> bool:
        try:
            return await self._client.delete(key) > 0
        except RedisError as e:
            raise CacheUnavailable(str(e)) from e

    async def list_keys(self, prefix: str = "") -> List[str]:
        try:
            return [key async for key in self._client.scan_iter(match=f"{prefix}*", count=self.SCAN_COUNT)]
        except RedisError as e:
            raise CacheUnavailable(str(e)) from e

    async def close(self) -> None:
        await self._client.aclose()
