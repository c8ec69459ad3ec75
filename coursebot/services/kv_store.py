"""
Key-value persistence used by the conversation context store.

Values are JSON strings. Every write carries a TTL in seconds. ``ttl`` follows
Redis semantics: -2 when the key does not exist, -1 when it has no expiry.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from coursebot.core.config import settings
from coursebot.core.exceptions import ConfigurationError, ContextUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal async key-value contract"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; connection failures surface as ContextUnavailable"""

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.url = url or settings.redis_url
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout,
                socket_connect_timeout=settings.redis_socket_timeout,
            )
        return self._client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except (RedisError, OSError) as e:
            raise ContextUnavailable(f"Redis GET {key} failed: {e}") from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise ContextUnavailable(f"Redis SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except (RedisError, OSError) as e:
            raise ContextUnavailable(f"Redis DEL {key} failed: {e}") from e

    async def ttl(self, key: str) -> int:
        try:
            return int(await self.client.ttl(key))
        except (RedisError, OSError) as e:
            raise ContextUnavailable(f"Redis TTL {key} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store with TTL expiry, for development and tests"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds and ttl_seconds > 0 else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(0, int(round(entry[1] - self._clock())))


def create_kv_store(backend: Optional[str] = None) -> KeyValueStore:
    """Build the store selected by settings.kv_backend"""
    backend = (backend or settings.kv_backend).lower()
    if backend == "redis":
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore()
    if backend == "memory":
        logger.info("Using in-memory key-value store")
        return InMemoryKeyValueStore()
    raise ConfigurationError(f"Unknown kv_backend '{backend}' (expected 'redis' or 'memory')")
