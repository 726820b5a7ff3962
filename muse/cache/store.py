"""Key-value stores with TTL support backing every cache tier.

Caches never hold module-level state: a store instance is injected so that
several processes can share one Redis, and tests can pass a ``MemoryStore``.
"""

import asyncio
import fnmatch
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from loguru import logger


class KeyValueStore(ABC):
    """JSON value store with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a JSON-serializable value, expiring after ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob pattern."""

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern."""
        found = await self.keys(pattern)
        if not found:
            return 0
        return await self.delete(*found)

    async def close(self) -> None:
        """Release any held connections."""


class MemoryStore(KeyValueStore):
    """In-process store with TTL support.

    Values are round-tripped through JSON so callers observe the same
    semantics as with Redis (no shared mutable references).
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return None
            return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._data[key] = (raw, expires_at)

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            count = 0
            for key in keys:
                if self._data.pop(key, None) is not None:
                    count += 1
            return count

    async def keys(self, pattern: str) -> list[str]:
        async with self._lock:
            live = []
            for key, (_, expires_at) in list(self._data.items()):
                if self._expired(expires_at):
                    del self._data[key]
                    continue
                if fnmatch.fnmatchcase(key, pattern):
                    live.append(key)
            return live


class RedisStore(KeyValueStore):
    """Redis-backed store shared across process instances."""

    def __init__(self, url: str = "redis://localhost:6379/0", client: Any = None):
        if client is None:
            from redis.asyncio import Redis

            client = Redis.from_url(url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        await self._client.set(key, raw, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()


def create_store(backend: str = "memory", redis_url: str | None = None) -> KeyValueStore:
    """Build the configured store backend."""
    if backend == "redis":
        logger.info("Cache store using Redis backend")
        return RedisStore(redis_url or "redis://localhost:6379/0")
    logger.info("Cache store using in-memory backend")
    return MemoryStore()
