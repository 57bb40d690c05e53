"""Key-value store abstraction (get / set-with-TTL / delete).

The in-memory implementation and the Redis-backed one are interchangeable; the
persona tracker, conversation store, metrics tracker and completion cache are
all written against :class:`KeyValueStore`.
"""

from __future__ import annotations

import fnmatch
import time
from typing import Callable, Protocol, runtime_checkable

import redis.asyncio as redis

__all__ = ["KeyValueStore", "InMemoryKeyValueStore", "RedisKeyValueStore"]


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self, pattern: str = "*") -> list[str]: ...


class InMemoryKeyValueStore:
    """Process-local store with lazy expiry on a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return False
        return True

    async def get(self, key: str) -> str | None:
        if not self._alive(key):
            return None
        return self._data[key][0]

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, pattern: str = "*") -> list[str]:
        return [k for k in list(self._data) if self._alive(k) and fnmatch.fnmatchcase(k, pattern)]

    def __len__(self) -> int:
        return sum(1 for k in list(self._data) if self._alive(k))

    def clear(self) -> None:
        self._data.clear()


class RedisKeyValueStore:
    """Redis-backed store using ``redis.asyncio``."""

    def __init__(self, url: str | None = None, *, client: redis.Redis | None = None) -> None:
        if client is None:
            if not url:
                raise ValueError("A redis URL or client is required")
            client = redis.from_url(url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        if ttl_seconds:
            await self._client.set(key, value, ex=max(1, int(ttl_seconds)))
        else:
            await self._client.set(key, value)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(key))

    async def keys(self, pattern: str = "*") -> list[str]:
        found: list[str] = []
        async for key in self._client.scan_iter(match=pattern):
            found.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return found

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def aclose(self) -> None:
        await self._client.aclose()
