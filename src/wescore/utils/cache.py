"""
Size-bounded TTL cache for query results.

Expired entries are dropped lazily when read, never by a background sweep.
When the cache is full, inserting a new key evicts the oldest-inserted entry.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    def __init__(
        self,
        default_ttl: float = 60.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[Hashable, _Entry] = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        if key in self._entries:
            # Re-inserting moves the key to the newest position
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            oldest, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {oldest!r}")
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def delete(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


_MISSING = object()


async def cached_query(
    cache: TTLCache,
    key: Hashable,
    fetch: Callable[[], Awaitable[T]],
    ttl: float | None = None,
) -> T:
    """Return the cached value for key, or fetch and cache it."""
    value = cache.get(key, _MISSING)
    if value is not _MISSING:
        return value
    value = await fetch()
    cache.set(key, value, ttl)
    return value
