"""In-memory storage adapter (async only)."""

import asyncio
from collections import OrderedDict

from usercache.types import CacheEntry

DEFAULT_MAX_ITEMS = 1000


class AsyncMemoryAdapter:
    """Async in-memory storage adapter with LRU eviction.

    Holds at most ``max_items`` entries (``None`` for unbounded). Expired
    entries are not swept; eviction is by count only.

    Shared by every coroutine of one process; use the Redis adapter to share
    a cache between worker processes.
    """

    def __init__(self, max_items: int | None = DEFAULT_MAX_ITEMS) -> None:
        if max_items is not None and max_items <= 0:
            raise ValueError("max_items must be positive")
        self._cache: OrderedDict[str, CacheEntry[object]] = OrderedDict()
        self._max_items = max_items
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                self._cache.move_to_end(key)  # LRU touch
            return entry

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry."""
        async with self._lock:
            self._cache[key] = entry
            self._cache.move_to_end(key)
            if self._max_items and len(self._cache) > self._max_items:
                self._cache.popitem(last=False)

    async def delete(self, key: str) -> bool:
        """Delete a cache entry."""
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all cached entries."""
        async with self._lock:
            self._cache.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass
