"""Base adapter protocol for cache storage backends."""

from typing import Protocol, runtime_checkable

from usercache.types import CacheEntry


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async storage adapter interface.

    Adapters only store and fetch entries; expiry is judged by
    ``usercache.primitives.CacheStore`` against its own clock.
    """

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        ...

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete a cache entry. Returns whether a key was removed."""
        ...

    async def clear(self) -> None:
        """Clear all cached entries."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...
