"""Redis storage adapter."""

from __future__ import annotations

import json
from typing import Any

from redis.exceptions import RedisError

from usercache.errors import CacheStoreError
from usercache.types import CacheEntry


def _serialize_entry(entry: CacheEntry[object]) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(
        {
            "value": entry.value,
            "created_at": entry.created_at,
            "expires_at": entry.expires_at,
            "grace_until": entry.grace_until,
        }
    )


def _deserialize_entry(data: bytes | str) -> CacheEntry[object]:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    try:
        obj = json.loads(data)
        return CacheEntry(
            value=obj["value"],
            created_at=obj["created_at"],
            expires_at=obj["expires_at"],
            grace_until=obj.get("grace_until"),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise CacheStoreError(f"Corrupt cache entry: {e}") from e


class AsyncRedisAdapter:
    """Async Redis storage adapter.

    Entries carry an absolute expiry (``PXAT``) so Redis drops them on its
    own; every worker process pointing at the same Redis shares the cache.
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "usercache",
    ) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(
        cls, url: str, *, prefix: str = "usercache", socket_timeout: float = 5.0
    ) -> AsyncRedisAdapter:
        """Build an adapter with its own connection pool."""
        import redis.asyncio

        client = redis.asyncio.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, prefix=prefix)

    def _cache_key(self, key: str) -> str:
        """Generate full Redis key for cache entries."""
        return f"{self._prefix}:cache:{key}"

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        try:
            data = await self._client.get(self._cache_key(key))
        except RedisError as e:
            raise CacheStoreError(f"Redis GET failed: {e}") from e
        if data is None:
            return None
        return _deserialize_entry(data)

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry with automatic expiration."""
        try:
            await self._client.set(
                self._cache_key(key),
                _serialize_entry(entry),
                pxat=entry.grace_until or entry.expires_at,
            )
        except RedisError as e:
            raise CacheStoreError(f"Redis SET failed: {e}") from e

    async def delete(self, key: str) -> bool:
        """Delete a cache entry."""
        try:
            removed = await self._client.delete(self._cache_key(key))
        except RedisError as e:
            raise CacheStoreError(f"Redis DEL failed: {e}") from e
        return bool(removed)

    async def clear(self) -> None:
        """Clear all cached entries under this adapter's prefix."""
        cursor: int = 0
        pattern = f"{self._prefix}:cache:*"
        try:
            while True:
                cursor, keys = await self._client.scan(cursor, match=pattern, count=100)
                if keys:
                    await self._client.delete(*keys)
                if cursor == 0:
                    break
        except RedisError as e:
            raise CacheStoreError(f"Redis SCAN/DEL failed: {e}") from e

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
