"""Cache store primitives: get-or-compute on top of a storage adapter.

- get(): live value, or compute + store, with per-key request coalescing
- peek(): live value only (optionally a stale one within grace), never computes
- set(), delete(): raw escape hatches
- clear(), disconnect(): lifecycle methods

Adapter failures surface as ``CacheStoreError``; exceptions raised by the
compute function propagate unchanged and leave the cache untouched.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

from usercache.adapters.base import AsyncStorageAdapter
from usercache.duration import parse_duration
from usercache.errors import CacheStoreError
from usercache.logger import get_logger
from usercache.types import CacheEntry, Duration

T = TypeVar("T")

DEFAULT_TTL = "300s"

logger = get_logger(__name__)


class _FetchAbandoned(Exception):
    """The caller running a shared fetch was cancelled before it finished."""


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheStore:
    """Async key/value store with TTL and a get-or-compute primitive.

    Entries expire after their TTL. With a grace period they stay stored
    that much longer: ``get`` treats them as misses, but
    ``peek(..., allow_stale=True)`` still returns them.
    """

    _adapter: AsyncStorageAdapter
    _prefix: str
    _default_ttl: int
    _default_grace: int | None = None
    _clock: Callable[[], int] = _wall_clock_ms
    _in_flight: dict[str, asyncio.Future[Any]] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def default_ttl(self) -> int:
        """Default TTL in milliseconds."""
        return self._default_ttl

    async def get(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        *,
        ttl: Duration | None = None,
    ) -> T:
        """Return the live cached value for ``key`` or compute and store it.

        Args:
            key: Cache key (without prefix)
            compute: Async function producing the value on a miss
            ttl: Time to live (default: store default)

        Returns:
            Cached or freshly computed value
        """
        full_key = self._full_key(key)

        async def fetch() -> T:
            entry = await self._read(full_key)
            if entry is not None and not self._is_expired(entry):
                logger.debug("cache_hit", key=key)
                return cast(T, entry.value)

            logger.debug("cache_miss", key=key)
            value = await compute()
            try:
                await self._write(full_key, value, ttl)
            except CacheStoreError as e:
                logger.error("cache_write_failed", key=key, error=str(e))
            return value

        return await self._coalesce(full_key, fetch)

    async def peek(self, key: str, *, allow_stale: bool = False) -> Any | None:
        """Cached value for ``key`` or None; never computes.

        With ``allow_stale``, an expired entry still within its grace period
        is returned as well.
        """
        entry = await self._read(self._full_key(key))
        if entry is None:
            return None
        if self._is_expired(entry) and not (allow_stale and self._is_within_grace(entry)):
            return None
        return entry.value

    async def set(self, key: str, value: Any, *, ttl: Duration | None = None) -> None:
        """Raw set - escape hatch for manual cache population."""
        await self._write(self._full_key(key), value, ttl)

    async def delete(self, key: str) -> bool:
        """Delete ``key``. Deleting an absent key is not an error."""
        try:
            return await self._adapter.delete(self._full_key(key))
        except CacheStoreError:
            raise
        except Exception as e:
            raise CacheStoreError(f"Cache delete failed for {key!r}: {e}") from e

    async def clear(self) -> None:
        """Clear all cached entries."""
        try:
            await self._adapter.clear()
        except CacheStoreError:
            raise
        except Exception as e:
            raise CacheStoreError(f"Cache clear failed: {e}") from e

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        await self._adapter.disconnect()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _is_expired(self, entry: CacheEntry[Any]) -> bool:
        """Check if entry has exceeded its TTL."""
        return self._clock() >= entry.expires_at

    def _is_within_grace(self, entry: CacheEntry[Any]) -> bool:
        """Check if entry is within its grace period."""
        if entry.grace_until is None:
            return False
        return self._clock() < entry.grace_until

    async def _read(self, full_key: str) -> CacheEntry[Any] | None:
        try:
            return await self._adapter.get(full_key)
        except CacheStoreError:
            raise
        except Exception as e:
            raise CacheStoreError(f"Cache read failed for {full_key!r}: {e}") from e

    async def _write(self, full_key: str, value: Any, ttl: Duration | None) -> None:
        now = self._clock()
        ttl_ms = parse_duration(ttl) if ttl is not None else self._default_ttl
        grace_ms = self._default_grace

        entry: CacheEntry[object] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + ttl_ms,
            grace_until=now + ttl_ms + grace_ms if grace_ms else None,
        )
        try:
            await self._adapter.set(full_key, entry)
        except CacheStoreError:
            raise
        except Exception as e:
            raise CacheStoreError(f"Cache write failed for {full_key!r}: {e}") from e

    async def _coalesce(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Share one in-flight fetch between concurrent misses on ``key``.

        If the caller running the fetch is cancelled, the waiters are not:
        the next one takes over the fetch.
        """
        while True:
            async with self._lock:
                existing = self._in_flight.get(key)
                if existing is not None and existing.done():
                    existing = None
                if existing is None:
                    future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
                    self._in_flight[key] = future

            if existing is None:
                break
            try:
                # shield: a cancelled waiter must not cancel the shared future
                return cast(T, await asyncio.shield(existing))
            except _FetchAbandoned:
                logger.debug("cache_fetch_abandoned_retrying", key=key)

        try:
            result = await fetch()
        except asyncio.CancelledError:
            future.set_exception(_FetchAbandoned(key))
            future.exception()
            raise
        except BaseException as e:
            future.set_exception(e)
            # mark retrieved so an unawaited future does not warn
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            async with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]


def create_store(
    *,
    adapter: AsyncStorageAdapter,
    prefix: str = "usercache",
    default_ttl: Duration = DEFAULT_TTL,
    default_grace: Duration | None = None,
    clock: Callable[[], int] | None = None,
) -> CacheStore:
    """Create a cache store.

    Args:
        adapter: Storage adapter
        prefix: Key prefix for all cache entries
        default_ttl: Default time to live (300 seconds)
        default_grace: How long expired entries stay available to
            ``peek(..., allow_stale=True)`` (default: not kept)
        clock: Millisecond clock used for expiry (default: wall clock)

    Returns:
        CacheStore instance with get, peek, set, delete, clear, disconnect
    """
    ttl = parse_duration(default_ttl)
    if ttl <= 0:
        raise ValueError("default_ttl must be positive")

    return CacheStore(
        _adapter=adapter,
        _prefix=prefix,
        _default_ttl=ttl,
        _default_grace=parse_duration(default_grace) if default_grace is not None else None,
        _clock=clock or _wall_clock_ms,
    )


__all__ = ["CacheStore", "create_store"]
