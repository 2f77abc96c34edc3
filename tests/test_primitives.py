"""Tests for the cache store primitives."""

import asyncio

import pytest
from structlog.testing import capture_logs

from usercache import AsyncMemoryAdapter, CacheEntry, CacheStoreError, create_store


class Counter:
    """Async compute function that counts its calls."""

    def __init__(self, value: object = None, delay: float = 0) -> None:
        self.calls = 0
        self.value = value if value is not None else {"id": 123}
        self.delay = delay

    async def __call__(self) -> object:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.value


class FailingAdapter(AsyncMemoryAdapter):
    """Memory adapter whose writes fail."""

    async def set(self, key, entry):
        raise ConnectionError("read-only replica")


class TestGet:
    """Tests for get() with request coalescing."""

    async def test_cache_miss_calls_compute(self, store) -> None:
        compute = Counter()

        assert await store.get("user:123", compute) == {"id": 123}
        assert compute.calls == 1

    async def test_cache_hit_returns_cached(self, store) -> None:
        compute = Counter()

        await store.get("user:123", compute)
        await store.get("user:123", compute)

        assert compute.calls == 1

    async def test_entry_expires_after_ttl(self, store, clock) -> None:
        compute = Counter()

        await store.get("user:123", compute, ttl="10s")
        clock.advance(9)
        await store.get("user:123", compute)
        clock.advance(1)
        await store.get("user:123", compute)

        assert compute.calls == 2

    async def test_entries_are_prefixed(self, store, async_adapter) -> None:
        await store.get("user:123", Counter())

        assert "test:user:123" in async_adapter

    async def test_entry_metadata(self, store, async_adapter, clock) -> None:
        await store.get("user:123", Counter(), ttl="10s")

        entry = await async_adapter.get("test:user:123")
        assert entry == CacheEntry(
            value={"id": 123},
            created_at=clock.now,
            expires_at=clock.now + 10_000,
            grace_until=clock.now + 10_000 + 3_600_000,
        )

    async def test_concurrent_misses_share_one_compute(self, store) -> None:
        compute = Counter(delay=0.05)

        results = await asyncio.gather(*(store.get("user:123", compute) for _ in range(10)))

        assert all(r == {"id": 123} for r in results)
        assert compute.calls == 1

    async def test_different_keys_do_not_coalesce(self, store) -> None:
        compute = Counter(delay=0.01)

        await asyncio.gather(store.get("a", compute), store.get("b", compute))

        assert compute.calls == 2

    async def test_compute_error_propagates_and_caches_nothing(
        self, store, async_adapter
    ) -> None:
        async def fail() -> object:
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError, match="upstream down"):
            await store.get("user:123", fail)

        assert len(async_adapter) == 0
        # next call is not stuck on the failed in-flight fetch
        assert await store.get("user:123", Counter()) == {"id": 123}

    async def test_compute_error_reaches_every_waiter(self, store) -> None:
        calls = 0

        async def slow_fail() -> object:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            raise RuntimeError("upstream down")

        results = await asyncio.gather(
            *(store.get("user:123", slow_fail) for _ in range(3)), return_exceptions=True
        )

        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)

    async def test_cancelled_waiter_does_not_cancel_shared_fetch(self, store) -> None:
        compute = Counter(delay=0.05)

        leader = asyncio.create_task(store.get("user:123", compute))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(store.get("user:123", compute))
        await asyncio.sleep(0)
        waiter.cancel()

        assert await leader == {"id": 123}
        assert compute.calls == 1

    async def test_cancelled_fetch_hands_over_to_waiter(self, store) -> None:
        compute = Counter(delay=0.05)

        leader = asyncio.create_task(store.get("user:123", compute))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(store.get("user:123", compute))
        await asyncio.sleep(0)
        leader.cancel()

        assert await waiter == {"id": 123}
        assert leader.cancelled()
        assert compute.calls == 2
        # in-flight bookkeeping is released
        assert await store.get("user:123", compute) == {"id": 123}
        assert compute.calls == 2

    async def test_write_failure_still_returns_value(self, clock) -> None:
        store = create_store(adapter=FailingAdapter(), clock=clock)
        compute = Counter()

        with capture_logs() as logs:
            result = await store.get("user:123", compute)

        assert result == {"id": 123}
        assert any(e["event"] == "cache_write_failed" for e in logs)


class TestPeek:
    """Tests for peek() and the grace period."""

    async def test_peek_missing(self, store) -> None:
        assert await store.peek("nothing") is None

    async def test_peek_live_entry(self, store) -> None:
        await store.set("key", {"v": 1})

        assert await store.peek("key") == {"v": 1}

    async def test_peek_never_computes(self, store, async_adapter) -> None:
        await store.peek("key")

        assert len(async_adapter) == 0

    async def test_expired_entry_is_hidden_unless_stale_allowed(self, store, clock) -> None:
        await store.set("key", {"v": 1}, ttl="10s")
        clock.advance(11)

        assert await store.peek("key") is None
        assert await store.peek("key", allow_stale=True) == {"v": 1}

    async def test_entry_past_grace_is_gone(self, store, clock) -> None:
        await store.set("key", {"v": 1}, ttl="10s")
        clock.advance(10 + 3600)

        assert await store.peek("key", allow_stale=True) is None

    async def test_no_grace_means_no_stale_reads(self, clock) -> None:
        store = create_store(adapter=AsyncMemoryAdapter(), default_ttl="10s", clock=clock)
        await store.set("key", {"v": 1})
        clock.advance(11)

        assert await store.peek("key", allow_stale=True) is None

    async def test_stale_entry_is_a_miss_for_get(self, store, clock) -> None:
        await store.set("key", "stale", ttl="10s")
        clock.advance(11)

        assert await store.get("key", Counter("fresh")) == "fresh"


class TestDeleteAndClear:
    """Tests for delete(), clear() and adapter error wrapping."""

    async def test_delete_is_idempotent(self, store) -> None:
        await store.set("key", 1)

        assert await store.delete("key") is True
        assert await store.delete("key") is False
        assert await store.peek("key") is None

    async def test_clear(self, store, async_adapter) -> None:
        await store.set("a", 1)
        await store.set("b", 2)

        await store.clear()

        assert len(async_adapter) == 0

    async def test_adapter_errors_become_cache_store_errors(self, clock) -> None:
        class DownAdapter(AsyncMemoryAdapter):
            async def get(self, key):
                raise OSError("connection reset")

            async def delete(self, key):
                raise OSError("connection reset")

        store = create_store(adapter=DownAdapter(), clock=clock)

        with pytest.raises(CacheStoreError, match="connection reset"):
            await store.peek("key")
        with pytest.raises(CacheStoreError, match="Cache delete failed"):
            await store.delete("key")
        with pytest.raises(CacheStoreError):
            await store.get("key", Counter())


class TestCreateStore:
    def test_default_ttl(self) -> None:
        store = create_store(adapter=AsyncMemoryAdapter())
        assert store.default_ttl == 300_000

    def test_ttl_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="default_ttl must be positive"):
            create_store(adapter=AsyncMemoryAdapter(), default_ttl=0)
