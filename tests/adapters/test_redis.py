"""Integration tests for the Redis adapter using testcontainers."""

import time

import pytest

# Skip all tests if redis or testcontainers are not installed
pytest.importorskip("redis")
pytest.importorskip("testcontainers")

import redis.asyncio
from testcontainers.redis import RedisContainer

from usercache import CacheEntry, CacheStoreError, create_store
from usercache.adapters.redis import AsyncRedisAdapter


@pytest.fixture(scope="module")
def redis_container():
    """Start a Redis container for the test module."""
    with RedisContainer() as container:
        yield container


@pytest.fixture
async def async_redis_client(redis_container):
    """Create an async Redis client; flushed after each test."""
    client = redis.asyncio.Redis(
        host=redis_container.get_container_host_ip(),
        port=int(redis_container.get_exposed_port(6379)),
        decode_responses=False,
    )
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def async_redis_adapter(async_redis_client) -> AsyncRedisAdapter:
    """Create an AsyncRedisAdapter with a test prefix."""
    return AsyncRedisAdapter(async_redis_client, prefix="test")


def now_ms() -> int:
    return int(time.time() * 1000)


def make_entry(value: object, ttl_ms: int = 60_000, grace_ms: int | None = None) -> CacheEntry[object]:
    now = now_ms()
    return CacheEntry(
        value=value,
        created_at=now,
        expires_at=now + ttl_ms,
        grace_until=now + ttl_ms + grace_ms if grace_ms else None,
    )


class TestAsyncRedisAdapter:
    """Tests for AsyncRedisAdapter."""

    async def test_get_nonexistent_returns_none(self, async_redis_adapter) -> None:
        assert await async_redis_adapter.get("nonexistent") is None

    async def test_set_and_get_round_trips_entry(self, async_redis_adapter) -> None:
        entry = make_entry({"data": [{"id": 1}], "meta": {"total": 1}}, grace_ms=60_000)
        await async_redis_adapter.set("key1", entry)

        assert await async_redis_adapter.get("key1") == entry

    async def test_keys_are_prefixed(self, async_redis_adapter, async_redis_client) -> None:
        await async_redis_adapter.set("key1", make_entry("v"))

        assert await async_redis_client.exists("test:cache:key1") == 1

    async def test_expiry_covers_grace_period(
        self, async_redis_adapter, async_redis_client
    ) -> None:
        await async_redis_adapter.set("key1", make_entry("v", ttl_ms=10_000, grace_ms=3_600_000))

        remaining = await async_redis_client.pttl("test:cache:key1")
        assert remaining > 10_000

    async def test_delete(self, async_redis_adapter) -> None:
        await async_redis_adapter.set("key1", make_entry("v"))

        assert await async_redis_adapter.delete("key1") is True
        assert await async_redis_adapter.delete("key1") is False
        assert await async_redis_adapter.get("key1") is None

    async def test_clear_only_touches_own_prefix(
        self, async_redis_adapter, async_redis_client
    ) -> None:
        await async_redis_adapter.set("key1", make_entry("v"))
        await async_redis_adapter.set("key2", make_entry("v"))
        await async_redis_client.set("other:key", b"keep")

        await async_redis_adapter.clear()

        assert await async_redis_adapter.get("key1") is None
        assert await async_redis_adapter.get("key2") is None
        assert await async_redis_client.get("other:key") == b"keep"

    async def test_corrupt_entry_raises_cache_store_error(
        self, async_redis_adapter, async_redis_client
    ) -> None:
        await async_redis_client.set("test:cache:bad", b"not json")

        with pytest.raises(CacheStoreError, match="Corrupt cache entry"):
            await async_redis_adapter.get("bad")

    async def test_store_round_trip(self, async_redis_adapter) -> None:
        store = create_store(adapter=async_redis_adapter, prefix="svc", default_ttl="1m")
        calls = 0

        async def compute() -> dict:
            nonlocal calls
            calls += 1
            return {"data": {"id": 5}}

        assert await store.get("users:item:5", compute) == {"data": {"id": 5}}
        assert await store.get("users:item:5", compute) == {"data": {"id": 5}}
        assert calls == 1


async def test_unreachable_redis_raises_cache_store_error() -> None:
    client = redis.asyncio.Redis(host="127.0.0.1", port=1, socket_connect_timeout=0.2)
    adapter = AsyncRedisAdapter(client, prefix="test")

    with pytest.raises(CacheStoreError, match="Redis GET failed"):
        await adapter.get("key1")

    await adapter.disconnect()
