"""Cache-aside wrapper around the upstream user API.

Reads go through the cache store and degrade instead of failing:

- list reads fall back to the cached base list (unfiltered, default sort),
  filtered and sorted locally, when the upstream call fails
- single-record reads fall back to the cached record, and otherwise raise the
  same ``NotFoundError`` a genuine 404 produces
- cache store failures on a read yield an empty list / ``NotFoundError``
- a ``ValidationError`` (HTTP 422) propagates and never triggers fallback

Writes hit the upstream first. Only after success are the affected record
key and the base list key deleted; failed writes propagate and touch nothing.
Filtered list keys are not invalidated and age out with the TTL.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

from usercache.adapters.base import AsyncStorageAdapter
from usercache.adapters.memory import AsyncMemoryAdapter
from usercache.client import UpstreamClient, UserApi, UserApiClient
from usercache.config import Settings, get_settings
from usercache.errors import ApiError, CacheStoreError, NotFoundError, ValidationError
from usercache.keys import BASE_LIST_KEY, list_key, user_key
from usercache.logger import get_logger
from usercache.models import FilterSet
from usercache.primitives import DEFAULT_TTL, CacheStore, create_store
from usercache.types import Duration, Envelope, ImportResult

logger = get_logger(__name__)


class CachedUserApi:
    """``UserApi`` with read-through caching, fallback and invalidation."""

    def __init__(
        self,
        api: UserApi,
        store: CacheStore,
        *,
        ttl: Duration = DEFAULT_TTL,
    ) -> None:
        self._api = api
        self._store = store
        self._ttl = ttl

    @property
    def store(self) -> CacheStore:
        """Escape hatch to the underlying cache store."""
        return self._store

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_users(
        self, token: str, filters: FilterSet | dict[str, Any] | None = None
    ) -> Envelope:
        filter_set = FilterSet.coerce(filters)
        key = list_key(filter_set.normalized())

        async def fetch() -> dict[str, Any]:
            envelope = await self._api.get_users(token, filter_set)
            logger.info("users_fetched_and_cached", key=key, count=len(envelope.records))
            return envelope.to_dict()

        try:
            cached = await self._store.get(key, fetch, ttl=self._ttl)
        except ValidationError:
            raise
        except ApiError as e:
            logger.warning(
                "users_fetch_failed_using_fallback", key=key, kind=e.kind.value, error=str(e)
            )
            return await self._fallback_users(filter_set)
        except CacheStoreError as e:
            logger.error("users_cache_failed", key=key, error=str(e))
            return Envelope(data=[])

        return Envelope.from_dict(cached)

    async def get_user(self, token: str, user_id: int) -> Envelope:
        key = user_key(user_id)

        async def fetch() -> dict[str, Any]:
            envelope = await self._api.get_user(token, user_id)
            logger.info("user_fetched_and_cached", user_id=user_id)
            return envelope.to_dict()

        try:
            cached = await self._store.get(key, fetch, ttl=self._ttl)
        except ValidationError:
            raise
        except ApiError as e:
            logger.warning(
                "user_fetch_failed_using_fallback",
                user_id=user_id,
                kind=e.kind.value,
                error=str(e),
            )
            return await self._fallback_user(user_id)
        except CacheStoreError as e:
            logger.error("user_cache_failed", user_id=user_id, error=str(e))
            raise NotFoundError.for_resource("User", user_id) from e

        return Envelope.from_dict(cached)

    async def is_api_available(self) -> bool:
        return await self._api.is_api_available()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_user(self, token: str, user_data: dict[str, Any]) -> Envelope:
        envelope = await self._api.create_user(token, user_data)

        keys = [BASE_LIST_KEY]
        if envelope.record_id is not None:
            keys.append(user_key(envelope.record_id))
        await self._invalidate(*keys)

        logger.info("user_created_cache_invalidated", user_id=envelope.record_id)
        return envelope

    async def update_user(
        self, token: str, user_id: int, user_data: dict[str, Any]
    ) -> Envelope:
        envelope = await self._api.update_user(token, user_id, user_data)

        await self._invalidate(BASE_LIST_KEY, user_key(user_id))

        logger.info("user_updated_cache_invalidated", user_id=user_id)
        return envelope

    async def delete_user(self, token: str, user_id: int) -> bool:
        result = await self._api.delete_user(token, user_id)

        await self._invalidate(BASE_LIST_KEY, user_key(user_id))

        logger.info("user_deleted_cache_invalidated", user_id=user_id)
        return result

    async def import_users(self, token: str) -> ImportResult:
        result = await self._api.import_users(token)

        # one list invalidation for the whole batch
        await self._invalidate(BASE_LIST_KEY)

        logger.info("users_imported_cache_invalidated", imported_count=result.count)
        return result

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def aclose(self) -> None:
        """Disconnect the store and close the wrapped API client, if closable."""
        await self._store.disconnect()
        close = getattr(self._api, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> CachedUserApi:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _fallback_users(self, filters: FilterSet) -> Envelope:
        """Rebuild a list response from the cached base list."""
        try:
            snapshot = await self._store.peek(BASE_LIST_KEY, allow_stale=True)
        except CacheStoreError as e:
            logger.error("users_fallback_failed", error=str(e))
            return Envelope(data=[], from_fallback=True)

        base = Envelope.from_dict(snapshot)
        if not base.records:
            logger.info("users_fallback_empty")
            return Envelope(data=[], from_fallback=True)

        data = filters.apply(base.records)
        logger.info(
            "users_served_from_fallback", count=len(data), snapshot_count=len(base.records)
        )
        return Envelope(data=data, meta=base.meta, from_fallback=True)

    async def _fallback_user(self, user_id: int) -> Envelope:
        """Serve a cached record or raise the not-found error."""
        try:
            snapshot = await self._store.peek(user_key(user_id), allow_stale=True)
        except CacheStoreError as e:
            logger.error("user_fallback_failed", user_id=user_id, error=str(e))
            raise NotFoundError.for_resource("User", user_id) from e

        if not snapshot:
            raise NotFoundError.for_resource("User", user_id)

        logger.info("user_served_from_fallback", user_id=user_id)
        return Envelope.from_dict(snapshot, from_fallback=True)

    async def _invalidate(self, *keys: str) -> None:
        for key in keys:
            try:
                await self._store.delete(key)
            except CacheStoreError as e:
                logger.error("cache_invalidation_failed", key=key, error=str(e))


def create_cached_user_api(
    settings: Settings | None = None,
    *,
    adapter: AsyncStorageAdapter | None = None,
    upstream: UpstreamClient | None = None,
) -> CachedUserApi:
    """Wire upstream client, storage adapter and store from settings.

    Uses Redis when ``redis_url`` is configured, otherwise an in-memory
    adapter bounded by ``cache_max_items``.
    """
    settings = settings or get_settings()

    if upstream is None:
        upstream = UpstreamClient(
            settings.api_url,
            read_timeout=settings.read_timeout,
            write_timeout=settings.write_timeout,
            probe_timeout=settings.probe_timeout,
        )

    if adapter is None:
        if settings.redis_url:
            from usercache.adapters.redis import AsyncRedisAdapter

            adapter = AsyncRedisAdapter.from_url(settings.redis_url, prefix=settings.cache_prefix)
        else:
            adapter = AsyncMemoryAdapter(max_items=settings.cache_max_items)

    store = create_store(
        adapter=adapter,
        prefix=settings.cache_prefix,
        default_ttl=settings.cache_ttl,
        default_grace=settings.cache_grace,
    )
    return CachedUserApi(UserApiClient(upstream), store, ttl=settings.cache_ttl)


__all__ = ["CachedUserApi", "create_cached_user_api"]
