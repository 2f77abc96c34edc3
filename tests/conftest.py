"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from usercache import (
    ApiError,
    AsyncMemoryAdapter,
    CachedUserApi,
    CacheStore,
    Envelope,
    FilterSet,
    ImportResult,
    NotFoundError,
    create_store,
)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class FakeUserApi:
    """In-memory ``UserApi`` that records calls and can be switched off."""

    def __init__(self, users: list[dict[str, Any]] | None = None) -> None:
        self.users: dict[int, dict[str, Any]] = {u["id"]: dict(u) for u in users or []}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_with: ApiError | None = None
        self.next_id = 100
        self.delay = 0.0

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail_with is not None:
            raise self.fail_with

    async def get_users(self, token: str, filters: Any = None) -> Envelope:
        self._record("get_users", token, filters)
        if self.delay:
            await asyncio.sleep(self.delay)
        data = FilterSet.coerce(filters).apply(self.users.values())
        return Envelope(data=data, meta={"total": len(data)})

    async def get_user(self, token: str, user_id: int) -> Envelope:
        self._record("get_user", token, user_id)
        if user_id not in self.users:
            raise NotFoundError.for_resource("User", user_id)
        return Envelope(data=dict(self.users[user_id]))

    async def create_user(self, token: str, user_data: dict[str, Any]) -> Envelope:
        self._record("create_user", token, user_data)
        user = {"id": self.next_id, **user_data}
        self.users[self.next_id] = user
        self.next_id += 1
        return Envelope(data=dict(user))

    async def update_user(self, token: str, user_id: int, user_data: dict[str, Any]) -> Envelope:
        self._record("update_user", token, user_id, user_data)
        if user_id not in self.users:
            raise NotFoundError.for_resource("User", user_id)
        self.users[user_id].update(user_data)
        return Envelope(data=dict(self.users[user_id]))

    async def delete_user(self, token: str, user_id: int) -> bool:
        self._record("delete_user", token, user_id)
        if user_id not in self.users:
            raise NotFoundError.for_resource("User", user_id)
        del self.users[user_id]
        return True

    async def import_users(self, token: str) -> ImportResult:
        self._record("import_users", token)
        imported = []
        for first_name in ("IMPORTED", "BULK"):
            user = {"id": self.next_id, "first_name": first_name, "last_name": "USER"}
            self.users[self.next_id] = user
            imported.append(dict(user))
            self.next_id += 1
        return ImportResult(success=True, data=imported, count=len(imported))

    async def is_api_available(self) -> bool:
        self._record("is_api_available")
        return True


SAMPLE_USERS = [
    {"id": 1, "first_name": "Jan", "last_name": "Kowalski", "birthdate": "1980-05-01", "gender": "male"},
    {"id": 2, "first_name": "Anna", "last_name": "Nowak", "birthdate": "1992-11-23", "gender": "female"},
    {"id": 3, "first_name": "Piotr", "last_name": "Zielinski", "birthdate": "2001-02-14", "gender": "male"},
]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def async_adapter() -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter()


@pytest.fixture
def store(async_adapter: AsyncMemoryAdapter, clock: FakeClock) -> CacheStore:
    return create_store(
        adapter=async_adapter,
        prefix="test",
        default_ttl="300s",
        default_grace="1h",
        clock=clock,
    )


@pytest.fixture
def api() -> FakeUserApi:
    return FakeUserApi(SAMPLE_USERS)


@pytest.fixture
def service(api: FakeUserApi, store: CacheStore) -> CachedUserApi:
    return CachedUserApi(api, store, ttl="300s")
