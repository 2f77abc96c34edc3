"""Upstream user API client.

``UpstreamClient`` performs authenticated HTTP calls and normalizes every
outcome into an ``UpstreamResult``; it never raises for HTTP status or
transport failures. ``UserApiClient`` maps those results onto the user CRUD
contract and raises ``ApiError`` subclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any, NoReturn, Protocol, runtime_checkable

import httpx

from usercache.duration import to_seconds
from usercache.errors import (
    NotFoundError,
    TransportError,
    UnexpectedResponseError,
    ValidationError,
)
from usercache.logger import get_logger
from usercache.models import FilterSet
from usercache.types import Duration, Envelope, ImportResult

logger = get_logger(__name__)

_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True, slots=True)
class UpstreamResult:
    """Normalized outcome of an upstream call."""

    success: bool
    status_code: int | None = None
    data: Any = None
    error: str | None = None


class UpstreamClient:
    """Async HTTP client for the upstream API with bearer-token auth."""

    def __init__(
        self,
        base_url: str,
        *,
        read_timeout: Duration = "10s",
        write_timeout: Duration = "15s",
        probe_timeout: Duration = "5s",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._read_timeout = to_seconds(read_timeout)
        self._write_timeout = to_seconds(write_timeout)
        self._probe_timeout = to_seconds(probe_timeout)
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            headers=_JSON_HEADERS,
            timeout=self._read_timeout,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> UpstreamResult:
        """Send a request; transport problems become ``success=False``."""
        method = method.upper()
        headers = dict(_JSON_HEADERS)
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        timeout = self._write_timeout if method in _WRITE_METHODS else self._read_timeout

        try:
            response = await self._client.request(
                method,
                self._url(path),
                params=params or None,
                json=json,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            return UpstreamResult(success=False, error=f"Request timed out: {e!r}")
        except httpx.TransportError as e:
            return UpstreamResult(success=False, error=f"Connection failed: {e!r}")
        except httpx.HTTPError as e:
            return UpstreamResult(success=False, error=f"Request failed: {e!r}")

        if response.status_code == 204 or not response.content:
            return UpstreamResult(success=True, status_code=response.status_code, data={})

        try:
            data = response.json()
        except ValueError:
            return UpstreamResult(
                success=False,
                status_code=response.status_code,
                error=f"Invalid JSON in HTTP {response.status_code} response",
            )
        return UpstreamResult(success=True, status_code=response.status_code, data=data)

    async def is_available(self) -> bool:
        """Unauthenticated probe of ``GET /users``; True only on HTTP 200."""
        try:
            response = await self._client.get(
                self._url("/users"), headers=_JSON_HEADERS, timeout=self._probe_timeout
            )
        except httpx.HTTPError as e:
            logger.warning("api_availability_check_failed", error=repr(e))
            return False
        return response.status_code == 200

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"


@runtime_checkable
class UserApi(Protocol):
    """User CRUD operations against the upstream API."""

    async def get_users(
        self, token: str, filters: FilterSet | dict[str, Any] | None = None
    ) -> Envelope:
        """List users matching ``filters``."""
        ...

    async def get_user(self, token: str, user_id: int) -> Envelope:
        """Fetch one user; raises ``NotFoundError``."""
        ...

    async def create_user(self, token: str, user_data: dict[str, Any]) -> Envelope:
        """Create a user; raises ``ValidationError`` on HTTP 422."""
        ...

    async def update_user(
        self, token: str, user_id: int, user_data: dict[str, Any]
    ) -> Envelope:
        """Update a user; raises ``NotFoundError`` / ``ValidationError``."""
        ...

    async def delete_user(self, token: str, user_id: int) -> bool:
        """Delete a user; raises ``NotFoundError``."""
        ...

    async def import_users(self, token: str) -> ImportResult:
        """Trigger a bulk import on the upstream."""
        ...

    async def is_api_available(self) -> bool:
        """Report whether the upstream answers at all."""
        ...


class UserApiClient:
    """Non-cached ``UserApi`` implementation over ``UpstreamClient``."""

    def __init__(self, upstream: UpstreamClient) -> None:
        self._upstream = upstream

    async def get_users(
        self, token: str, filters: FilterSet | dict[str, Any] | None = None
    ) -> Envelope:
        query = FilterSet.coerce(filters).to_query()
        result = await self._upstream.request("GET", "/users", token, params=query)
        if result.status_code == 422:
            error = ValidationError.from_payload(result.data)
            logger.warning("users_query_rejected", errors=error.errors, params=query)
            raise error
        self._check(result, 200, "Failed to fetch users")

        envelope = Envelope.from_dict(result.data)
        logger.info("users_fetched", count=len(envelope.records), params=query)
        return envelope

    async def get_user(self, token: str, user_id: int) -> Envelope:
        result = await self._upstream.request("GET", f"/users/{user_id}", token)
        if result.status_code == 404:
            raise NotFoundError.for_resource("User", user_id)
        self._check(result, 200, f"Failed to fetch user {user_id}")

        logger.info("user_fetched", user_id=user_id)
        return Envelope.from_dict(result.data)

    async def create_user(self, token: str, user_data: dict[str, Any]) -> Envelope:
        result = await self._upstream.request(
            "POST", "/users", token, json={"user": user_data}
        )
        if result.status_code == 422:
            error = ValidationError.from_payload(result.data)
            logger.warning("user_create_rejected", errors=error.errors)
            raise error
        self._check(result, 201, "Failed to create user")

        envelope = Envelope.from_dict(result.data)
        logger.info("user_created", user_id=envelope.record_id)
        return envelope

    async def update_user(
        self, token: str, user_id: int, user_data: dict[str, Any]
    ) -> Envelope:
        result = await self._upstream.request(
            "PUT", f"/users/{user_id}", token, json={"user": user_data}
        )
        if result.status_code == 404:
            raise NotFoundError.for_resource("User", user_id)
        if result.status_code == 422:
            error = ValidationError.from_payload(result.data)
            logger.warning("user_update_rejected", user_id=user_id, errors=error.errors)
            raise error
        self._check(result, 200, f"Failed to update user {user_id}")

        logger.info("user_updated", user_id=user_id)
        return Envelope.from_dict(result.data)

    async def delete_user(self, token: str, user_id: int) -> bool:
        result = await self._upstream.request("DELETE", f"/users/{user_id}", token)
        if result.status_code == 404:
            raise NotFoundError.for_resource("User", user_id)
        self._check(result, 204, f"Failed to delete user {user_id}")

        logger.info("user_deleted", user_id=user_id)
        return True

    async def import_users(self, token: str) -> ImportResult:
        result = await self._upstream.request("POST", "/import", token)
        if not result.success:
            self._fail(result, "Failed to import users")

        body = result.data if isinstance(result.data, dict) else {}
        status = result.status_code or 0
        if not 200 <= status < 300 or not body.get("success"):
            logger.error("users_import_failed", status_code=status, response=body)
            raise UnexpectedResponseError.from_response(status, body, "Import failed")

        data = body.get("data")
        records = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []
        count = body.get("count")
        imported = ImportResult(
            success=True,
            data=records,
            count=count if isinstance(count, int) else len(records),
        )
        logger.info("users_imported", count=imported.count)
        return imported

    async def is_api_available(self) -> bool:
        return await self._upstream.is_available()

    async def aclose(self) -> None:
        await self._upstream.aclose()

    def _check(self, result: UpstreamResult, expected: int, context: str) -> None:
        """Raise unless the call succeeded with the expected status code."""
        if not result.success or result.status_code != expected:
            self._fail(result, context)

    def _fail(self, result: UpstreamResult, context: str) -> NoReturn:
        if result.status_code is None:
            logger.error("upstream_unreachable", context=context, error=result.error)
            raise TransportError.connection_failed(result.error or "unknown error")

        logger.error(
            "upstream_unexpected_response",
            context=context,
            status_code=result.status_code,
            response=result.data,
            error=result.error,
        )
        raise UnexpectedResponseError.from_response(result.status_code, result.data, context)


__all__ = ["UpstreamClient", "UpstreamResult", "UserApi", "UserApiClient"]
