"""Error taxonomy for upstream API and cache store failures.

Reads degrade on ``ApiError`` (see ``usercache.service``); writes let it
propagate. ``NotFoundError`` is raised both for a genuine upstream 404 and
for a fallback cache miss during an outage, so callers cannot tell the two
apart.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Category of an upstream API failure."""

    TRANSPORT = "transport"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ApiError(Exception):
    """Base error for upstream user API failures."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status_code: int | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.errors = errors

    def flatten_errors(self) -> list[str]:
        """Field errors as ``"field: message"`` lines, or the message itself."""
        if not self.errors:
            return [self.message]
        flattened: list[str] = []
        for field, messages in self.errors.items():
            if isinstance(messages, (list, tuple)):
                flattened.extend(f"{field}: {msg}" for msg in messages)
            else:
                flattened.append(f"{field}: {messages}")
        return flattened

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, kind={self.kind.value}, "
            f"status_code={self.status_code})"
        )


class TransportError(ApiError):
    """Upstream unreachable, connection refused or timed out."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.TRANSPORT)

    @classmethod
    def connection_failed(cls, detail: str) -> TransportError:
        return cls(f"Connection to user API failed: {detail}")


class NotFoundError(ApiError):
    """Record does not exist (or is not available from the cache)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.NOT_FOUND, status_code=404)

    @classmethod
    def for_resource(cls, resource: str, resource_id: int) -> NotFoundError:
        return cls(f"{resource} with ID {resource_id} not found")


class ValidationError(ApiError):
    """Upstream rejected the payload (HTTP 422) with field-level errors."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            "Validation error",
            kind=ErrorKind.VALIDATION,
            status_code=422,
            errors=errors,
        )

    @classmethod
    def from_payload(cls, payload: Any) -> ValidationError:
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if not isinstance(errors, dict):
            errors = {}
        return cls(
            {
                str(field): list(messages)
                if isinstance(messages, (list, tuple))
                else [str(messages)]
                for field, messages in errors.items()
            }
        )


class UnexpectedResponseError(ApiError):
    """Upstream answered with a status or body the client did not expect."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(
            message, kind=ErrorKind.UNKNOWN, status_code=status_code, errors=errors
        )

    @classmethod
    def from_response(
        cls, status_code: int, data: Any, context: str = ""
    ) -> UnexpectedResponseError:
        message = f"{context}: " if context else ""
        message += f"User API error: HTTP {status_code}"
        errors = None
        if isinstance(data, dict):
            if data.get("error"):
                message += f" - {data['error']}"
            if isinstance(data.get("errors"), dict):
                errors = data["errors"]
        return cls(message, status_code=status_code, errors=errors)


class CacheStoreError(Exception):
    """The cache storage backend failed (unreachable, corrupt entry, ...)."""


__all__ = [
    "ApiError",
    "CacheStoreError",
    "ErrorKind",
    "NotFoundError",
    "TransportError",
    "UnexpectedResponseError",
    "ValidationError",
]
