"""Core types for the usercache library."""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with expiry metadata."""

    value: T
    created_at: int  # Unix timestamp ms
    expires_at: int  # TTL expiration
    grace_until: int | None = None  # kept for fallback reads until then


@dataclass(frozen=True, slots=True)
class Envelope:
    """Response shape returned to callers: ``{data, meta}``.

    ``from_fallback`` marks envelopes rebuilt from a stale snapshot while the
    upstream API was unreachable. It is never persisted to the cache.
    """

    data: Any = None
    meta: dict[str, Any] | None = None
    from_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON object stored in the cache."""
        result: dict[str, Any] = {"data": self.data}
        if self.meta is not None:
            result["meta"] = self.meta
        return result

    @classmethod
    def from_dict(cls, payload: Any, *, from_fallback: bool = False) -> "Envelope":
        """Rebuild an envelope from a backend body or cached object."""
        if not isinstance(payload, dict):
            return cls(data=None, from_fallback=from_fallback)
        meta = payload.get("meta")
        return cls(
            data=payload.get("data"),
            meta=meta if isinstance(meta, dict) else None,
            from_fallback=from_fallback,
        )

    @property
    def records(self) -> list[dict[str, Any]]:
        """List payload as record dicts (empty when data is not a list)."""
        if not isinstance(self.data, list):
            return []
        return [item for item in self.data if isinstance(item, dict)]

    @property
    def record_id(self) -> int | None:
        """``data.id`` of a single-record payload, if present."""
        if isinstance(self.data, dict):
            record_id = self.data.get("id")
            if isinstance(record_id, int) and not isinstance(record_id, bool):
                return record_id
        return None


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Result of a bulk import on the upstream API."""

    success: bool
    data: list[dict[str, Any]] = field(default_factory=list)
    count: int = 0


# Duration type alias
Duration = str | int | timedelta  # "30s", "5m", "2h", "1d", ms, or timedelta
