"""Cache key derivation.

List keys hash a canonical serialization of the normalized filter map, so
maps that differ only in insertion order share a key. The empty map is the
base key: the unfiltered, default-sorted list used for invalidation and for
fallback reconstruction.
"""

import hashlib
import json
from collections.abc import Mapping
from datetime import date
from enum import Enum
from typing import Any

USERS_NAMESPACE = "users"
LIST_KEY_PREFIX = f"{USERS_NAMESPACE}:list"
USER_KEY_PREFIX = f"{USERS_NAMESPACE}:item"


def _canonical_value(value: Any) -> str:
    """Render a filter value as a canonical string."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def canonicalize(filters: Mapping[str, Any]) -> str:
    """Stable serialization: sorted keys, string values, empty values dropped."""
    normalized = {
        str(key): _canonical_value(value)
        for key, value in filters.items()
        if value is not None and value != ""
    }
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"))


def list_key(filters: Mapping[str, Any] | None = None) -> str:
    """Cache key for a (normalized) list query."""
    canonical = canonicalize(filters or {})
    if canonical == "{}":
        return f"{LIST_KEY_PREFIX}:all"
    digest = hashlib.sha256(canonical.encode()).hexdigest()[:16]
    return f"{LIST_KEY_PREFIX}:{digest}"


def user_key(user_id: int) -> str:
    """Cache key for a single user record."""
    return f"{USER_KEY_PREFIX}:{user_id}"


BASE_LIST_KEY = list_key()

__all__ = ["BASE_LIST_KEY", "canonicalize", "list_key", "user_key"]
