"""User record and query filter set."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

SORT_FIELDS: frozenset[str] = frozenset(
    {"id", "first_name", "last_name", "birthdate", "gender", "created_at"}
)
SORT_ORDERS: frozenset[str] = frozenset({"asc", "desc"})
DEFAULT_SORT_BY = "id"
DEFAULT_SORT_ORDER = "asc"

# camelCase names accepted from query strings / form fields
_FIELD_ALIASES = {
    "firstName": "first_name",
    "lastName": "last_name",
    "birthdateFrom": "birthdate_from",
    "birthdateTo": "birthdate_to",
    "sortBy": "sort_by",
    "sortOrder": "sort_order",
}


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"

    @classmethod
    def from_value(cls, value: Any) -> Gender | None:
        """Lenient lookup: unknown or empty values map to None."""
        if isinstance(value, Gender):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (or an ISO datetime) to a date; None if invalid."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class User:
    """A user record as owned by the upstream API."""

    id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    birthdate: date | None = None
    gender: Gender | None = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> User:
        raw_id = data.get("id")
        return cls(
            id=int(raw_id) if isinstance(raw_id, (int, str)) and str(raw_id).isdigit() else None,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            birthdate=parse_date(data.get("birthdate")),
            gender=Gender.from_value(data.get("gender")),
        )

    def to_api(self) -> dict[str, Any]:
        """Payload for create/update requests; unset fields are omitted."""
        payload = {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "birthdate": self.birthdate.isoformat() if self.birthdate else None,
            "gender": self.gender.value if self.gender else None,
        }
        return {k: v for k, v in payload.items() if v is not None}

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


@dataclass(frozen=True, slots=True)
class FilterSet:
    """Immutable query filter set.

    Used both as the upstream query and as the basis of the list cache key.
    Sort values outside the allow-list fall back to ``id`` / ``asc``.
    """

    first_name: str | None = None
    last_name: str | None = None
    gender: Gender | None = None
    birthdate_from: date | None = None
    birthdate_to: date | None = None
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = DEFAULT_SORT_ORDER

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "first_name", _blank_to_none(self.first_name))
        object.__setattr__(self, "last_name", _blank_to_none(self.last_name))
        object.__setattr__(self, "gender", Gender.from_value(self.gender))
        object.__setattr__(self, "birthdate_from", parse_date(self.birthdate_from))
        object.__setattr__(self, "birthdate_to", parse_date(self.birthdate_to))
        object.__setattr__(self, "sort_by", _validate_sort_by(self.sort_by))
        object.__setattr__(self, "sort_order", _validate_sort_order(self.sort_order))

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> FilterSet:
        """Build from query-style params; snake_case and camelCase accepted."""
        values: dict[str, Any] = {}
        for key, value in params.items():
            name = _FIELD_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                values[name] = value
        for name in ("sort_by", "sort_order"):
            if values.get(name) is None:
                values.pop(name, None)
        return cls(**values)

    @classmethod
    def coerce(cls, filters: FilterSet | Mapping[str, Any] | None) -> FilterSet:
        if filters is None:
            return cls()
        if isinstance(filters, FilterSet):
            return filters
        return cls.from_mapping(filters)

    def with_sort(self, sort_by: str, sort_order: str = DEFAULT_SORT_ORDER) -> FilterSet:
        return replace(self, sort_by=sort_by, sort_order=sort_order)

    def to_query(self) -> dict[str, str]:
        """Upstream query params; empty values dropped."""
        params = {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "gender": self.gender.value if self.gender else None,
            "birthdate_from": self.birthdate_from.isoformat() if self.birthdate_from else None,
            "birthdate_to": self.birthdate_to.isoformat() if self.birthdate_to else None,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }
        return {k: v for k, v in params.items() if v is not None}

    def normalized(self) -> dict[str, str]:
        """Canonical map for cache keys. The default filter set maps to ``{}``."""
        params = self.to_query()
        if params.get("sort_by") == DEFAULT_SORT_BY:
            del params["sort_by"]
        if params.get("sort_order") == DEFAULT_SORT_ORDER:
            del params["sort_order"]
        return params

    def has_filters(self) -> bool:
        return any(
            value is not None
            for value in (
                self.first_name,
                self.last_name,
                self.gender,
                self.birthdate_from,
                self.birthdate_to,
            )
        )

    def is_default(self) -> bool:
        return not self.normalized()

    def matches(self, record: Mapping[str, Any]) -> bool:
        """Client-side match of a raw upstream record against this filter set."""
        if self.first_name is not None and not _contains(
            record.get("first_name"), self.first_name
        ):
            return False
        if self.last_name is not None and not _contains(
            record.get("last_name"), self.last_name
        ):
            return False
        if self.gender is not None and record.get("gender") != self.gender.value:
            return False
        if self.birthdate_from is not None or self.birthdate_to is not None:
            birthdate = parse_date(record.get("birthdate"))
            if birthdate is None:
                return False
            if self.birthdate_from is not None and birthdate < self.birthdate_from:
                return False
            if self.birthdate_to is not None and birthdate > self.birthdate_to:
                return False
        return True

    def apply(self, records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Filter and sort raw records the way the upstream would."""
        matched = [dict(record) for record in records if self.matches(record)]
        matched.sort(
            key=lambda record: _sort_key(record.get(self.sort_by)),
            reverse=self.sort_order == "desc",
        )
        return matched


def _validate_sort_by(value: Any) -> str:
    if isinstance(value, str):
        name = _FIELD_ALIASES.get(value, value)
        if name in SORT_FIELDS:
            return name
    return DEFAULT_SORT_BY


def _validate_sort_order(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in SORT_ORDERS:
        return value.strip().lower()
    return DEFAULT_SORT_ORDER


def _contains(value: Any, needle: str) -> bool:
    return isinstance(value, str) and needle.lower() in value.lower()


def _sort_key(value: Any) -> tuple[int, Any]:
    # None first; numbers before strings so mixed columns never compare
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value).lower())


__all__ = [
    "SORT_FIELDS",
    "SORT_ORDERS",
    "FilterSet",
    "Gender",
    "User",
    "parse_date",
]
