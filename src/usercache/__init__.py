"""usercache - cache-aside layer for an upstream user-management API."""

from contextlib import suppress

# Adapters (async only)
from usercache.adapters import (
    AsyncMemoryAdapter,
    AsyncStorageAdapter,
)

# Login collaborator
from usercache.auth import AuthClient, AuthResult, TokenVerification

# Upstream client
from usercache.client import UpstreamClient, UpstreamResult, UserApi, UserApiClient

# Settings
from usercache.config import Settings, get_settings

# Duration parsing
from usercache.duration import parse_duration

# Errors
from usercache.errors import (
    ApiError,
    CacheStoreError,
    ErrorKind,
    NotFoundError,
    TransportError,
    UnexpectedResponseError,
    ValidationError,
)

# Cache keys
from usercache.keys import BASE_LIST_KEY, list_key, user_key
from usercache.logger import get_logger, setup_logging
from usercache.models import FilterSet, Gender, User

# Store primitives
from usercache.primitives import CacheStore, create_store

# Cache-aside service
from usercache.service import CachedUserApi, create_cached_user_api

# Core types
from usercache.types import (
    CacheEntry,
    Duration,
    Envelope,
    ImportResult,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from usercache.adapters import AsyncRedisAdapter

__version__ = "0.1.0"

__all__ = [
    "BASE_LIST_KEY",
    "ApiError",
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "AuthClient",
    "AuthResult",
    "CacheEntry",
    "CacheStore",
    "CacheStoreError",
    "CachedUserApi",
    "Duration",
    "Envelope",
    "ErrorKind",
    "FilterSet",
    "Gender",
    "ImportResult",
    "NotFoundError",
    "Settings",
    "TokenVerification",
    "TransportError",
    "UnexpectedResponseError",
    "UpstreamClient",
    "UpstreamResult",
    "User",
    "UserApi",
    "UserApiClient",
    "ValidationError",
    "create_cached_user_api",
    "create_store",
    "get_logger",
    "get_settings",
    "list_key",
    "parse_duration",
    "setup_logging",
    "user_key",
]
