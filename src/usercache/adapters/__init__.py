"""Storage adapters for the usercache library (async only)."""

from contextlib import suppress

from usercache.adapters.base import AsyncStorageAdapter
from usercache.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from usercache.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
]
