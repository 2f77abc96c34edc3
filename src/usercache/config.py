"""Settings loaded from the environment (``USERCACHE_*``) or a ``.env`` file."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from usercache.duration import parse_duration

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Configuration for the upstream client, cache store and logging."""

    # Upstream user API
    api_url: str = Field(default="http://localhost:4000/api", description="User API base URL")
    read_timeout: str = Field(default="10s", description="Timeout for read requests")
    write_timeout: str = Field(default="15s", description="Timeout for write requests")
    probe_timeout: str = Field(default="5s", description="Timeout for the availability probe")

    # Cache store
    cache_ttl: str = Field(default="5m", description="TTL applied to cached responses")
    cache_grace: str | None = Field(
        default="1h", description="How long expired entries remain usable by fallback reads"
    )
    cache_prefix: str = Field(default="usercache", description="Key prefix for all entries")
    cache_max_items: int | None = Field(
        default=1000, description="LRU bound for the in-memory store (None: unbounded)"
    )
    redis_url: str | None = Field(
        default=None, description="Redis URL; in-memory store when unset"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["console", "json"] = Field(default="console", description="Log renderer")

    model_config = SettingsConfigDict(
        env_prefix="USERCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("read_timeout", "write_timeout", "probe_timeout", "cache_ttl")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        if parse_duration(v) <= 0:
            raise ValueError(f"Duration must be positive: {v!r}")
        return v

    @field_validator("cache_grace")
    @classmethod
    def validate_grace(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        parse_duration(v)
        return v

    @field_validator("cache_max_items")
    @classmethod
    def validate_max_items(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("cache_max_items must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v!r}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings; call ``get_settings.cache_clear()`` to reload."""
    return Settings()


__all__ = ["Settings", "get_settings"]
