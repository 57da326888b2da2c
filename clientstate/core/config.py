"""
Configuration Management for the Client State Layer

Provides validated configuration with sensible defaults.
Supports environment variable overrides (prefix CLIENTSTATE_).

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from clientstate.core.types import Result, Ok, Err
from clientstate.core.errors import ConfigurationError
from clientstate.core import constants as C


DURABLE_BACKENDS: frozenset[str] = frozenset({"memory", "filesystem"})
VOLATILE_BACKENDS: frozenset[str] = frozenset({"memory", "redis"})


@dataclass(frozen=True)
class HistoryConfig:
    """History Store configuration."""

    max_items: int = C.HISTORY_MAX_ITEMS
    storage_key: str = C.HISTORY_STORAGE_KEY
    auto_cleanup: bool = True
    retention_days: int = C.HISTORY_RETENTION_DAYS
    compression_threshold_bytes: int = C.HISTORY_COMPRESSION_THRESHOLD_BYTES

    @property
    def retention_ms(self) -> int:
        """Retention window in milliseconds."""
        return self.retention_days * C.DAY_MS


@dataclass(frozen=True)
class ImageCacheConfig:
    """Image Cache and preload scheduler configuration."""

    concurrency_limit: int = C.IMAGE_CONCURRENCY_LIMIT
    resolve_timeout_seconds: float = C.IMAGE_RESOLVE_TIMEOUT_S
    inter_group_pause_seconds: float = C.IMAGE_INTER_GROUP_PAUSE_S
    max_image_bytes: int = C.IMAGE_MAX_BYTES
    user_agent: str = C.IMAGE_USER_AGENT
    related_images_per_keyword: int = C.RELATED_IMAGES_PER_KEYWORD
    related_key_prefix: str = C.RELATED_IMAGES_KEY_PREFIX


@dataclass(frozen=True)
class StorageConfig:
    """Backing store selection."""

    backend: str = "filesystem"  # durable: "memory" or "filesystem"
    data_dir: Path = field(default_factory=lambda: Path(C.DEFAULT_DATA_DIR))
    volatile_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_session_ttl_seconds: int = C.REDIS_SESSION_TTL_S
    memory_quota_bytes: Optional[int] = None


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class ClientStateConfig:
    """Root configuration."""

    history: HistoryConfig = field(default_factory=HistoryConfig)
    images: ImageCacheConfig = field(default_factory=ImageCacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[ClientStateConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with CLIENTSTATE_.
        Example: CLIENTSTATE_HISTORY_MAX_ITEMS, CLIENTSTATE_DATA_DIR
        """
        try:
            history = HistoryConfig(
                max_items=int(os.getenv("CLIENTSTATE_HISTORY_MAX_ITEMS", str(C.HISTORY_MAX_ITEMS))),
                storage_key=os.getenv("CLIENTSTATE_HISTORY_STORAGE_KEY", C.HISTORY_STORAGE_KEY),
                auto_cleanup=_env_bool("CLIENTSTATE_HISTORY_AUTO_CLEANUP", True),
                retention_days=int(os.getenv(
                    "CLIENTSTATE_HISTORY_RETENTION_DAYS", str(C.HISTORY_RETENTION_DAYS)
                )),
            )

            images = ImageCacheConfig(
                concurrency_limit=int(os.getenv(
                    "CLIENTSTATE_IMAGE_CONCURRENCY", str(C.IMAGE_CONCURRENCY_LIMIT)
                )),
                resolve_timeout_seconds=float(os.getenv(
                    "CLIENTSTATE_IMAGE_TIMEOUT_S", str(C.IMAGE_RESOLVE_TIMEOUT_S)
                )),
                inter_group_pause_seconds=float(os.getenv(
                    "CLIENTSTATE_IMAGE_GROUP_PAUSE_S", str(C.IMAGE_INTER_GROUP_PAUSE_S)
                )),
            )

            quota = os.getenv("CLIENTSTATE_MEMORY_QUOTA_BYTES")
            storage = StorageConfig(
                backend=os.getenv("CLIENTSTATE_STORAGE_BACKEND", "filesystem"),
                data_dir=Path(os.getenv("CLIENTSTATE_DATA_DIR", C.DEFAULT_DATA_DIR)),
                volatile_backend=os.getenv("CLIENTSTATE_VOLATILE_BACKEND", "memory"),
                redis_url=os.getenv("CLIENTSTATE_REDIS_URL", "redis://localhost:6379/0"),
                memory_quota_bytes=int(quota) if quota else None,
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("CLIENTSTATE_LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("CLIENTSTATE_LOG_JSON", True),
            )

            return Ok(cls(
                history=history,
                images=images,
                storage=storage,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        if self.history.max_items < 1:
            return Err(ConfigurationError.invalid("history.max_items", "must be >= 1"))
        if self.history.retention_days < 1:
            return Err(ConfigurationError.invalid("history.retention_days", "must be >= 1"))
        if not self.history.storage_key:
            return Err(ConfigurationError.invalid("history.storage_key", "must not be empty"))
        if self.images.concurrency_limit < 1:
            return Err(ConfigurationError.invalid("images.concurrency_limit", "must be >= 1"))
        if self.images.resolve_timeout_seconds <= 0:
            return Err(ConfigurationError.invalid("images.resolve_timeout_seconds", "must be > 0"))
        if self.images.inter_group_pause_seconds < 0:
            return Err(ConfigurationError.invalid("images.inter_group_pause_seconds", "must be >= 0"))
        if self.storage.backend not in DURABLE_BACKENDS:
            return Err(ConfigurationError.invalid(
                "storage.backend", f"unknown backend {self.storage.backend!r}"
            ))
        if self.storage.volatile_backend not in VOLATILE_BACKENDS:
            return Err(ConfigurationError.invalid(
                "storage.volatile_backend", f"unknown backend {self.storage.volatile_backend!r}"
            ))
        return Ok(None)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
