"""
Storage Module: Backing Store Abstraction Layer
================================================

Provides:
- KeyValueStore protocol shared by the durable and volatile stores
- In-memory and filesystem implementations
- Optional Redis volatile backend
- Factory functions for backend selection from StorageConfig

Example:
    >>> durable = create_durable_store(StorageConfig(backend="filesystem"))
    >>> volatile = create_volatile_store(StorageConfig())
"""

from __future__ import annotations

from clientstate.core.config import StorageConfig
from clientstate.storage.protocols import KeyValueStore
from clientstate.storage.backends import InMemoryKeyValueStore, FileSystemKeyValueStore
from clientstate.storage.redis_store import RedisKeyValueStore


def create_durable_store(config: StorageConfig) -> KeyValueStore:
    """
    Create the store that backs the History Store.

    "memory" is accepted for tests and demos; it does not survive restarts.
    """
    if config.backend == "filesystem":
        return FileSystemKeyValueStore(config.data_dir)
    if config.backend == "memory":
        return InMemoryKeyValueStore(quota_bytes=config.memory_quota_bytes)
    raise ValueError(f"Unknown durable backend: {config.backend!r}")


def create_volatile_store(config: StorageConfig) -> KeyValueStore:
    """
    Create the session-scoped store used for related-image memos.

    A RedisKeyValueStore is returned unconnected; call ``connect()`` first.
    """
    if config.volatile_backend == "memory":
        return InMemoryKeyValueStore(quota_bytes=config.memory_quota_bytes)
    if config.volatile_backend == "redis":
        return RedisKeyValueStore(
            url=config.redis_url,
            session_ttl_seconds=config.redis_session_ttl_seconds,
        )
    raise ValueError(f"Unknown volatile backend: {config.volatile_backend!r}")


__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "FileSystemKeyValueStore",
    "RedisKeyValueStore",
    "create_durable_store",
    "create_volatile_store",
]
