"""
Redis Volatile Store: Session-Scoped Key-Value Backend

Alternative volatile store for deployments where the "session" outlives a
single process (several workers serving one UI session). Every key is
written with an expiry of ``session_ttl_seconds``, which is what bounds
its lifetime to the session rather than to the Redis server.

Requires the optional ``redis`` package (``pip install clientstate[redis]``).
The import is deferred to ``connect()`` so the rest of the library never
depends on it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from clientstate.core.types import Result, Ok, Err
from clientstate.core.errors import StorageError
from clientstate.core import constants as C

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """
    Key-value store on ``redis.asyncio``.

    Example:
        store = RedisKeyValueStore("redis://cache:6379/0", key_prefix="ui:")
        await store.connect()
        await store.set("images_calm", b'["https://..."]')
    """

    __slots__ = ("_url", "_ttl_seconds", "_key_prefix", "_client")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        session_ttl_seconds: int = C.REDIS_SESSION_TTL_S,
        key_prefix: str = "clientstate:",
        client: Optional[Any] = None,
    ) -> None:
        """
        Args:
            url: Redis connection URL
            session_ttl_seconds: Expiry applied on every write
            key_prefix: Namespace prepended to every key
            client: Pre-built async client (skips connect())
        """
        self._url = url
        self._ttl_seconds = session_ttl_seconds
        self._key_prefix = key_prefix
        self._client = client

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> Result[None, StorageError]:
        """Create the client and verify the server answers PING."""
        if self._client is not None:
            return Ok(None)

        try:
            import redis.asyncio as aioredis
        except ImportError as e:
            return Err(StorageError.connection_failed(
                target="redis package not installed: pip install redis",
                cause=e,
            ))

        client = aioredis.Redis.from_url(self._url)
        try:
            await client.ping()
        except Exception as e:
            await client.aclose()
            return Err(StorageError.connection_failed(target=self._url, cause=e))

        self._client = client
        return Ok(None)

    async def close(self) -> None:
        """Close the client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> Result[Optional[bytes], StorageError]:
        if self._client is None:
            return Err(StorageError.connection_failed(target=self._url))
        try:
            value = await self._client.get(self._full_key(key))
        except Exception as e:
            return Err(StorageError.connection_failed(target=self._url, cause=e))
        if value is None:
            return Ok(None)
        return Ok(value.encode("utf-8") if isinstance(value, str) else bytes(value))

    async def set(self, key: str, data: bytes) -> Result[None, StorageError]:
        if self._client is None:
            return Err(StorageError.connection_failed(target=self._url))
        try:
            await self._client.set(self._full_key(key), data, ex=self._ttl_seconds)
        except Exception as e:
            return Err(StorageError.connection_failed(target=self._url, cause=e))
        return Ok(None)

    async def delete(self, key: str) -> Result[bool, StorageError]:
        if self._client is None:
            return Err(StorageError.connection_failed(target=self._url))
        try:
            removed = await self._client.delete(self._full_key(key))
        except Exception as e:
            return Err(StorageError.connection_failed(target=self._url, cause=e))
        return Ok(bool(removed))
