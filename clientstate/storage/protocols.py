"""
Key-Value Store Protocol: Backing Store Abstraction

Both backing stores (durable and volatile) share one contract: get/set/delete
of serialized byte blobs under a string key. Stores are constructed
explicitly and passed into the components that use them, so tests swap in
in-memory fakes without touching real persistence.

Design Principles:
    - Zero-exception control flow via Result[T, StorageError]
    - Async-first so file and network media never block the event loop
    - Protocol classes for structural subtyping
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from clientstate.core.types import Result
from clientstate.core.errors import StorageError


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Byte-blob store keyed by string.

    Implementations must never raise for medium failures; they return
    Err(StorageError) instead.
    """

    @abstractmethod
    async def get(self, key: str) -> Result[Optional[bytes], StorageError]:
        """
        Retrieve the blob stored under key.

        Returns:
            Ok(bytes): Blob found
            Ok(None): Key absent
            Err(StorageError): Medium failure
        """
        ...

    @abstractmethod
    async def set(self, key: str, data: bytes) -> Result[None, StorageError]:
        """Store blob under key, replacing any previous value."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> Result[bool, StorageError]:
        """
        Remove key.

        Returns:
            Ok(True) if a value was removed, Ok(False) if key was absent.
        """
        ...
