"""
Key-Value Backends: In-Memory (volatile) and FileSystem (durable)

- InMemoryKeyValueStore: lives as long as the process/session; optional
  byte quota mirrors browser storage limits and makes quota failures
  reproducible in tests.
- FileSystemKeyValueStore: survives restarts; one file per key.

Objects stored at: {data_dir}/{sha256(key)[:2]}/{sha256(key)}.bin
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from clientstate.core.types import Result, Ok, Err
from clientstate.core.errors import StorageError

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """
    Volatile key-value store.

    All operations complete without suspension, so concurrent callers on
    one event loop can never observe a half-applied write.
    """

    __slots__ = ("_data", "_quota_bytes", "_used_bytes")

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._data: dict[str, bytes] = {}
        self._quota_bytes = quota_bytes
        self._used_bytes = 0

    async def get(self, key: str) -> Result[Optional[bytes], StorageError]:
        return Ok(self._data.get(key))

    async def set(self, key: str, data: bytes) -> Result[None, StorageError]:
        previous = len(self._data.get(key, b""))
        projected = self._used_bytes - previous + len(data)

        if self._quota_bytes is not None and projected > self._quota_bytes:
            return Err(StorageError.quota_exceeded(
                key=key,
                required_bytes=len(data),
                available_bytes=max(0, self._quota_bytes - (self._used_bytes - previous)),
            ))

        self._data[key] = bytes(data)
        self._used_bytes = projected
        return Ok(None)

    async def delete(self, key: str) -> Result[bool, StorageError]:
        removed = self._data.pop(key, None)
        if removed is None:
            return Ok(False)
        self._used_bytes -= len(removed)
        return Ok(True)

    def keys(self) -> list[str]:
        """Snapshot of stored keys (diagnostics)."""
        return list(self._data)

    @property
    def used_bytes(self) -> int:
        return self._used_bytes


class FileSystemKeyValueStore:
    """
    Durable key-value store on the local filesystem.

    Writes go to a temporary file in the target directory and are moved
    into place with os.replace, so a crash mid-write leaves either the old
    or the new blob, never a torn one. Blocking file I/O runs in a worker
    thread via asyncio.to_thread.
    """

    __slots__ = ("_data_dir",)

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _key_to_path(self, key: str) -> Path:
        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._data_dir / key_hash[:2] / f"{key_hash}.bin"

    async def get(self, key: str) -> Result[Optional[bytes], StorageError]:
        path = self._key_to_path(key)
        try:
            data = await asyncio.to_thread(_read_if_exists, path)
            return Ok(data)
        except OSError as e:
            return Err(StorageError.io_failed("read", key, cause=e))

    async def set(self, key: str, data: bytes) -> Result[None, StorageError]:
        path = self._key_to_path(key)
        try:
            await asyncio.to_thread(_atomic_write, path, data)
            return Ok(None)
        except OSError as e:
            logger.debug("Filesystem write failed for %s: %s", path, e)
            return Err(StorageError.io_failed("write", key, cause=e))

    async def delete(self, key: str) -> Result[bool, StorageError]:
        path = self._key_to_path(key)
        try:
            removed = await asyncio.to_thread(_unlink_if_exists, path)
            return Ok(removed)
        except OSError as e:
            return Err(StorageError.io_failed("delete", key, cause=e))


def _read_if_exists(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".bin")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _unlink_if_exists(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
