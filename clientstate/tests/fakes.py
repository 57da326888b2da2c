"""
Test doubles shared by the suites.

All fakes are plain in-process objects; nothing here touches the network
or the real filesystem.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from clientstate.core.types import Result, Ok, Err
from clientstate.core.errors import ResolutionError, StorageError
from clientstate.storage.backends import InMemoryKeyValueStore

BASE_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = BASE_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingStore(InMemoryKeyValueStore):
    """In-memory store that counts writes and can be told to fail."""

    __slots__ = ("set_calls", "delete_calls", "fail_reads", "fail_writes")

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        super().__init__(quota_bytes=quota_bytes)
        self.set_calls = 0
        self.delete_calls = 0
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> Result[Optional[bytes], StorageError]:
        if self.fail_reads:
            return Err(StorageError.io_failed("read", key))
        return await super().get(key)

    async def set(self, key: str, data: bytes) -> Result[None, StorageError]:
        self.set_calls += 1
        if self.fail_writes:
            return Err(StorageError.io_failed("write", key))
        return await super().set(key, data)

    async def delete(self, key: str) -> Result[bool, StorageError]:
        self.delete_calls += 1
        if self.fail_writes:
            return Err(StorageError.io_failed("delete", key))
        return await super().delete(key)


class ScriptedResolver:
    """
    Resolver whose behaviour is chosen per reference.

    - references in ``failing`` raise ResolutionError
    - references in ``hanging`` never complete
    - everything else resolves to ``"resolved:" + reference`` after ``delay``
    """

    def __init__(
        self,
        delay: float = 0.0,
        failing: frozenset[str] = frozenset(),
        hanging: frozenset[str] = frozenset(),
    ) -> None:
        self.delay = delay
        self.failing = failing
        self.hanging = hanging
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def realize(self, reference: str) -> str:
        self.calls.append(reference)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if reference in self.hanging:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delay)
            if reference in self.failing:
                raise ResolutionError.load_failed(reference, status_code=404)
            return f"resolved:{reference}"
        finally:
            self.in_flight -= 1


class ScriptedLookup:
    """Image lookup client returning a fixed answer or raising."""

    def __init__(self, results: Optional[list[str]] = None, error: Optional[Exception] = None) -> None:
        self.results = results or []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, keyword: str, limit: int) -> list[str]:
        self.calls.append((keyword, limit))
        if self.error is not None:
            raise self.error
        return list(self.results)


def ok_value(result: Result) -> object:
    assert isinstance(result, Ok), result
    return result.value
