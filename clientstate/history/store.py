"""
History Store: Bounded, Retention-Managed Action Log

Maintains the ordered log of user actions and its filtered view, and
persists it to a durable key-value store across restarts.

Consistency Contract:
    In-memory state is the source of truth. Every mutation is applied to
    the in-memory log synchronously, before the call returns; persistence
    is an outbound, best-effort side effect scheduled afterwards.

    - Persists run one at a time, in mutation order. A persist that is
      overtaken by a newer one before it starts is skipped, since the
      newer snapshot supersedes it.
    - Storage failures are logged once per persist and recorded in
      ``last_storage_error``; they never roll back the in-memory change
      and never raise to the caller.
    - A crash between a mutation and its persist loses that mutation on
      reload. Call ``flush()`` before shutdown to drain pending persists.

Invariants (hold after every call):
    - items are ordered newest-first by created_at
    - ids are unique
    - len(items) <= config.max_items
    - after load() with auto_cleanup, no item is older than retention_days
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from clientstate.core.types import Ok, Err, now_millis
from clientstate.core.errors import StorageError
from clientstate.core.config import HistoryConfig
from clientstate.storage.protocols import KeyValueStore
from clientstate.history.codec import encode_records, decode_records
from clientstate.history.filters import HistoryFilter, apply_filter
from clientstate.history.records import HistoryActionType, HistoryRecord, NewHistoryRecord
from clientstate.history.stats import HistoryStats

logger = logging.getLogger(__name__)

# Snapshot handed to the persist queue; None means "erase the stored set".
_Snapshot = Optional[tuple[HistoryRecord, ...]]


class HistoryStore:
    """
    Action log with capacity and age bounds.

    Usage:
        store = await HistoryStore.open(FileSystemKeyValueStore(data_dir))

        store.add_item(NewHistoryRecord(
            kind=HistoryActionType.SEARCH,
            title="Search: anxiety",
            query="anxiety",
        ))
        store.filter_items(HistoryFilter(keyword="anx"))
        visible = store.filtered_items

        await store.flush()
    """

    __slots__ = (
        "_backend", "_config", "_clock",
        "_items", "_filter", "_view_cache",
        "_persist_tail", "_pending", "_persist_seq",
        "_last_error", "_loaded",
    )

    def __init__(
        self,
        backend: KeyValueStore,
        config: Optional[HistoryConfig] = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        """
        Args:
            backend: Durable key-value store holding the serialized set
            config: Capacity, retention and storage key settings
            clock: Millisecond wall clock (injectable for tests)
        """
        self._backend = backend
        self._config = config or HistoryConfig()
        self._clock = clock

        self._items: tuple[HistoryRecord, ...] = ()
        self._filter = HistoryFilter()
        self._view_cache: Optional[tuple[tuple[HistoryRecord, ...], HistoryFilter, tuple[HistoryRecord, ...]]] = None

        self._persist_tail: Optional[asyncio.Task[None]] = None
        self._pending: set[asyncio.Task[None]] = set()
        self._persist_seq = 0

        self._last_error: Optional[StorageError] = None
        self._loaded = False

    @classmethod
    async def open(
        cls,
        backend: KeyValueStore,
        config: Optional[HistoryConfig] = None,
        clock: Callable[[], int] = now_millis,
    ) -> HistoryStore:
        """Construct a store and load the persisted set."""
        store = cls(backend, config, clock)
        await store.load()
        return store

    # -------------------------------------------------------------------------
    # LOAD
    # -------------------------------------------------------------------------

    async def load(self) -> tuple[HistoryRecord, ...]:
        """
        Read the persisted set and expose it as the live set.

        Unreadable or corrupt data loads as an empty set. With auto_cleanup
        enabled, records older than the retention window are dropped and
        the pruned set is written back before it becomes visible.
        """
        key = self._config.storage_key

        try:
            read = await self._backend.get(key)
        except Exception as e:
            # Third-party stores may raise despite the Result contract
            logger.exception("History backend raised", extra={"storage_key": key})
            read = Err(StorageError.io_failed("load", key, cause=e))

        loaded = read.flat_map(lambda blob: Ok([]) if blob is None else decode_records(key, blob))
        if loaded.is_err():
            self._note_failure(loaded.error, "load")
        stored: list[HistoryRecord] = loaded.unwrap_or([])

        records = self._normalize(stored)

        if self._config.auto_cleanup:
            cutoff = self._clock() - self._config.retention_ms
            records = [r for r in records if r.created_at > cutoff]

        records = records[: self._config.max_items]

        if records != stored:
            dropped = len(stored) - len(records)
            logger.info(
                "History pruned on load",
                extra={"storage_key": key, "dropped": dropped, "kept": len(records)},
            )
            await self._write(tuple(records))

        self._items = tuple(records)
        self._loaded = True
        return self._items

    @staticmethod
    def _normalize(records: list[HistoryRecord]) -> list[HistoryRecord]:
        """Newest-first, first occurrence of each id wins."""
        seen: set[str] = set()
        unique: list[HistoryRecord] = []
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            unique.append(record)
        unique.sort(key=lambda r: r.created_at, reverse=True)
        return unique

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    @property
    def items(self) -> tuple[HistoryRecord, ...]:
        """Live set, newest first."""
        return self._items

    @property
    def filtered_items(self) -> tuple[HistoryRecord, ...]:
        """Live set restricted to the active filter."""
        if self._filter.is_empty:
            return self._items

        cached = self._view_cache
        if cached is not None and cached[0] is self._items and cached[1] == self._filter:
            return cached[2]

        view = tuple(apply_filter(self._items, self._filter))
        self._view_cache = (self._items, self._filter, view)
        return view

    @property
    def active_filter(self) -> HistoryFilter:
        return self._filter

    @property
    def config(self) -> HistoryConfig:
        return self._config

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def pending_writes(self) -> int:
        """Persists scheduled but not yet finished."""
        return len(self._pending)

    @property
    def last_storage_error(self) -> Optional[StorageError]:
        """Most recent storage failure; cleared by the next successful persist."""
        return self._last_error

    def get_item_by_id(self, record_id: str) -> Optional[HistoryRecord]:
        for record in self._items:
            if record.id == record_id:
                return record
        return None

    def stats(self) -> HistoryStats:
        """Counts by kind and by recency over the live set."""
        return HistoryStats.compute(self._items, self._clock())

    # -------------------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------------------

    def add_item(self, data: NewHistoryRecord) -> HistoryRecord:
        """
        Prepend a new record and drop the oldest beyond max_items.

        created_at never goes below the newest existing record's, so a
        clock stepping backwards cannot break newest-first ordering.
        """
        created_at = self._clock()
        if self._items and self._items[0].created_at > created_at:
            created_at = self._items[0].created_at

        record = HistoryRecord.create(data, created_at)
        self._items = ((record,) + self._items)[: self._config.max_items]

        logger.debug(
            "History item added",
            extra={"record_id": record.id, "kind": record.kind.value, "size": len(self._items)},
        )
        self._schedule_persist(self._items)
        return record

    def remove_item(self, record_id: str) -> bool:
        """Remove one record. Unknown ids are a no-op and return False."""
        remaining = tuple(r for r in self._items if r.id != record_id)
        if len(remaining) == len(self._items):
            return False

        self._items = remaining
        self._schedule_persist(self._items)
        return True

    def clear_by_type(self, kind: HistoryActionType) -> int:
        """Remove every record of kind; returns the number removed."""
        remaining = tuple(r for r in self._items if r.kind is not kind)
        removed = len(self._items) - len(remaining)
        if removed == 0:
            return 0

        self._items = remaining
        self._schedule_persist(self._items)
        return removed

    def clear_all(self) -> None:
        """Empty the live set and erase the persisted set."""
        self._items = ()
        self._schedule_persist(None)

    def filter_items(self, history_filter: HistoryFilter) -> None:
        """Replace the active filter. The live set is untouched."""
        self._filter = history_filter

    def reset_filter(self) -> None:
        self._filter = HistoryFilter()

    # -------------------------------------------------------------------------
    # PERSISTENCE
    # -------------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait until every scheduled persist has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _schedule_persist(self, snapshot: _Snapshot) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            # Called from plain synchronous code: persist inline.
            asyncio.run(self._write(snapshot))
            return

        self._persist_seq += 1
        task = loop.create_task(
            self._write_after(self._persist_tail, self._persist_seq, snapshot),
            name=f"history-persist-{self._persist_seq}",
        )
        self._persist_tail = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_after(
        self,
        previous: Optional[asyncio.Task[None]],
        seq: int,
        snapshot: _Snapshot,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        if seq < self._persist_seq:
            # A newer snapshot is queued behind us and supersedes this one
            return

        await self._write(snapshot)

    async def _write(self, snapshot: _Snapshot) -> None:
        key = self._config.storage_key
        try:
            if snapshot is None:
                result = await self._backend.delete(key)
                operation = "erase"
            else:
                encoded = encode_records(snapshot, self._config.compression_threshold_bytes)
                if encoded.is_err():
                    self._note_failure(encoded.error, "encode")
                    return
                result = await self._backend.set(key, encoded.unwrap())
                operation = "save"
        except Exception as e:
            # Third-party stores may raise despite the Result contract
            logger.exception("History backend raised", extra={"storage_key": key})
            self._last_error = StorageError.io_failed("persist", key, cause=e)
            return

        if result.is_err():
            self._note_failure(result.error, operation)
        else:
            self._last_error = None

    def _note_failure(self, error: StorageError, operation: str) -> None:
        self._last_error = error
        logger.warning(
            "History %s failed; continuing in memory: %s",
            operation,
            error,
            extra={"storage_key": self._config.storage_key, "error": error.to_dict()},
        )
