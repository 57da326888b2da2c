"""History filtering: a pure view over the live record set."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from clientstate.history.records import HistoryActionType, HistoryRecord

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def _to_millis(moment: datetime) -> int:
    # Naive datetimes are taken as UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // _ONE_MS


@dataclass(frozen=True, slots=True)
class DateRange:
    """Half-open creation-time window: start <= created_at < end."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if _to_millis(self.end) < _to_millis(self.start):
            raise ValueError(f"end ({self.end}) must be >= start ({self.start})")

    def contains(self, created_at_ms: int) -> bool:
        return _to_millis(self.start) <= created_at_ms < _to_millis(self.end)


@dataclass(frozen=True, slots=True)
class HistoryFilter:
    """
    Active filter state. Dimensions are AND'd; the keyword is matched
    case-insensitively against title, description and query (OR'd).
    """

    kind: Optional[HistoryActionType] = None
    date_range: Optional[DateRange] = None
    keyword: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.kind is None and self.date_range is None and not self._needle

    @property
    def _needle(self) -> str:
        return (self.keyword or "").strip().lower()

    def matches(self, record: HistoryRecord) -> bool:
        if self.kind is not None and record.kind is not self.kind:
            return False
        if self.date_range is not None and not self.date_range.contains(record.created_at):
            return False
        needle = self._needle
        if needle:
            haystacks = (record.title, record.description, record.query)
            if not any(isinstance(h, str) and needle in h.lower() for h in haystacks):
                return False
        return True


def apply_filter(items: Sequence[HistoryRecord], history_filter: HistoryFilter) -> list[HistoryRecord]:
    """Return the members of items that match, in their original order."""
    if history_filter.is_empty:
        return list(items)
    return [record for record in items if history_filter.matches(record)]
