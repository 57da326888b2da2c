"""History statistics for dashboard counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from clientstate.core import constants as C
from clientstate.history.records import HistoryActionType, HistoryRecord


@dataclass(frozen=True)
class HistoryStats:
    """Totals by kind and by age bucket (rolling windows, not calendar)."""

    total: int = 0
    by_kind: dict[HistoryActionType, int] = field(default_factory=dict)
    today: int = 0
    this_week: int = 0
    this_month: int = 0

    @classmethod
    def compute(cls, items: Iterable[HistoryRecord], now_ms: int) -> HistoryStats:
        total = today = week = month = 0
        by_kind: dict[HistoryActionType, int] = {}

        for record in items:
            total += 1
            by_kind[record.kind] = by_kind.get(record.kind, 0) + 1

            age = now_ms - record.created_at
            if age < C.DAY_MS:
                today += 1
            if age < C.WEEK_MS:
                week += 1
            if age < C.MONTH_MS:
                month += 1

        return cls(total=total, by_kind=by_kind, today=today, this_week=week, this_month=month)

    def count(self, kind: HistoryActionType) -> int:
        return self.by_kind.get(kind, 0)
