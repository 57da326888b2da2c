"""
History Manager: bounded, retention-managed action log.

Components:
- HistoryRecord / NewHistoryRecord: immutable log entries and their input
- Result payloads: tagged union per action kind
- HistoryFilter / DateRange: pure filtered view
- HistoryStore: the log, with best-effort durable persistence
- HistoryStats / HistoryRecorder: counters and one-call action helpers
"""

from clientstate.history.records import (
    HistoryActionType,
    GeneratedContent,
    SearchPayload,
    ConsultPayload,
    ContentViewPayload,
    ApiTestPayload,
    OpaquePayload,
    ResultPayload,
    HistoryRecord,
    NewHistoryRecord,
    generate_record_id,
)
from clientstate.history.filters import DateRange, HistoryFilter, apply_filter
from clientstate.history.codec import encode_records, decode_records
from clientstate.history.stats import HistoryStats
from clientstate.history.store import HistoryStore
from clientstate.history.recorder import HistoryRecorder

__all__ = [
    "HistoryActionType",
    "GeneratedContent",
    "SearchPayload",
    "ConsultPayload",
    "ContentViewPayload",
    "ApiTestPayload",
    "OpaquePayload",
    "ResultPayload",
    "HistoryRecord",
    "NewHistoryRecord",
    "generate_record_id",
    "DateRange",
    "HistoryFilter",
    "apply_filter",
    "encode_records",
    "decode_records",
    "HistoryStats",
    "HistoryStore",
    "HistoryRecorder",
]
