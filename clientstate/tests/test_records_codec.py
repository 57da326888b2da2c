"""
Unit Tests: Records, Filters and the Storage Codec

Tests:
    - HistoryFilter dimensions (kind, date range, keyword)
    - Tagged payload decoding, including unknown kinds
    - Blob encoding (plain and LZ4) and corrupt-input handling
"""

import json
from datetime import datetime, timedelta, timezone

import lz4.frame
import pytest

from clientstate.core.errors import ErrorCode
from clientstate.history import (
    ApiTestPayload,
    ConsultPayload,
    DateRange,
    GeneratedContent,
    HistoryActionType,
    HistoryFilter,
    HistoryRecord,
    OpaquePayload,
    SearchPayload,
    apply_filter,
    decode_records,
    encode_records,
)
from clientstate.history.codec import FLAG_LZ4, HEADER
from clientstate.history.records import decode_payload
from clientstate.tests.fakes import BASE_MS

KEY = "history"


def record(record_id, created_at=BASE_MS, kind=HistoryActionType.SEARCH, title="", **fields):
    return HistoryRecord(id=record_id, kind=kind, title=title or record_id, created_at=created_at, **fields)


class TestHistoryFilter:
    """Pure filtering over a record sequence."""

    def test_empty_filter(self):
        assert HistoryFilter().is_empty
        assert HistoryFilter(keyword="   ").is_empty
        assert not HistoryFilter(keyword="x").is_empty

    def test_kind(self):
        items = [record("a"), record("b", kind=HistoryActionType.API_TEST)]
        matched = apply_filter(items, HistoryFilter(kind=HistoryActionType.API_TEST))
        assert [r.id for r in matched] == ["b"]

    def test_keyword_case_insensitive_across_fields(self):
        items = [
            record("title-hit", title="Coping with ANXIETY"),
            record("desc-hit", description="notes on anxious thoughts"),
            record("query-hit", query="Anx"),
            record("miss", title="sleep", query="rest"),
        ]
        matched = apply_filter(items, HistoryFilter(keyword=" anx "))
        assert [r.id for r in matched] == ["title-hit", "desc-hit", "query-hit"]

    def test_date_range_half_open(self):
        start = datetime.fromtimestamp(BASE_MS / 1000, tz=timezone.utc)
        window = DateRange(start=start, end=start + timedelta(seconds=10))
        items = [
            record("at-start", created_at=BASE_MS),
            record("inside", created_at=BASE_MS + 5_000),
            record("at-end", created_at=BASE_MS + 10_000),
            record("before", created_at=BASE_MS - 1),
        ]
        matched = apply_filter(items, HistoryFilter(date_range=window))
        assert [r.id for r in matched] == ["at-start", "inside"]

    def test_naive_datetimes_are_utc(self):
        naive = datetime.fromtimestamp(BASE_MS / 1000, tz=timezone.utc).replace(tzinfo=None)
        window = DateRange(start=naive, end=naive + timedelta(milliseconds=1))
        assert window.contains(BASE_MS)
        assert not window.contains(BASE_MS + 1)

    def test_inverted_range_rejected(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValueError):
            DateRange(start=now, end=now - timedelta(days=1))

    def test_dimensions_are_anded(self):
        items = [
            record("s", kind=HistoryActionType.SEARCH, query="anxiety"),
            record("c", kind=HistoryActionType.PSYCHOLOGY_CONSULT, query="anxiety"),
        ]
        f = HistoryFilter(kind=HistoryActionType.PSYCHOLOGY_CONSULT, keyword="anxiety")
        assert [r.id for r in apply_filter(items, f)] == ["c"]

    def test_non_string_fields_do_not_match_or_raise(self):
        items = [record("odd", title="plain", query=42, description=3.5)]
        assert apply_filter(items, HistoryFilter(keyword="4")) == []

    def test_order_preserved(self):
        items = [record(str(i), query="calm") for i in range(5)]
        assert apply_filter(items, HistoryFilter(keyword="calm")) == items


class TestPayloads:
    """Tagged union encoding of result payloads."""

    def test_search_payload_round_trip(self):
        card = GeneratedContent(title="Breathing", tags=("calm",), image_url="https://img/1.jpg")
        payload = SearchPayload(contents=(card,))
        assert decode_payload(payload.to_dict()) == payload

    def test_consult_payload_wire_keys(self):
        card = GeneratedContent(title="Sleep", related_images=("a", "b"))
        data = ConsultPayload(question="why?", contents=(card,)).to_dict()
        assert data["kind"] == "psychology_consult"
        assert data["contents"][0]["relatedImages"] == ["a", "b"]
        assert "imageUrl" in data["contents"][0]

    def test_api_test_payload(self):
        payload = ApiTestPayload(endpoint="/health", success=False, status_code=503, detail="down")
        decoded = decode_payload(payload.to_dict())
        assert isinstance(decoded, ApiTestPayload)
        assert decoded.status_code == 503

    def test_unknown_kind_preserved_as_opaque(self):
        raw = {"kind": "mood_journal", "entries": [1, 2]}
        decoded = decode_payload(raw)
        assert isinstance(decoded, OpaquePayload)
        assert decoded.to_dict() == raw

    def test_non_mapping_becomes_opaque(self):
        decoded = decode_payload(["legacy", "list"])
        assert isinstance(decoded, OpaquePayload)
        assert decoded.data == ["legacy", "list"]

    def test_none(self):
        assert decode_payload(None) is None

    def test_action_labels(self):
        assert HistoryActionType.PSYCHOLOGY_CONSULT.label == "Consultation"
        assert {k.value for k in HistoryActionType} == {
            "search", "psychology_consult", "content_view", "api_test",
        }


class TestCodec:
    """encode_records / decode_records."""

    def test_plain_encoding_below_threshold(self):
        blob = encode_records([record("a")], compression_threshold=1 << 20).unwrap()
        version, flags = HEADER.unpack_from(blob)
        assert version == 1
        assert flags & FLAG_LZ4 == 0
        assert json.loads(blob[HEADER.size:])[0]["id"] == "a"

    def test_lz4_above_threshold(self):
        records = [record(f"id-{i}", created_at=BASE_MS - i, query="anxiety " * 20) for i in range(50)]
        blob = encode_records(records, compression_threshold=64).unwrap()
        _, flags = HEADER.unpack_from(blob)
        assert flags & FLAG_LZ4
        lz4.frame.decompress(blob[HEADER.size:])

        decoded = decode_records(KEY, blob).unwrap()
        assert decoded == records

    def test_wire_field_names(self):
        blob = encode_records([record("a", query="q", metadata={"m": 1})]).unwrap()
        obj = json.loads(blob[HEADER.size:])[0]
        assert obj["type"] == "search"
        assert obj["timestamp"] == BASE_MS
        assert obj["metadata"] == {"m": 1}

    @pytest.mark.parametrize("blob", [
        b"",
        b"\x01",
        b"\x07\x00[]",
        b"\x01\x01not-an-lz4-frame",
        b"\x01\x00{broken",
        b"\x01\x00{\"a\": 1}",
    ])
    def test_whole_blob_damage_is_corruption(self, blob):
        result = decode_records(KEY, blob)
        assert result.is_err()
        assert result.error.code is ErrorCode.STORAGE_CORRUPTION

    def test_malformed_entries_skipped(self):
        good = record("good").to_dict()
        body = json.dumps([
            good,
            "not-an-object",
            {"id": "no-timestamp", "type": "search", "title": "x"},
            {"id": "bad-kind", "type": "mystery", "title": "x", "timestamp": BASE_MS},
            {"id": "", "type": "search", "title": "x", "timestamp": BASE_MS},
            {"id": "bool-ts", "type": "search", "title": "x", "timestamp": True},
        ]).encode("utf-8")
        decoded = decode_records(KEY, HEADER.pack(1, 0) + body).unwrap()
        assert [r.id for r in decoded] == ["good"]

    def test_malformed_payloads_and_timestamps_skipped(self):
        def entry(record_id, **overrides):
            data = {"id": record_id, "type": "search", "title": "x", "timestamp": BASE_MS}
            data.update(overrides)
            return data

        body = json.dumps([
            entry("good", result={"kind": "search", "contents": [{"title": "ok"}]}),
            entry("content-not-object", result={"kind": "search", "contents": ["oops"]}),
            entry("contents-not-list", result={"kind": "psychology_consult", "contents": 7}),
            entry("view-not-object", result={"kind": "content_view", "content": "oops"}),
            entry("infinite-ts", timestamp=float("inf")),
            entry("nan-ts", timestamp=float("nan")),
            entry("numeric-query", query=42),
            entry("list-description", description=["a"]),
        ]).encode("utf-8")

        decoded = decode_records(KEY, HEADER.pack(1, 0) + body).unwrap()

        assert [r.id for r in decoded] == ["good"]
        assert decoded[0].result.contents[0].title == "ok"

    def test_deeply_nested_json_is_corruption(self):
        body = b"[" * 100_000 + b"]" * 100_000
        result = decode_records(KEY, HEADER.pack(1, 0) + body)
        assert result.is_err()
        assert result.error.code is ErrorCode.STORAGE_CORRUPTION

    def test_unserializable_metadata_is_err(self):
        result = encode_records([record("a", metadata={"obj": object()})])
        assert result.is_err()
        assert result.error.code is ErrorCode.STORAGE_SERIALIZATION_FAILED
