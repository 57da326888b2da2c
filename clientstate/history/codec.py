"""
History Codec: Record Set Serialization

Blob layout:
    [1 byte format version][1 byte flags][body]

    flags bit 0: body is an LZ4 frame (compressed JSON)
    body:        UTF-8 JSON array of record objects, newest first

Large histories are compressed with LZ4 once the JSON exceeds the
configured threshold; small ones stay plain so they remain greppable.
"""

from __future__ import annotations

import json
import logging
import struct
from typing import Any, Sequence

import lz4.frame

from clientstate.core.types import Result, Ok, Err
from clientstate.core.errors import StorageError
from clientstate.core import constants as C
from clientstate.history.records import HistoryRecord

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">BB")
FLAG_LZ4: int = 0x01


def encode_records(
    records: Sequence[HistoryRecord],
    compression_threshold: int = C.HISTORY_COMPRESSION_THRESHOLD_BYTES,
) -> Result[bytes, StorageError]:
    """Serialize a record set to a storage blob."""
    try:
        body = json.dumps(
            [r.to_dict() for r in records],
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        return Err(StorageError.serialization_failed("history record set", cause=e))

    flags = 0
    if len(body) > compression_threshold:
        body = lz4.frame.compress(body)
        flags |= FLAG_LZ4

    return Ok(HEADER.pack(C.HISTORY_FORMAT_VERSION, flags) + body)


def decode_records(key: str, blob: bytes) -> Result[list[HistoryRecord], StorageError]:
    """
    Deserialize a storage blob.

    Whole-blob damage (header, frame, JSON, root type) yields Err; single
    malformed records are dropped with a warning so one bad entry does not
    cost the user their whole history.
    """
    if len(blob) < HEADER.size:
        return Err(StorageError.corrupt_payload(key, "truncated header"))

    version, flags = HEADER.unpack_from(blob)
    if version != C.HISTORY_FORMAT_VERSION:
        return Err(StorageError.corrupt_payload(key, f"unsupported format version {version}"))

    body = blob[HEADER.size:]
    if flags & FLAG_LZ4:
        try:
            body = lz4.frame.decompress(body)
        except (RuntimeError, ValueError) as e:
            return Err(StorageError.corrupt_payload(key, "invalid LZ4 frame", cause=e))

    try:
        raw: Any = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        return Err(StorageError.corrupt_payload(key, "invalid JSON", cause=e))

    if not isinstance(raw, list):
        return Err(StorageError.corrupt_payload(key, "root is not a list"))

    records: list[HistoryRecord] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("Skipping non-object history entry", extra={"index": index})
            continue
        try:
            records.append(HistoryRecord.from_dict(item))
        except (KeyError, ValueError, TypeError, AttributeError, OverflowError) as e:
            logger.warning(
                "Skipping malformed history entry",
                extra={"index": index, "reason": str(e)},
            )

    return Ok(records)
