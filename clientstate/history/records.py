"""
History Records: Action Log Data Model

Records are immutable once created. Each carries a result payload drawn
from a closed, tagged union keyed by action kind; unknown tags decode to
OpaquePayload so newer writers never break older readers.

Wire Model (one JSON object per record):
    {
        "id": "1718000000000-3f2a...",
        "type": "search",             -- HistoryActionType value
        "title": "Search: anxiety",
        "description": "...",         -- optional
        "query": "anxiety",           -- optional
        "result": {"kind": "search", "contents": [...]},   -- optional
        "timestamp": 1718000000000,   -- ms since epoch
        "metadata": {}
    }
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Union
from uuid import uuid4

from clientstate.core.types import now_millis


# =============================================================================
# ACTION KINDS
# =============================================================================
class HistoryActionType(Enum):
    """Closed set of recorded user actions."""
    SEARCH = "search"
    PSYCHOLOGY_CONSULT = "psychology_consult"
    CONTENT_VIEW = "content_view"
    API_TEST = "api_test"

    @property
    def label(self) -> str:
        """Short human label for list headers."""
        return _ACTION_LABELS[self]


_ACTION_LABELS: dict[HistoryActionType, str] = {
    HistoryActionType.SEARCH: "Search",
    HistoryActionType.PSYCHOLOGY_CONSULT: "Consultation",
    HistoryActionType.CONTENT_VIEW: "Content view",
    HistoryActionType.API_TEST: "API test",
}


# =============================================================================
# COLLABORATOR PAYLOAD: GENERATED CONTENT
# =============================================================================
@dataclass(frozen=True, slots=True)
class GeneratedContent:
    """Content card produced by the content-generation client."""

    title: str
    description: str = ""
    tags: tuple[str, ...] = ()
    image_url: Optional[str] = None
    related_images: tuple[str, ...] = ()
    created_at: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "imageUrl": self.image_url,
            "relatedImages": list(self.related_images),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GeneratedContent:
        _require_mapping(data, "content")
        return cls(
            title=str(data.get("title", "")),
            description=str(data.get("description") or ""),
            tags=tuple(str(t) for t in data.get("tags") or ()),
            image_url=data.get("imageUrl"),
            related_images=tuple(str(u) for u in data.get("relatedImages") or ()),
            created_at=data.get("createdAt"),
        )


# =============================================================================
# RESULT PAYLOADS (TAGGED UNION)
# =============================================================================
def _require_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _decode_contents(data: Mapping[str, Any]) -> tuple[GeneratedContent, ...]:
    contents = data.get("contents") or ()
    if not isinstance(contents, (list, tuple)):
        raise TypeError("contents must be a list")
    return tuple(GeneratedContent.from_dict(c) for c in contents)


def _optional_str(data: Mapping[str, Any], name: str) -> Optional[str]:
    value = data.get(name)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{name} must be a string or null")
    return value


@dataclass(frozen=True, slots=True)
class SearchPayload:
    """Contents returned for a search."""
    tag: ClassVar[str] = HistoryActionType.SEARCH.value

    contents: tuple[GeneratedContent, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.tag, "contents": [c.to_dict() for c in self.contents]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchPayload:
        return cls(contents=_decode_contents(data))


@dataclass(frozen=True, slots=True)
class ConsultPayload:
    """Answer cards produced for a consultation question."""
    tag: ClassVar[str] = HistoryActionType.PSYCHOLOGY_CONSULT.value

    question: str = ""
    contents: tuple[GeneratedContent, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.tag,
            "question": self.question,
            "contents": [c.to_dict() for c in self.contents],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConsultPayload:
        return cls(
            question=str(data.get("question") or ""),
            contents=_decode_contents(data),
        )


@dataclass(frozen=True, slots=True)
class ContentViewPayload:
    """The content card the user opened."""
    tag: ClassVar[str] = HistoryActionType.CONTENT_VIEW.value

    content: GeneratedContent

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.tag, "content": self.content.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContentViewPayload:
        return cls(content=GeneratedContent.from_dict(data.get("content") or {}))


@dataclass(frozen=True, slots=True)
class ApiTestPayload:
    """Outcome of a connectivity test against an upstream API."""
    tag: ClassVar[str] = HistoryActionType.API_TEST.value

    endpoint: str
    success: bool
    status_code: Optional[int] = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.tag,
            "endpoint": self.endpoint,
            "success": self.success,
            "statusCode": self.status_code,
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ApiTestPayload:
        return cls(
            endpoint=str(data.get("endpoint", "")),
            success=bool(data.get("success", False)),
            status_code=data.get("statusCode"),
            detail=str(data.get("detail") or ""),
        )


@dataclass(frozen=True, slots=True)
class OpaquePayload:
    """Untyped payload; also the decode target for unknown tags."""
    tag: ClassVar[str] = "opaque"

    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.data, dict) and "kind" in self.data:
            # Preserve the foreign tag so the payload round-trips unchanged
            return dict(self.data)
        return {"kind": self.tag, "data": self.data}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OpaquePayload:
        if data.get("kind") == cls.tag:
            return cls(data=data.get("data"))
        return cls(data=dict(data))


ResultPayload = Union[SearchPayload, ConsultPayload, ContentViewPayload, ApiTestPayload, OpaquePayload]

_PAYLOAD_TYPES: dict[str, type] = {
    cls.tag: cls
    for cls in (SearchPayload, ConsultPayload, ContentViewPayload, ApiTestPayload, OpaquePayload)
}


def encode_payload(payload: Optional[ResultPayload]) -> Optional[dict[str, Any]]:
    return None if payload is None else payload.to_dict()


def decode_payload(raw: Any) -> Optional[ResultPayload]:
    """Decode a stored payload; anything unrecognised becomes OpaquePayload."""
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        return OpaquePayload(data=raw)
    payload_type = _PAYLOAD_TYPES.get(raw.get("kind"))
    if payload_type is None:
        return OpaquePayload.from_dict(raw)
    return payload_type.from_dict(raw)


# =============================================================================
# HISTORY RECORD
# =============================================================================
def generate_record_id(created_at: Optional[int] = None) -> str:
    """Unique record id: creation millis plus a random suffix."""
    millis = created_at if created_at is not None else now_millis()
    return f"{millis}-{uuid4().hex}"


@dataclass(frozen=True, slots=True)
class NewHistoryRecord:
    """Caller-supplied fields for HistoryStore.add_item."""

    kind: HistoryActionType
    title: str
    description: Optional[str] = None
    query: Optional[str] = None
    result: Optional[ResultPayload] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class HistoryRecord:
    """
    One entry of the action log.

    ``id`` and ``created_at`` are assigned by the store at creation and
    never change.
    """

    id: str
    kind: HistoryActionType
    title: str
    created_at: int
    description: Optional[str] = None
    query: Optional[str] = None
    result: Optional[ResultPayload] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, data: NewHistoryRecord, created_at: int) -> HistoryRecord:
        return cls(
            id=generate_record_id(created_at),
            kind=data.kind,
            title=data.title,
            created_at=created_at,
            description=data.description,
            query=data.query,
            result=data.result,
            metadata=dict(data.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "title": self.title,
            "description": self.description,
            "query": self.query,
            "result": encode_payload(self.result),
            "timestamp": self.created_at,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryRecord:
        """
        Rebuild a record from its stored form.

        Raises:
            KeyError, ValueError, TypeError: malformed record or payload
        """
        record_id = data["id"]
        created_at = data["timestamp"]
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("record id must be a non-empty string")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise TypeError("timestamp must be numeric")
        if not math.isfinite(created_at):
            raise ValueError("timestamp must be finite")

        return cls(
            id=record_id,
            kind=HistoryActionType(data["type"]),
            title=str(data["title"]),
            created_at=int(created_at),
            description=_optional_str(data, "description"),
            query=_optional_str(data, "query"),
            result=decode_payload(data.get("result")),
            metadata=dict(data.get("metadata") or {}),
        )
