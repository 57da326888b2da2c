"""
Error Hierarchy for the Client State Layer

Design Principles:
- Storage adapters return errors inside Result values instead of raising
- Components recover locally; errors are logged, never thrown into the UI
- Carry full error context for debugging

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with log lines

Usage:
    result = await store.set(key, data)
    match result:
        case Ok(_):
            pass
        case Err(StorageError(code=ErrorCode.STORAGE_QUOTA_EXCEEDED)):
            logger.warning("history not persisted: quota exceeded")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from clientstate.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Storage errors (durable and volatile key-value stores)
    - 2xxx: Resolution errors (image loading and lookup)
    - 9xxx: Internal errors
    """

    # Storage errors (1xxx)
    STORAGE_CONNECTION_FAILED = 1001
    STORAGE_IO_FAILED = 1002
    STORAGE_QUOTA_EXCEEDED = 1003
    STORAGE_SERIALIZATION_FAILED = 1004
    STORAGE_CORRUPTION = 1005

    # Resolution errors (2xxx)
    RESOLUTION_LOAD_FAILED = 2001
    RESOLUTION_TIMEOUT = 2002
    RESOLUTION_INVALID_IMAGE = 2003
    RESOLUTION_LOOKUP_UNAVAILABLE = 2004

    # Internal errors (9xxx)
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class ClientStateError(Exception):
    """
    Base class for all client state errors.

    Provides an error ID, code, timestamp, cause and free-form context.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logs."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(ClientStateError):
    """
    Errors from the durable and volatile key-value stores.

    Covers I/O failures, quota limits, serialization and corrupt payloads.
    """

    @classmethod
    def connection_failed(
        cls,
        target: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """Remote store (e.g. Redis) unreachable."""
        return cls(
            code=ErrorCode.STORAGE_CONNECTION_FAILED,
            message=f"Failed to reach store at {target}",
            cause=cause,
            context={"target": target},
        )

    @classmethod
    def io_failed(
        cls,
        operation: str,
        key: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """Local medium read/write failed."""
        return cls(
            code=ErrorCode.STORAGE_IO_FAILED,
            message=f"Storage {operation} failed for key '{key}'",
            cause=cause,
            context={"operation": operation, "key": key},
        )

    @classmethod
    def quota_exceeded(
        cls,
        key: str,
        required_bytes: int,
        available_bytes: int,
    ) -> StorageError:
        """Write rejected because the store is full."""
        return cls(
            code=ErrorCode.STORAGE_QUOTA_EXCEEDED,
            message=(
                f"Quota exceeded writing '{key}': need {required_bytes} bytes, "
                f"{available_bytes} available"
            ),
            context={
                "key": key,
                "required_bytes": required_bytes,
                "available_bytes": available_bytes,
            },
        )

    @classmethod
    def serialization_failed(
        cls,
        what: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """Value could not be encoded for storage."""
        return cls(
            code=ErrorCode.STORAGE_SERIALIZATION_FAILED,
            message=f"Failed to serialize {what}",
            cause=cause,
            context={"what": what},
        )

    @classmethod
    def corrupt_payload(
        cls,
        key: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """Persisted bytes could not be decoded."""
        return cls(
            code=ErrorCode.STORAGE_CORRUPTION,
            message=f"Corrupt payload under '{key}': {reason}",
            cause=cause,
            context={"key": key, "reason": reason},
        )


# =============================================================================
# RESOLUTION ERRORS
# =============================================================================
@dataclass
class ResolutionError(ClientStateError):
    """
    Errors raised while realizing an image reference or looking one up.

    The image cache absorbs every ResolutionError into a fallback value;
    callers of ImageCache never observe one.
    """

    @classmethod
    def load_failed(
        cls,
        reference: str,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ) -> ResolutionError:
        return cls(
            code=ErrorCode.RESOLUTION_LOAD_FAILED,
            message=f"Failed to load image {reference}",
            cause=cause,
            context={"reference": reference, "status_code": status_code},
        )

    @classmethod
    def timeout(cls, reference: str, timeout_seconds: float) -> ResolutionError:
        return cls(
            code=ErrorCode.RESOLUTION_TIMEOUT,
            message=f"Image {reference} did not load within {timeout_seconds}s",
            context={"reference": reference, "timeout_seconds": timeout_seconds},
        )

    @classmethod
    def invalid_image(
        cls,
        reference: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> ResolutionError:
        """Bytes were fetched but are not a decodable image."""
        return cls(
            code=ErrorCode.RESOLUTION_INVALID_IMAGE,
            message=f"Reference {reference} is not a valid image: {reason}",
            cause=cause,
            context={"reference": reference, "reason": reason},
        )

    @classmethod
    def lookup_unavailable(
        cls,
        keyword: str,
        cause: Optional[BaseException] = None,
    ) -> ResolutionError:
        return cls(
            code=ErrorCode.RESOLUTION_LOOKUP_UNAVAILABLE,
            message=f"Image lookup unavailable for keyword '{keyword}'",
            cause=cause,
            context={"keyword": keyword},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(ClientStateError):
    """Invalid configuration detected at startup."""

    @classmethod
    def invalid(cls, field_name: str, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Invalid configuration for '{field_name}': {reason}",
            context={"field": field_name, "reason": reason},
        )
