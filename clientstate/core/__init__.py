"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions:
- Result/Either monads for zero-exception control flow
- Error hierarchy with codes and structured context
- Configuration management with validation
"""

from clientstate.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    now_millis,
)
from clientstate.core.errors import (
    ErrorCode,
    ClientStateError,
    StorageError,
    ResolutionError,
    ConfigurationError,
)
from clientstate.core.config import (
    ClientStateConfig,
    HistoryConfig,
    ImageCacheConfig,
    StorageConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "now_millis",
    "ErrorCode",
    "ClientStateError",
    "StorageError",
    "ResolutionError",
    "ConfigurationError",
    "ClientStateConfig",
    "HistoryConfig",
    "ImageCacheConfig",
    "StorageConfig",
    "ObservabilityConfig",
]
