"""
Client State Layer

Process-wide state for a conversational UI shell:
- History Store: bounded, retention-managed action log with filtering,
  persisted best-effort to a durable key-value store
- Image Cache: deduplicating, concurrency-limited image reference
  resolution memoized for the session

Both components recover from storage and network failures locally; the UI
layer never sees an exception from either.

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from clientstate.core.types import Result, Ok, Err, Timestamp
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
)

# Backing stores
from clientstate.storage import (
    KeyValueStore,
    InMemoryKeyValueStore,
    FileSystemKeyValueStore,
    RedisKeyValueStore,
    create_durable_store,
    create_volatile_store,
)

# History Manager exports
from clientstate.history import (
    HistoryActionType,
    HistoryRecord,
    NewHistoryRecord,
    HistoryFilter,
    DateRange,
    HistoryStore,
    HistoryStats,
    HistoryRecorder,
)

# Image Cache exports
from clientstate.images import (
    EntryState,
    ImageCache,
    ImageRequest,
    HttpImageResolver,
    RelatedImageService,
    StaticImageLookup,
)

__all__ = [
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    # Errors
    "ErrorCode",
    "ClientStateError",
    "StorageError",
    "ResolutionError",
    "ConfigurationError",
    # Config
    "ClientStateConfig",
    "HistoryConfig",
    "ImageCacheConfig",
    "StorageConfig",
    # Storage
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "FileSystemKeyValueStore",
    "RedisKeyValueStore",
    "create_durable_store",
    "create_volatile_store",
    # History
    "HistoryActionType",
    "HistoryRecord",
    "NewHistoryRecord",
    "HistoryFilter",
    "DateRange",
    "HistoryStore",
    "HistoryStats",
    "HistoryRecorder",
    # Images
    "EntryState",
    "ImageCache",
    "ImageRequest",
    "HttpImageResolver",
    "RelatedImageService",
    "StaticImageLookup",
]
