"""
System-Wide Constants for the Client State Layer

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

SECOND_MS: Final[int] = 1000
MINUTE_MS: Final[int] = 60 * SECOND_MS
HOUR_MS: Final[int] = 60 * MINUTE_MS
DAY_MS: Final[int] = 24 * HOUR_MS
WEEK_MS: Final[int] = 7 * DAY_MS
MONTH_MS: Final[int] = 30 * DAY_MS

# =============================================================================
# HISTORY STORE
# =============================================================================
HISTORY_MAX_ITEMS: Final[int] = 1000
HISTORY_STORAGE_KEY: Final[str] = "psychology_assistant_history"
HISTORY_RETENTION_DAYS: Final[int] = 30
HISTORY_COMPRESSION_THRESHOLD_BYTES: Final[int] = 4 * KB
HISTORY_FORMAT_VERSION: Final[int] = 1

# =============================================================================
# IMAGE CACHE
# =============================================================================
IMAGE_CONCURRENCY_LIMIT: Final[int] = 4
IMAGE_RESOLVE_TIMEOUT_S: Final[float] = 5.0
IMAGE_INTER_GROUP_PAUSE_S: Final[float] = 0.05
IMAGE_MAX_BYTES: Final[int] = 20 * MB
IMAGE_USER_AGENT: Final[str] = "clientstate-image-cache/1.0"
RELATED_IMAGES_PER_KEYWORD: Final[int] = 6
RELATED_IMAGES_KEY_PREFIX: Final[str] = "images_"

# =============================================================================
# BACKING STORES
# =============================================================================
DEFAULT_DATA_DIR: Final[str] = "./data/clientstate"
REDIS_SESSION_TTL_S: Final[int] = 24 * 3600
