"""
Image Cache: deduplicating, concurrency-limited reference resolution.

Components:
- ImageCache: per-key UNRESOLVED/PENDING/RESOLVED memo with batch preload
- ImageResolver / HttpImageResolver: confirm a reference loads
- RelatedImageService: keyword lookup with session memo and preload
"""

from clientstate.images.cache import (
    EntryState,
    ImageCache,
    ImageCacheStats,
    ImageRequest,
    build_image_requests,
)
from clientstate.images.resolver import ImageResolver, HttpImageResolver
from clientstate.images.related import (
    DEFAULT_IMAGE_SETS,
    ImageLookupClient,
    RelatedImageService,
    StaticImageLookup,
)

__all__ = [
    "EntryState",
    "ImageCache",
    "ImageCacheStats",
    "ImageRequest",
    "build_image_requests",
    "ImageResolver",
    "HttpImageResolver",
    "DEFAULT_IMAGE_SETS",
    "ImageLookupClient",
    "RelatedImageService",
    "StaticImageLookup",
]
