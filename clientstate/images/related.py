"""
Related Images: keyword lookup with a session memo and background preload

Flow for get_related_images(keyword):
    1. Volatile store hit under "images_<keyword>"  -> return memoized list
    2. Otherwise ask the lookup client for candidates
       (failure or empty result -> static fallback set)
    3. Write the list through to the volatile store
    4. Schedule ImageCache.preload_batch for "images_<keyword>_<i>" in the
       background and return the list without waiting for it

The ImageCache itself never talks to the lookup client; this service is
the caller that feeds it candidates.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional, Protocol, Sequence, runtime_checkable

from clientstate.core.errors import ResolutionError
from clientstate.core.config import ImageCacheConfig
from clientstate.storage.protocols import KeyValueStore
from clientstate.images.cache import ImageCache, build_image_requests

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageLookupClient(Protocol):
    """Upstream image search (e.g. a stock-photo API)."""

    async def search(self, keyword: str, limit: int) -> list[str]:
        """Candidate image references for keyword; may raise."""
        ...


_UNSPLASH = "https://images.unsplash.com/{}?auto=format&fit=crop&w=1470&q=80"

DEFAULT_IMAGE_SETS: dict[str, tuple[str, ...]] = {
    "anxiety": tuple(_UNSPLASH.format(p) for p in (
        "photo-1527525443983-6e60c75fff46",
        "photo-1542596594-649edbc13630",
        "photo-1490645935967-10de6ba17061",
        "photo-1474418397713-2f1091953b12",
        "photo-1517836357463-d25dfeac3438",
        "photo-1493770348161-369560ae357d",
    )),
    "depression": tuple(_UNSPLASH.format(p) for p in (
        "photo-1527525443983-6e60c75fff46",
        "photo-1541199249251-f713e6145474",
        "photo-1504674900247-0877df9cc836",
        "photo-1432139555190-58524dae6a55",
        "photo-1546069901-ba9599a7e63c",
        "photo-1529566652340-2c41a1eb6d93",
    )),
    "default": tuple(_UNSPLASH.format(p) for p in (
        "photo-1527525443983-6e60c75fff46",
        "photo-1541199249251-f713e6145474",
        "photo-1546069901-ba9599a7e63c",
        "photo-1512621776951-a57141f2eefd",
        "photo-1505253758473-96b7015fcd40",
        "photo-1504674900247-0877df9cc836",
    )),
}


class StaticImageLookup:
    """
    Curated offline image sets, matched by topic substring.

    Used as the fallback when the real lookup fails, and on its own for
    demos and tests.
    """

    __slots__ = ("_sets",)

    def __init__(self, image_sets: Optional[dict[str, Sequence[str]]] = None) -> None:
        sets = image_sets if image_sets is not None else DEFAULT_IMAGE_SETS
        if "default" not in sets:
            raise ValueError("image_sets must include a 'default' entry")
        self._sets = {topic.lower(): tuple(refs) for topic, refs in sets.items()}

    async def search(self, keyword: str, limit: int) -> list[str]:
        return self.lookup(keyword)[:limit]

    def lookup(self, keyword: str) -> list[str]:
        lowered = keyword.lower()
        for topic, refs in self._sets.items():
            if topic != "default" and topic in lowered:
                return list(refs)
        return list(self._sets["default"])


def _parse_memo(blob: Optional[bytes]) -> Optional[list[str]]:
    """Decoded memo list, or None when absent or corrupt."""
    if blob is None:
        return None
    try:
        cached = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError):
        logger.warning("Discarding corrupt session memo")
        return None
    if not isinstance(cached, list) or not all(isinstance(u, str) for u in cached):
        return None
    return cached


class RelatedImageService:
    """
    Keyword -> related image references, memoized for the session.

    Concurrent first calls for one keyword are not coalesced: each may
    query the lookup client, and the last memo write wins. Duplicate
    preloads are still collapsed by the ImageCache's per-key fan-in.

    Usage:
        service = RelatedImageService(lookup, cache, InMemoryKeyValueStore())
        urls = await service.get_related_images("anxiety coping")
    """

    __slots__ = ("_lookup", "_cache", "_store", "_config", "_fallback", "_preloads")

    def __init__(
        self,
        lookup: ImageLookupClient,
        cache: ImageCache,
        store: KeyValueStore,
        config: Optional[ImageCacheConfig] = None,
        fallback: Optional[StaticImageLookup] = None,
    ) -> None:
        self._lookup = lookup
        self._cache = cache
        self._store = store
        self._config = config or cache.config
        self._fallback = fallback or StaticImageLookup()
        self._preloads: set[asyncio.Task[None]] = set()

    def memo_key(self, keyword: str) -> str:
        return f"{self._config.related_key_prefix}{keyword}"

    async def get_related_images(self, keyword: str) -> list[str]:
        """Related references for keyword. Never raises for lookup or storage errors."""
        memo_key = self.memo_key(keyword)

        memoized = await self._read_memo(memo_key)
        if memoized is not None:
            logger.debug("Related images served from session memo", extra={"keyword": keyword})
            return memoized

        references = await self._search(keyword)

        written = await self._store.set(memo_key, json.dumps(references).encode("utf-8"))
        if written.is_err():
            logger.warning(
                "Could not memoize related images: %s", written.error,
                extra={"keyword": keyword},
            )

        self._schedule_preload(memo_key, references)
        return references

    async def wait_for_preloads(self) -> None:
        """Wait for every background preload started so far."""
        while self._preloads:
            await asyncio.gather(*list(self._preloads), return_exceptions=True)

    async def _read_memo(self, memo_key: str) -> Optional[list[str]]:
        read = (await self._store.get(memo_key)).map(_parse_memo)
        if read.is_err():
            logger.warning("Session memo unreadable: %s", read.error, extra={"memo_key": memo_key})
            return None
        return read.value

    async def _search(self, keyword: str) -> list[str]:
        limit = self._config.related_images_per_keyword
        try:
            references = await self._lookup.search(keyword, limit)
        except Exception as e:
            error = ResolutionError.lookup_unavailable(keyword, cause=e)
            logger.warning("%s; using fallback images", error, extra={"error": error.to_dict()})
            return self._fallback.lookup(keyword)[:limit]

        references = [r for r in references if isinstance(r, str) and r][:limit]
        if not references:
            logger.info("Lookup returned no images; using fallback", extra={"keyword": keyword})
            return self._fallback.lookup(keyword)[:limit]
        return references

    def _schedule_preload(self, memo_key: str, references: Sequence[str]) -> None:
        if not references:
            return
        task = asyncio.get_running_loop().create_task(
            self._cache.preload_batch(build_image_requests(memo_key, references)),
            name=f"preload:{memo_key}",
        )
        self._preloads.add(task)
        task.add_done_callback(self._preload_done)

    def _preload_done(self, task: asyncio.Task[None]) -> None:
        self._preloads.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Background preload failed: %r", task.exception())
