"""
Image Cache: Deduplicating, Concurrency-Limited Reference Resolution

Per-key state machine:

    UNRESOLVED --resolve()--> PENDING --attempt ends--> RESOLVED (terminal)

- PENDING is shared: concurrent resolve() calls for one key await the same
  task (fan-in), so the resolver runs at most once per key.
- RESOLVED is permanent for the session (memoization, no TTL or eviction).
- There is no failed state. Load errors and timeouts resolve to the
  original reference, so callers never need an error path for images.
  This hides genuinely broken references; see ``stats.fallbacks``.

Concurrency Model:
    Single event loop, cooperative. The memo and pending maps are checked
    and updated in one synchronous step before the first await, which is
    what makes the de-duplication race-free without locks.

Batch preloading is a grouped pipeline: groups of ``concurrency_limit``
run one after another, members of a group run concurrently, with a short
pause between groups to yield to other work.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, Optional, Sequence

from clientstate.core.types import Timestamp
from clientstate.core.errors import ResolutionError
from clientstate.core.config import ImageCacheConfig
from clientstate.images.resolver import ImageResolver
from clientstate.observability.logging import StructuredLogger

logger = StructuredLogger(__name__)


class EntryState(Enum):
    """Lifecycle of a cache key."""
    UNRESOLVED = auto()
    PENDING = auto()
    RESOLVED = auto()


@dataclass(frozen=True, slots=True)
class ImageRequest:
    """One preload request: logical cache key plus candidate reference."""
    key: str
    reference: str


def build_image_requests(prefix: str, references: Iterable[str]) -> list[ImageRequest]:
    """Key a multi-image set as ``<prefix>_<index>``."""
    return [ImageRequest(key=f"{prefix}_{i}", reference=ref) for i, ref in enumerate(references)]


@dataclass
class ImageCacheStats:
    """Cache diagnostics."""
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    fallbacks: int = 0
    timeouts: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class ImageCache:
    """
    Session memo of resolved image references.

    Usage:
        cache = ImageCache(HttpImageResolver())
        url = await cache.resolve("images_calm_0", "https://...")
        await cache.preload_batch(build_image_requests("images_calm", urls))
    """

    __slots__ = (
        "_resolver", "_config",
        "_resolved", "_pending", "_stragglers",
        "_generation", "_stats",
    )

    def __init__(
        self,
        resolver: ImageResolver,
        config: Optional[ImageCacheConfig] = None,
    ) -> None:
        self._resolver = resolver
        self._config = config or ImageCacheConfig()

        self._resolved: dict[str, str] = {}
        self._pending: dict[str, asyncio.Task[str]] = {}
        # Timed-out attempts still running in the background
        self._stragglers: set[asyncio.Task[str]] = set()
        # Bumped by clear(); attempts from an older generation are discarded
        self._generation = 0
        self._stats = ImageCacheStats()

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def size(self) -> int:
        """Number of memoized (RESOLVED) entries."""
        return len(self._resolved)

    def state(self, key: str) -> EntryState:
        if key in self._resolved:
            return EntryState.RESOLVED
        if key in self._pending:
            return EntryState.PENDING
        return EntryState.UNRESOLVED

    def get(self, key: str) -> Optional[str]:
        """Memoized reference, or None if not yet resolved."""
        return self._resolved.get(key)

    @property
    def stats(self) -> ImageCacheStats:
        return self._stats

    @property
    def config(self) -> ImageCacheConfig:
        return self._config

    # -------------------------------------------------------------------------
    # RESOLUTION
    # -------------------------------------------------------------------------

    async def resolve(self, key: str, reference: str) -> str:
        """
        Resolve key to a usable reference. Never raises for load failures.

        The first caller for an unresolved key starts the attempt; callers
        arriving while it is pending share its result.
        """
        # Check-and-insert below must stay free of awaits
        memo = self._resolved.get(key)
        if memo is not None:
            self._stats.hits += 1
            return memo

        task = self._pending.get(key)
        if task is not None:
            self._stats.coalesced += 1
        else:
            self._stats.misses += 1
            task = asyncio.get_running_loop().create_task(
                self._attempt(key, reference, self._generation),
                name=f"image-resolve:{key}",
            )
            self._pending[key] = task

        # Shield so one caller's cancellation does not cancel the shared attempt
        return await asyncio.shield(task)

    async def _attempt(self, key: str, reference: str, generation: int) -> str:
        started = Timestamp.now()
        timeout = self._config.resolve_timeout_seconds
        value = reference

        realize = asyncio.ensure_future(self._resolver.realize(reference))
        try:
            value = await asyncio.wait_for(asyncio.shield(realize), timeout=timeout)
        except asyncio.TimeoutError:
            self._stats.timeouts += 1
            self._stats.fallbacks += 1
            self._track_straggler(realize)
            logger.warning(
                "Image load timed out; using original reference",
                key=key,
                reference=reference,
                error=ResolutionError.timeout(reference, timeout).to_dict(),
            )
        except ResolutionError as e:
            self._stats.fallbacks += 1
            logger.warning(
                "Image load failed; using original reference",
                key=key,
                reference=reference,
                error=e.to_dict(),
            )
        except Exception as e:
            self._stats.fallbacks += 1
            logger.warning(
                "Image resolver raised; using original reference",
                key=key,
                reference=reference,
                error=repr(e),
            )
        finally:
            if self._pending.get(key) is asyncio.current_task():
                del self._pending[key]

        if not isinstance(value, str) or not value:
            value = reference

        if generation == self._generation:
            self._resolved.setdefault(key, value)
        logger.debug(
            "Image resolved",
            key=key,
            elapsed_ms=round(started.elapsed_millis(), 2),
        )
        return value

    def _track_straggler(self, realize: asyncio.Future[str]) -> None:
        self._stragglers.add(realize)

        def _finished(fut: asyncio.Future[str]) -> None:
            self._stragglers.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.debug("Timed-out image load finished with error", error=repr(fut.exception()))

        realize.add_done_callback(_finished)

    # -------------------------------------------------------------------------
    # BATCH PRELOAD
    # -------------------------------------------------------------------------

    async def preload_batch(self, requests: Sequence[ImageRequest | tuple[str, str]]) -> None:
        """
        Resolve every request, at most ``concurrency_limit`` at a time.

        Groups run strictly in sequence; a failing member never aborts its
        siblings or later groups. Returns once every group has settled.
        """
        normalized = [r if isinstance(r, ImageRequest) else ImageRequest(*r) for r in requests]
        if not normalized:
            return

        limit = self._config.concurrency_limit
        groups = [normalized[i:i + limit] for i in range(0, len(normalized), limit)]
        failures = 0

        for index, group in enumerate(groups):
            outcomes = await asyncio.gather(
                *(self.resolve(r.key, r.reference) for r in group),
                return_exceptions=True,
            )
            for request, outcome in zip(group, outcomes):
                if isinstance(outcome, BaseException):
                    failures += 1
                    logger.warning("Preload failed", key=request.key, error=repr(outcome))

            if index < len(groups) - 1 and self._config.inter_group_pause_seconds > 0:
                await asyncio.sleep(self._config.inter_group_pause_seconds)

        logger.debug(
            "Preload batch complete",
            requested=len(normalized),
            groups=len(groups),
            failures=failures,
        )

    # -------------------------------------------------------------------------
    # RESET
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """
        Drop all memoized entries and in-flight trackers.

        Attempts already running finish and are still returned to their
        waiting callers, but their results are not memoized.
        """
        self._resolved.clear()
        self._pending.clear()
        self._generation += 1
