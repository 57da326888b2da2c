"""
Unit Tests: Image Cache and Related Images

Tests:
    - Fan-in: concurrent resolves share one attempt
    - Timeout fallback within the bound
    - Failures resolve to the original reference
    - Grouped batch preload honours the concurrency limit
    - clear() / size() / state transitions
    - RelatedImageService memo, fallback and background preload
"""

import asyncio
import json
import time

import pytest

from clientstate.core.config import ImageCacheConfig
from clientstate.images import (
    DEFAULT_IMAGE_SETS,
    EntryState,
    ImageCache,
    ImageRequest,
    RelatedImageService,
    StaticImageLookup,
    build_image_requests,
)
from clientstate.storage.backends import InMemoryKeyValueStore
from clientstate.tests.fakes import ScriptedLookup, ScriptedResolver


def make_config(**overrides) -> ImageCacheConfig:
    values = {"inter_group_pause_seconds": 0.0, "resolve_timeout_seconds": 1.0}
    values.update(overrides)
    return ImageCacheConfig(**values)


class GatedResolver:
    """Resolves only once the gate is opened."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls = 0

    async def realize(self, reference: str) -> str:
        self.calls += 1
        await self.gate.wait()
        return f"resolved:{reference}"


class TestResolve:
    """Single-key resolution."""

    def test_concurrent_callers_share_one_attempt(self):
        resolver = ScriptedResolver(delay=0.01)
        cache = ImageCache(resolver, make_config())

        async def scenario():
            return await asyncio.gather(*(cache.resolve("k", "ref") for _ in range(10)))

        values = asyncio.run(scenario())

        assert resolver.calls == ["ref"]
        assert values == ["resolved:ref"] * 10
        assert cache.stats.misses == 1
        assert cache.stats.coalesced == 9

    def test_memo_hit_skips_resolver(self):
        resolver = ScriptedResolver()
        cache = ImageCache(resolver, make_config())

        async def scenario():
            await cache.resolve("k", "ref")
            return await cache.resolve("k", "other-ref")

        assert asyncio.run(scenario()) == "resolved:ref"
        assert len(resolver.calls) == 1
        assert cache.stats.hits == 1
        assert cache.stats.hit_rate == pytest.approx(0.5)

    def test_timeout_falls_back_within_bound(self):
        resolver = ScriptedResolver(hanging=frozenset({"slow"}))
        cache = ImageCache(resolver, make_config(resolve_timeout_seconds=0.05))

        async def scenario():
            started = time.monotonic()
            value = await cache.resolve("k", "slow")
            return value, time.monotonic() - started

        value, elapsed = asyncio.run(scenario())

        assert value == "slow"
        assert elapsed < 0.05 + 1.0
        assert cache.state("k") is EntryState.RESOLVED
        assert cache.stats.timeouts == 1
        assert cache.stats.fallbacks == 1

    def test_load_failure_returns_original_reference(self):
        resolver = ScriptedResolver(failing=frozenset({"broken"}))
        cache = ImageCache(resolver, make_config())

        assert asyncio.run(cache.resolve("k", "broken")) == "broken"
        assert cache.get("k") == "broken"
        assert cache.stats.fallbacks == 1

    def test_unexpected_exception_returns_original_reference(self):
        class CrashingResolver:
            async def realize(self, reference):
                raise KeyError(reference)

        cache = ImageCache(CrashingResolver(), make_config())

        assert asyncio.run(cache.resolve("k", "ref")) == "ref"
        assert cache.size() == 1

    def test_state_transitions(self):
        resolver = GatedResolver()
        cache = ImageCache(resolver, make_config())
        seen = []

        async def scenario():
            seen.append(cache.state("k"))
            task = asyncio.create_task(cache.resolve("k", "ref"))
            await asyncio.sleep(0)
            seen.append(cache.state("k"))
            resolver.gate.set()
            await task
            seen.append(cache.state("k"))

        asyncio.run(scenario())

        assert seen == [EntryState.UNRESOLVED, EntryState.PENDING, EntryState.RESOLVED]

    def test_cancelled_caller_does_not_cancel_shared_attempt(self):
        resolver = GatedResolver()
        cache = ImageCache(resolver, make_config())

        async def scenario():
            first = asyncio.create_task(cache.resolve("k", "ref"))
            second = asyncio.create_task(cache.resolve("k", "ref"))
            await asyncio.sleep(0)
            first.cancel()
            resolver.gate.set()
            value = await second
            with pytest.raises(asyncio.CancelledError):
                await first
            return value

        assert asyncio.run(scenario()) == "resolved:ref"
        assert resolver.calls == 1
        assert cache.get("k") == "resolved:ref"


class TestClear:
    """clear() and size()."""

    def test_clear_empties_cache(self):
        cache = ImageCache(ScriptedResolver(), make_config())

        async def scenario():
            await cache.preload_batch(build_image_requests("images_calm", ["a", "b", "c"]))

        asyncio.run(scenario())
        assert cache.size() == 3

        cache.clear()

        assert cache.size() == 0
        assert cache.state("images_calm_0") is EntryState.UNRESOLVED

    def test_in_flight_result_not_memoized_after_clear(self):
        resolver = GatedResolver()
        cache = ImageCache(resolver, make_config())

        async def scenario():
            task = asyncio.create_task(cache.resolve("k", "ref"))
            await asyncio.sleep(0)
            cache.clear()
            resolver.gate.set()
            return await task

        assert asyncio.run(scenario()) == "resolved:ref"
        assert cache.size() == 0


class TestPreloadBatch:
    """Grouped concurrent preload."""

    def test_poisoned_request_does_not_break_batch(self):
        refs = [f"ref-{i}" for i in range(10)]
        resolver = ScriptedResolver(failing=frozenset({"ref-4"}))
        cache = ImageCache(resolver, make_config())

        asyncio.run(cache.preload_batch(build_image_requests("images_x", refs)))

        assert cache.size() == 10
        assert cache.get("images_x_4") == "ref-4"
        assert cache.get("images_x_0") == "resolved:ref-0"

    def test_concurrency_limit_respected(self):
        resolver = ScriptedResolver(delay=0.01)
        cache = ImageCache(resolver, make_config(concurrency_limit=3))
        requests = build_image_requests("images_y", [f"r{i}" for i in range(10)])

        asyncio.run(cache.preload_batch(requests))

        assert len(resolver.calls) == 10
        assert resolver.max_in_flight <= 3

    def test_pause_between_groups(self):
        cache = ImageCache(ScriptedResolver(), make_config(concurrency_limit=2, inter_group_pause_seconds=0.05))

        async def scenario():
            started = time.monotonic()
            await cache.preload_batch([("k1", "a"), ("k2", "b"), ("k3", "c")])
            return time.monotonic() - started

        assert asyncio.run(scenario()) >= 0.04
        assert cache.size() == 3

    def test_accepts_tuples_and_requests(self):
        cache = ImageCache(ScriptedResolver(), make_config())

        asyncio.run(cache.preload_batch([ImageRequest("a", "ra"), ("b", "rb")]))

        assert cache.get("a") == "resolved:ra"
        assert cache.get("b") == "resolved:rb"

    def test_empty_batch(self):
        resolver = ScriptedResolver()
        cache = ImageCache(resolver, make_config())

        asyncio.run(cache.preload_batch([]))

        assert resolver.calls == []

    def test_build_image_requests_keys(self):
        requests = build_image_requests("images_calm", ["u0", "u1"])
        assert requests == [ImageRequest("images_calm_0", "u0"), ImageRequest("images_calm_1", "u1")]


class TestRelatedImages:
    """RelatedImageService: memo, fallback, preload."""

    def _service(self, lookup, store=None, cache=None):
        cache = cache or ImageCache(ScriptedResolver(), make_config())
        store = store or InMemoryKeyValueStore()
        return RelatedImageService(lookup, cache, store), cache, store

    def test_lookup_results_memoized_and_preloaded(self):
        refs = [f"https://img/{i}.jpg" for i in range(8)]
        lookup = ScriptedLookup(results=refs)
        service, cache, store = self._service(lookup)

        async def scenario():
            first = await service.get_related_images("calm")
            second = await service.get_related_images("calm")
            await service.wait_for_preloads()
            return first, second

        first, second = asyncio.run(scenario())

        assert first == refs[:6]
        assert second == first
        assert lookup.calls == [("calm", 6)]
        assert json.loads(asyncio.run(store.get("images_calm")).unwrap()) == refs[:6]
        assert cache.size() == 6
        assert cache.get("images_calm_5") == f"resolved:{refs[5]}"

    def test_memo_hit_skips_lookup(self):
        lookup = ScriptedLookup(results=["never"])
        store = InMemoryKeyValueStore()
        asyncio.run(store.set("images_calm", json.dumps(["cached"]).encode("utf-8")))
        service, _, _ = self._service(lookup, store=store)

        assert asyncio.run(service.get_related_images("calm")) == ["cached"]
        assert lookup.calls == []

    def test_corrupt_memo_refetched(self):
        lookup = ScriptedLookup(results=["fresh"])
        store = InMemoryKeyValueStore()
        asyncio.run(store.set("images_calm", b"\xff{oops"))
        service, _, _ = self._service(lookup, store=store)

        async def scenario():
            refs = await service.get_related_images("calm")
            await service.wait_for_preloads()
            return refs

        assert asyncio.run(scenario()) == ["fresh"]

    def test_lookup_failure_uses_topic_fallback(self):
        lookup = ScriptedLookup(error=ConnectionError("unreachable"))
        service, _, _ = self._service(lookup)

        async def scenario():
            refs = await service.get_related_images("Anxiety at work")
            await service.wait_for_preloads()
            return refs

        assert asyncio.run(scenario()) == list(DEFAULT_IMAGE_SETS["anxiety"][:6])

    def test_empty_lookup_uses_default_fallback(self):
        service, _, _ = self._service(ScriptedLookup(results=[]))

        async def scenario():
            refs = await service.get_related_images("sleep")
            await service.wait_for_preloads()
            return refs

        assert asyncio.run(scenario()) == list(DEFAULT_IMAGE_SETS["default"][:6])

    def test_concurrent_first_calls_share_preloads(self):
        class YieldingLookup(ScriptedLookup):
            async def search(self, keyword, limit):
                await asyncio.sleep(0)
                return await super().search(keyword, limit)

        lookup = YieldingLookup(results=["a", "b"])
        resolver = ScriptedResolver()
        cache = ImageCache(resolver, make_config())
        service, _, _ = self._service(lookup, cache=cache)

        async def scenario():
            results = await asyncio.gather(
                service.get_related_images("calm"),
                service.get_related_images("calm"),
            )
            await service.wait_for_preloads()
            return results

        assert asyncio.run(scenario()) == [["a", "b"], ["a", "b"]]
        assert len(lookup.calls) == 2
        assert sorted(resolver.calls) == ["a", "b"]
        assert cache.size() == 2

    def test_memo_write_failure_still_returns(self):
        lookup = ScriptedLookup(results=["a", "b"])
        service, cache, _ = self._service(lookup, store=InMemoryKeyValueStore(quota_bytes=1))

        async def scenario():
            refs = await service.get_related_images("calm")
            await service.wait_for_preloads()
            return refs

        assert asyncio.run(scenario()) == ["a", "b"]
        assert cache.size() == 2

    def test_static_lookup_requires_default(self):
        with pytest.raises(ValueError):
            StaticImageLookup({"anxiety": ["x"]})

    def test_static_lookup_limit(self):
        lookup = StaticImageLookup({"default": ["d1", "d2", "d3"], "stress": ["s1"]})
        assert asyncio.run(lookup.search("work stress", 5)) == ["s1"]
        assert asyncio.run(lookup.search("hobbies", 2)) == ["d1", "d2"]
