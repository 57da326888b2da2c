#!/usr/bin/env python3
"""
Client State Layer

Entry point demonstrating history logging and image caching end to end,
fully offline.

Usage:
    python -m clientstate

    # Or with custom config
    CLIENTSTATE_DATA_DIR=/tmp/cs CLIENTSTATE_HISTORY_MAX_ITEMS=50 python -m clientstate
"""

from __future__ import annotations

import asyncio
import sys

from clientstate.core.config import ClientStateConfig
from clientstate.observability.logging import setup_logging, LogLevel
from clientstate.storage import create_durable_store, create_volatile_store
from clientstate.history import (
    GeneratedContent,
    HistoryFilter,
    HistoryRecorder,
    HistoryStore,
)
from clientstate.images import ImageCache, RelatedImageService, StaticImageLookup


class OfflineResolver:
    """Accepts every reference without touching the network."""

    async def realize(self, reference: str) -> str:
        await asyncio.sleep(0)
        return reference


async def demo_local_mode() -> None:
    """Run the demo against the configured durable store and an offline resolver."""
    print("\n" + "=" * 60)
    print("Client State Layer - Local Demo")
    print("=" * 60 + "\n")

    config_result = ClientStateConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)

    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        sys.exit(1)

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    print("✓ Configuration loaded and validated")
    print(f"  Durable store: {config.storage.backend} ({config.storage.data_dir})")
    print(f"  History: max_items={config.history.max_items}, retention={config.history.retention_days}d")

    # 1. History
    store = await HistoryStore.open(create_durable_store(config.storage), config.history)
    print(f"\n1. Loaded {len(store.items)} history records")

    recorder = HistoryRecorder(store)
    card = GeneratedContent(
        title="Understanding anxiety",
        description="Anxiety is a normal response to stress.",
        tags=("anxiety", "stress"),
    )
    recorder.record_search("anxiety")
    recorder.record_consult("How can I handle stress before exams?", [card])
    recorder.record_content_view(card)

    store.filter_items(HistoryFilter(keyword="anx"))
    print(f"2. {len(store.filtered_items)} of {len(store.items)} records match 'anx'")
    store.reset_filter()

    stats = store.stats()
    print(f"3. Stats: total={stats.total} today={stats.today} by_kind="
          f"{ {k.value: v for k, v in stats.by_kind.items()} }")

    await store.flush()
    if store.last_storage_error is not None:
        print(f"   Storage warning: {store.last_storage_error}")

    # 2. Images
    volatile = create_volatile_store(config.storage)
    cache = ImageCache(OfflineResolver(), config.images)
    lookup = StaticImageLookup()
    related = RelatedImageService(lookup, cache, volatile, config.images)

    references = await related.get_related_images("anxiety relief")
    await related.wait_for_preloads()
    print(f"\n4. Related images: {len(references)} references, {cache.size()} cached")
    print(f"   Cache stats: {cache.stats}")

    print("\n✓ Demo complete")
    print("=" * 60 + "\n")


async def main() -> None:
    """Main entry point."""
    try:
        await demo_local_mode()
    except KeyboardInterrupt:
        print("\nInterrupted")


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
