"""
Stores Module.

Storage backends behind the ItemStore / AttemptStore / MetricsStore
protocols:
- memory: in-process dicts
- json: device-local JSON files
- sql: SQLAlchemy (SQLite or PostgreSQL)
- rest: remote review API over httpx
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spaced_review.stores.base import (
    AttemptFilter,
    AttemptStore,
    ItemSnapshot,
    ItemStore,
    MetricsStore,
    StoreBundle,
)
from spaced_review.stores.json_store import JsonFileStore
from spaced_review.stores.memory import (
    InMemoryAttemptStore,
    InMemoryItemStore,
    InMemoryMetricsStore,
    memory_bundle,
)

if TYPE_CHECKING:
    from spaced_review.config import Settings


def build_stores(settings: Settings) -> StoreBundle:
    """Create the store bundle selected by settings.store_backend."""
    backend = settings.store_backend
    if backend == "memory":
        return memory_bundle()
    if backend == "json":
        store = JsonFileStore(settings.data_dir)
    elif backend == "sql":
        from spaced_review.stores.sql import SqlStore

        store = SqlStore.from_url(settings.database_url, echo=settings.log_level == "DEBUG")
    elif backend == "rest":
        from spaced_review.stores.rest import RestStore

        store = RestStore(
            settings.rest_base_url,
            api_key=settings.rest_api_key,
            timeout=settings.rest_timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown store backend: {backend}")
    return StoreBundle(items=store, attempts=store, metrics=store)


__all__ = [
    "ItemStore",
    "ItemSnapshot",
    "AttemptStore",
    "MetricsStore",
    "AttemptFilter",
    "StoreBundle",
    "InMemoryItemStore",
    "InMemoryAttemptStore",
    "InMemoryMetricsStore",
    "memory_bundle",
    "JsonFileStore",
    "build_stores",
]
