"""
In-memory stores.

Used for tests and guest sessions that should leave nothing behind.
"""

from __future__ import annotations

from datetime import datetime

from spaced_review.core.errors import NotFoundError
from spaced_review.core.models import ReviewableItem, ReviewAttempt, UserMetrics
from spaced_review.stores.base import AttemptFilter, StoreBundle, check_stale_write, select_due


class InMemoryItemStore:
    """Dict-backed ItemStore."""

    def __init__(self, items: list[ReviewableItem] | None = None):
        self._items: dict[str, ReviewableItem] = {item.id: item for item in items or []}

    def get_item(self, item_id: str) -> ReviewableItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise NotFoundError(f"Item not found: {item_id}") from None

    def list_due_items(
        self, before: datetime, limit: int, category_filter: str | None = None
    ) -> list[ReviewableItem]:
        return select_due(self._items.values(), before, limit, category_filter)

    def upsert_item(self, item: ReviewableItem) -> None:
        check_stale_write(self._items.get(item.id), item)
        self._items[item.id] = item

    def all_items(self) -> list[ReviewableItem]:
        return list(self._items.values())


class InMemoryAttemptStore:
    """List-backed AttemptStore."""

    def __init__(self) -> None:
        self._attempts: list[ReviewAttempt] = []

    def append_attempt(self, attempt: ReviewAttempt) -> None:
        self._attempts.append(attempt)

    def list_attempts(
        self, user_id: str, filters: AttemptFilter | None = None
    ) -> list[ReviewAttempt]:
        own = (a for a in self._attempts if a.user_id == user_id)
        return (filters or AttemptFilter()).apply(own)


class InMemoryMetricsStore:
    """Dict-backed MetricsStore."""

    def __init__(self) -> None:
        self._metrics: dict[str, UserMetrics] = {}

    def get_user_metrics(self, user_id: str) -> UserMetrics:
        return self._metrics.get(user_id) or UserMetrics(user_id=user_id)

    def upsert_user_metrics(self, user_id: str, metrics: UserMetrics) -> None:
        self._metrics[user_id] = metrics


def memory_bundle(items: list[ReviewableItem] | None = None) -> StoreBundle:
    return StoreBundle(
        items=InMemoryItemStore(items),
        attempts=InMemoryAttemptStore(),
        metrics=InMemoryMetricsStore(),
    )
