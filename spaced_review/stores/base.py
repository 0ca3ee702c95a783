"""
Store interfaces.

The engine reads and writes through three protocols and never knows
whether they are backed by memory, local files, SQL or a remote API.
Implementations raise PersistenceError on I/O failure, NotFoundError
for missing items, and ConcurrencyError for stale item writes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from spaced_review.core.errors import ConcurrencyError
from spaced_review.core.models import ReviewableItem, ReviewAttempt, UserMetrics, to_utc
from spaced_review.scheduling.due_queue import due_sort_key

# =============================================================================
# Protocol Definitions
# =============================================================================


@runtime_checkable
class ItemStore(Protocol):
    """Scheduling state per item."""

    def get_item(self, item_id: str) -> ReviewableItem:
        """Return the item or raise NotFoundError."""
        ...

    def list_due_items(
        self, before: datetime, limit: int, category_filter: str | None = None
    ) -> list[ReviewableItem]:
        """Items due at `before`, ordered by next review date then id."""
        ...

    def upsert_item(self, item: ReviewableItem) -> None:
        """Insert or replace an item."""
        ...


@runtime_checkable
class ItemSnapshot(Protocol):
    """Full listing of items, for dashboards built on the due-queue builder."""

    def all_items(self) -> list[ReviewableItem]:
        ...


@runtime_checkable
class AttemptStore(Protocol):
    """Append-only attempt log."""

    def append_attempt(self, attempt: ReviewAttempt) -> None:
        ...

    def list_attempts(
        self, user_id: str, filters: AttemptFilter | None = None
    ) -> list[ReviewAttempt]:
        """Attempts for a learner, oldest first."""
        ...


@runtime_checkable
class MetricsStore(Protocol):
    """Learner-level counters."""

    def get_user_metrics(self, user_id: str) -> UserMetrics:
        """Stored metrics, or zeroed metrics for an unknown learner."""
        ...

    def upsert_user_metrics(self, user_id: str, metrics: UserMetrics) -> None:
        ...


@dataclass
class AttemptFilter:
    """Optional narrowing for list_attempts."""

    category: str | None = None
    item_id: str | None = None
    since: datetime | None = None  # Inclusive
    until: datetime | None = None  # Exclusive
    limit: int | None = None  # Most recent N, still returned oldest first

    def matches(self, attempt: ReviewAttempt) -> bool:
        since = to_utc(self.since)
        until = to_utc(self.until)
        return (
            (self.category is None or attempt.category == self.category)
            and (self.item_id is None or attempt.item_id == self.item_id)
            and (since is None or attempt.timestamp >= since)
            and (until is None or attempt.timestamp < until)
        )

    def apply(self, attempts: Iterable[ReviewAttempt]) -> list[ReviewAttempt]:
        selected = sorted(
            (a for a in attempts if self.matches(a)), key=lambda a: (a.timestamp, a.id)
        )
        if self.limit is not None:
            selected = selected[-self.limit :] if self.limit > 0 else []
        return selected


@dataclass
class StoreBundle:
    """The three stores a review session needs."""

    items: ItemStore
    attempts: AttemptStore
    metrics: MetricsStore


# =============================================================================
# Shared helpers for implementations
# =============================================================================


def select_due(
    items: Iterable[ReviewableItem],
    before: datetime,
    limit: int,
    category_filter: str | None = None,
) -> list[ReviewableItem]:
    """
    In-process due selection shared by the memory and JSON stores.

    Never-reviewed items (no next review date) count as due and sort first.
    """
    before = to_utc(before)
    due = [
        item
        for item in items
        if (item.next_review_date is None or item.next_review_date <= before)
        and (category_filter is None or item.category == category_filter)
    ]
    due.sort(key=due_sort_key)
    return due[: max(0, limit)]


def check_stale_write(stored: ReviewableItem | None, incoming: ReviewableItem) -> None:
    """Reject a write that would replace a more recently reviewed state."""
    if stored is None or stored.last_reviewed_at is None:
        return
    if incoming.last_reviewed_at is None or incoming.last_reviewed_at < stored.last_reviewed_at:
        raise ConcurrencyError(
            f"Stale write for item {incoming.id}: stored review at "
            f"{stored.last_reviewed_at.isoformat()} is newer"
        )
