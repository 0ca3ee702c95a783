"""
Unit tests for the in-memory stores and the shared store helpers.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from spaced_review.config import Settings
from spaced_review.core.errors import ConcurrencyError, NotFoundError
from spaced_review.core.models import ReviewableItem, ReviewAttempt, UserMetrics
from spaced_review.stores import (
    AttemptFilter,
    AttemptStore,
    InMemoryAttemptStore,
    InMemoryItemStore,
    InMemoryMetricsStore,
    ItemSnapshot,
    ItemStore,
    JsonFileStore,
    MetricsStore,
    build_stores,
)


class TestInMemoryItemStore:
    """Tests for dict-backed item storage."""

    def test_protocols(self):
        store = InMemoryItemStore()
        assert isinstance(store, ItemStore)
        assert isinstance(store, ItemSnapshot)

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            InMemoryItemStore().get_item("nope")

    def test_list_due(self, due_deck, now):
        """Never-reviewed items come first, then oldest due, then id."""
        store = InMemoryItemStore(due_deck)
        due = store.list_due_items(before=now, limit=10)
        assert [item.id for item in due] == ["new", "overdue", "due-now"]

    def test_list_due_limit_and_category(self, now):
        store = InMemoryItemStore(
            [
                ReviewableItem(id="a", category="grammar", next_review_date=now),
                ReviewableItem(id="b", category="vocabulary", next_review_date=now),
                ReviewableItem(id="c", category="vocabulary", next_review_date=now),
            ]
        )
        assert [i.id for i in store.list_due_items(now, limit=1)] == ["a"]
        assert [i.id for i in store.list_due_items(now, 10, "vocabulary")] == ["b", "c"]

    def test_stale_write_rejected(self, now):
        """A write carrying an older review than the stored one is refused."""
        store = InMemoryItemStore()
        fresh = ReviewableItem(id="q", last_reviewed_at=now)
        store.upsert_item(fresh)

        with pytest.raises(ConcurrencyError):
            store.upsert_item(replace(fresh, last_reviewed_at=now - timedelta(minutes=1)))
        assert store.get_item("q") == fresh

    def test_same_review_instant_accepted(self, now):
        store = InMemoryItemStore([ReviewableItem(id="q", last_reviewed_at=now)])
        store.upsert_item(ReviewableItem(id="q", last_reviewed_at=now, mastered=True))
        assert store.get_item("q").mastered


class TestInMemoryAttemptStore:
    """Tests for the append-only attempt log."""

    def test_protocol(self):
        assert isinstance(InMemoryAttemptStore(), AttemptStore)

    def test_scoped_to_user_and_ordered(self, now):
        store = InMemoryAttemptStore()
        later = ReviewAttempt(item_id="q", user_id="u", correct=True, timestamp=now)
        earlier = ReviewAttempt(
            item_id="q", user_id="u", correct=False, timestamp=now - timedelta(hours=1)
        )
        other = ReviewAttempt(item_id="q", user_id="someone-else", correct=True, timestamp=now)
        for a in (later, earlier, other):
            store.append_attempt(a)

        assert store.list_attempts("u") == [earlier, later]

    def test_filters(self, now):
        store = InMemoryAttemptStore()
        for i in range(5):
            store.append_attempt(
                ReviewAttempt(
                    item_id=f"q{i % 2}",
                    user_id="u",
                    category="grammar" if i % 2 else "vocabulary",
                    correct=True,
                    timestamp=now - timedelta(days=i),
                )
            )

        assert len(store.list_attempts("u", AttemptFilter(category="grammar"))) == 2
        assert len(store.list_attempts("u", AttemptFilter(item_id="q0"))) == 3
        assert len(store.list_attempts("u", AttemptFilter(since=now - timedelta(days=1)))) == 2
        recent = store.list_attempts("u", AttemptFilter(limit=2))
        assert [a.timestamp for a in recent] == [now - timedelta(days=1), now]


class TestInMemoryMetricsStore:
    def test_unknown_user_is_zeroed(self):
        store = InMemoryMetricsStore()
        assert isinstance(store, MetricsStore)
        assert store.get_user_metrics("u") == UserMetrics(user_id="u")

    def test_upsert(self):
        store = InMemoryMetricsStore()
        store.upsert_user_metrics("u", UserMetrics(user_id="u", streak=3))
        assert store.get_user_metrics("u").streak == 3


class TestBuildStores:
    """Tests for backend selection from settings."""

    def test_memory(self):
        bundle = build_stores(Settings(_env_file=None, store_backend="memory"))
        assert isinstance(bundle.items, InMemoryItemStore)

    def test_json(self, tmp_path):
        bundle = build_stores(Settings(_env_file=None, store_backend="json", data_dir=tmp_path))
        assert isinstance(bundle.items, JsonFileStore)
        assert bundle.items is bundle.attempts is bundle.metrics
