"""
Unit tests for the review session controller.

Runs against in-memory stores with a fixed clock; persistence failures
are simulated with small wrapper stores.
"""

from datetime import timedelta

import pytest

from spaced_review.core.errors import (
    ConcurrencyError,
    PersistenceError,
    SessionStateError,
    ValidationError,
)
from spaced_review.core.models import ReviewableItem, ReviewStatus, StrategyKind
from spaced_review.session import ReviewSessionController, SessionPhase
from spaced_review.stores import InMemoryItemStore, StoreBundle
from spaced_review.stores.memory import memory_bundle


class FlakyItemStore(InMemoryItemStore):
    """Fails the first `failures` writes with the given error."""

    def __init__(self, items, failures=0, error=PersistenceError):
        super().__init__(items)
        self.failures = failures
        self.error = error
        self.write_calls = 0

    def upsert_item(self, item):
        self.write_calls += 1
        if self.write_calls <= self.failures:
            raise self.error("disk full")
        super().upsert_item(item)


class BrokenDueStore(InMemoryItemStore):
    def list_due_items(self, before, limit, category_filter=None):
        raise PersistenceError("connection refused")


class BrokenMetricsStore:
    def get_user_metrics(self, user_id):
        raise PersistenceError("metrics offline")

    def upsert_user_metrics(self, user_id, metrics):
        raise PersistenceError("metrics offline")


@pytest.fixture
def questions(now):
    return [
        ReviewableItem(
            id=f"q{i}",
            category="networking",
            next_review_date=now - timedelta(days=i + 1),
            interval_days=1,
            review_count=1,
            last_reviewed_at=now - timedelta(days=i + 2),
        )
        for i in range(3)
    ]


@pytest.fixture
def make_controller(settings, clock):
    def _make(stores, **overrides):
        custom = settings.model_copy(update=overrides) if overrides else settings
        return ReviewSessionController(stores, user_id="learner", clock=clock, settings=custom)

    return _make


class TestSessionFlow:
    """Tests for the happy path through a session."""

    def test_start_orders_oldest_first(self, make_controller, questions):
        controller = make_controller(memory_bundle(questions))
        queue = controller.start()

        assert [item.id for item in queue] == ["q2", "q1", "q0"]
        assert controller.phase is SessionPhase.PRESENTING
        assert controller.current.id == "q2"
        assert controller.remaining == 3

    def test_full_session(self, make_controller, questions, now):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()

        first = controller.submit(4)
        controller.submit(0)
        controller.submit(3)

        assert controller.phase is SessionPhase.IDLE
        assert first.persisted
        assert first.item.next_review_date == now + timedelta(days=6)
        assert stores.items.get_item("q2") == first.item

        attempts = stores.attempts.list_attempts("learner")
        assert sorted(a.quality for a in attempts) == [0, 3, 4]
        assert all(a.timestamp == now for a in attempts)

        summary = controller.summary
        assert (summary.answered, summary.correct) == (3, 2)
        assert summary.accuracy == pytest.approx(2 / 3)

    def test_metrics_updated_once_per_session(self, make_controller, questions, now):
        """Three correct answers in one session add one streak day, not three."""
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()
        for _ in range(3):
            controller.submit(3)

        metrics = stores.metrics.get_user_metrics("learner")
        assert metrics.total_questions == 3
        assert metrics.correct_answers == 3
        assert metrics.streak == 1
        assert metrics.last_activity_date == now.date()

    def test_limit_and_category(self, make_controller, questions, now):
        items = [*questions, ReviewableItem(id="v1", category="vocabulary", next_review_date=now)]
        controller = make_controller(memory_bundle(items))

        assert [i.id for i in controller.start(limit=2)] == ["q2", "q1"]
        controller.abandon()
        assert [i.id for i in controller.start(category="vocabulary")] == ["v1"]

    def test_session_limit_setting(self, make_controller, questions):
        controller = make_controller(memory_bundle(questions), session_limit=1)
        assert len(controller.start()) == 1

    def test_empty_queue(self, make_controller):
        controller = make_controller(memory_bundle())

        assert controller.start() == []
        assert controller.phase is SessionPhase.IDLE
        assert controller.current is None

    def test_skip(self, make_controller, questions):
        controller = make_controller(memory_bundle(questions))
        controller.start()
        controller.skip()
        controller.submit(3)
        summary = controller.finish()

        assert summary.skipped == 1
        assert summary.answered == 1
        assert summary.discarded == 1

    def test_finish_early_applies_metrics(self, make_controller, questions):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()
        controller.submit(3)
        summary = controller.finish()

        assert summary.discarded == 2
        assert stores.metrics.get_user_metrics("learner").total_questions == 1
        assert controller.finish() is summary

    def test_abandon_leaves_metrics_untouched(self, make_controller, questions):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()

        assert controller.abandon() == 3
        assert controller.phase is SessionPhase.IDLE
        assert controller.summary is None
        assert stores.metrics.get_user_metrics("learner").total_questions == 0

    def test_abandon_after_scoring_applies_metrics(self, make_controller, questions, now):
        """Scored items were persisted, so the session still counts once."""
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()
        controller.submit(3)
        controller.submit(4)

        assert controller.abandon() == 1
        assert controller.phase is SessionPhase.IDLE
        assert len(stores.attempts.list_attempts("learner")) == 2

        metrics = stores.metrics.get_user_metrics("learner")
        assert metrics.total_questions == 2
        assert metrics.correct_answers == 2
        assert metrics.streak == 1
        assert metrics.last_activity_date == now.date()
        assert controller.summary.discarded == 1


class TestSignals:
    """Tests for signal validation and translation."""

    def test_invalid_signal_keeps_item_presented(self, make_controller, questions):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.start()

        with pytest.raises(ValidationError):
            controller.submit(7)

        assert controller.phase is SessionPhase.PRESENTING
        assert controller.current.id == "q2"
        assert stores.attempts.list_attempts("learner") == []
        assert stores.items.get_item("q2") == questions[2]

    def test_level_item_ratings(self, make_controller, now):
        card = ReviewableItem(
            id="v1", strategy=StrategyKind.LEVEL, category="vocabulary", next_review_date=now
        )
        stores = memory_bundle([card])
        controller = make_controller(stores)
        controller.start()
        outcome = controller.submit("hard")

        assert outcome.status is ReviewStatus.HARD
        assert outcome.attempt.quality == 1
        assert not outcome.correct

    def test_bool_signal_level_item(self, make_controller, now):
        card = ReviewableItem(id="v1", strategy=StrategyKind.LEVEL, next_review_date=now)
        controller = make_controller(memory_bundle([card]))
        controller.start()
        outcome = controller.submit(True)

        assert outcome.item.level == 2
        assert outcome.correct

    def test_bool_signal_graded_by_time(self, make_controller, questions):
        controller = make_controller(memory_bundle(questions))
        controller.start()
        quick = controller.submit(True, time_spent_ms=1500)
        slow = controller.submit(True, time_spent_ms=30000)
        wrong = controller.submit(False)

        assert quick.attempt.quality == 4
        assert quick.attempt.time_spent_ms == 1500
        assert slow.attempt.quality == 2
        assert wrong.attempt.quality == 0

    def test_wrong_phase(self, make_controller, questions):
        controller = make_controller(memory_bundle(questions))
        with pytest.raises(SessionStateError):
            controller.submit(3)
        controller.start()
        with pytest.raises(SessionStateError):
            controller.start()


class TestPersistenceFailures:
    """Tests for write failures during a session."""

    def test_failed_write_reported_and_session_continues(self, make_controller, questions):
        items = FlakyItemStore(questions, failures=1)
        stores = memory_bundle()
        stores = StoreBundle(items=items, attempts=stores.attempts, metrics=stores.metrics)
        controller = make_controller(stores)
        controller.start()

        outcome = controller.submit(4)

        assert not outcome.persisted
        assert isinstance(outcome.error, PersistenceError)
        assert controller.current.id == "q1"
        assert controller.local_state("q2") == outcome.item
        assert stores.items.get_item("q2") == questions[2]  # Not rolled forward
        # No attempt is logged for a state that was never stored
        assert stores.attempts.list_attempts("learner") == []

        controller.submit(3)
        controller.submit(3)
        assert controller.summary.failed_writes == 1

    def test_item_store_down_logs_no_attempts(self, make_controller, questions):
        """History never gets ahead of the stored schedule."""
        items = FlakyItemStore(questions, failures=100)
        base = memory_bundle()
        stores = StoreBundle(items=items, attempts=base.attempts, metrics=base.metrics)
        controller = make_controller(stores)
        controller.start()

        outcomes = [controller.submit(3) for _ in range(3)]

        assert not any(o.persisted for o in outcomes)
        assert stores.attempts.list_attempts("learner") == []
        assert controller.summary.failed_writes == 3

    def test_stale_write_logs_no_attempt(self, make_controller, questions):
        items = FlakyItemStore(questions, failures=1, error=ConcurrencyError)
        base = memory_bundle()
        stores = StoreBundle(items=items, attempts=base.attempts, metrics=base.metrics)
        controller = make_controller(stores, session_limit=1)
        controller.start()

        outcome = controller.submit(4)

        assert isinstance(outcome.error, ConcurrencyError)
        assert stores.attempts.list_attempts("learner") == []

    def test_retries(self, make_controller, questions):
        items = FlakyItemStore(questions, failures=2)
        base = memory_bundle()
        stores = StoreBundle(items=items, attempts=base.attempts, metrics=base.metrics)
        controller = make_controller(stores, persist_retries=2)
        controller.start()

        outcome = controller.submit(3)

        assert outcome.persisted
        assert items.write_calls == 3

    def test_stale_write_not_retried(self, make_controller, questions):
        items = FlakyItemStore(questions, failures=5, error=ConcurrencyError)
        base = memory_bundle()
        stores = StoreBundle(items=items, attempts=base.attempts, metrics=base.metrics)
        controller = make_controller(stores, persist_retries=3)
        controller.start()

        outcome = controller.submit(3)

        assert isinstance(outcome.error, ConcurrencyError)
        assert items.write_calls == 1

    def test_fetch_failure_returns_to_idle(self, make_controller):
        base = memory_bundle()
        stores = StoreBundle(items=BrokenDueStore(), attempts=base.attempts, metrics=base.metrics)
        controller = make_controller(stores)

        with pytest.raises(PersistenceError):
            controller.start()
        assert controller.phase is SessionPhase.IDLE

    def test_metrics_failure_captured(self, make_controller, questions):
        base = memory_bundle(questions)
        stores = StoreBundle(items=base.items, attempts=base.attempts, metrics=BrokenMetricsStore())
        controller = make_controller(stores, session_limit=1)
        controller.start()
        controller.submit(3)

        summary = controller.summary
        assert summary.metrics is None
        assert isinstance(summary.metrics_error, PersistenceError)
        assert controller.phase is SessionPhase.IDLE


class TestMasteryOverrides:
    def test_mark_mastered(self, make_controller, questions):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        controller.mark_item_mastered("q0")
        assert stores.items.get_item("q0").mastered

    def test_reset(self, make_controller, questions, now):
        stores = memory_bundle(questions)
        controller = make_controller(stores)
        item = controller.reset_item("q1")

        assert item.next_review_date == now
        assert stores.items.get_item("q1").review_count == 0
