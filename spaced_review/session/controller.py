"""
Review Session Controller.

Drives one learner's review session:

    IDLE -> FETCHING_DUE -> PRESENTING -> SCORING -> PERSISTING -> PRESENTING ... -> IDLE

- Due items are fetched once at start, oldest due first (ties by id)
- Each signal is validated before anything is scheduled
- The new item state and the attempt are written through the stores
- Learner metrics are updated once, when the session closes

A failed write is logged and reported on the ScoreOutcome; it is not
rolled back, and the session keeps using the locally computed state.
Only one item is in flight at a time, so writes for the same item are
always applied in order.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from spaced_review.analytics.metrics import apply_session
from spaced_review.config import Settings, get_settings
from spaced_review.core.errors import ConcurrencyError, PersistenceError, SessionStateError
from spaced_review.core.models import (
    ReviewableItem,
    ReviewAttempt,
    ReviewStatus,
    StrategyKind,
    UserMetrics,
    utc_now,
)
from spaced_review.scheduling.due_queue import due_sort_key
from spaced_review.scheduling.scheduler import (
    Clock,
    SchedulerRegistry,
    Signal,
    grade_from_response,
    mark_mastered,
    reset_item,
    status_quality,
)
from spaced_review.stores.base import StoreBundle


class SessionPhase(str, Enum):
    """Phases of a review session."""

    IDLE = "idle"
    FETCHING_DUE = "fetching_due"
    PRESENTING = "presenting"
    SCORING = "scoring"
    PERSISTING = "persisting"


@dataclass
class ScoreOutcome:
    """Result of scoring one item."""

    item: ReviewableItem  # Locally computed next state
    attempt: ReviewAttempt
    correct: bool
    persisted: bool = True
    error: PersistenceError | None = None

    @property
    def status(self) -> ReviewStatus:
        return self.item.status


@dataclass
class SessionSummary:
    """Totals for a closed session."""

    answered: int = 0
    correct: int = 0
    skipped: int = 0
    discarded: int = 0  # Left unscored when the session was finished early
    failed_writes: int = 0
    metrics: UserMetrics | None = None
    metrics_error: PersistenceError | None = None
    outcomes: list[ScoreOutcome] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        return self.correct / self.answered if self.answered else 0.0


class ReviewSessionController:
    """
    Orchestrates store reads, scheduling and write-back for one learner.

    Args:
        stores: Item, attempt and metrics stores
        user_id: Learner the session belongs to
        schedulers: Strategy registry (built from settings if None)
        clock: Source of "now"
        settings: Session settings (cached settings if None)
    """

    def __init__(
        self,
        stores: StoreBundle,
        user_id: str,
        *,
        schedulers: SchedulerRegistry | None = None,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ):
        self.stores = stores
        self.user_id = user_id
        self.clock = clock
        self.settings = settings or get_settings()
        self.schedulers = schedulers or SchedulerRegistry.from_settings(self.settings, clock)

        self.phase = SessionPhase.IDLE
        self.summary: SessionSummary | None = None
        self._queue: list[ReviewableItem] = []
        self._index = 0
        self._skipped = 0
        self._outcomes: list[ScoreOutcome] = []
        self._local: dict[str, ReviewableItem] = {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def current(self) -> ReviewableItem | None:
        """The item being presented, if any."""
        if self.phase is not SessionPhase.PRESENTING:
            return None
        return self._queue[self._index]

    @property
    def remaining(self) -> int:
        if self.phase is SessionPhase.IDLE:
            return 0
        return len(self._queue) - self._index

    @property
    def outcomes(self) -> list[ScoreOutcome]:
        return list(self._outcomes)

    def local_state(self, item_id: str) -> ReviewableItem | None:
        """State computed in this session for an item, persisted or not."""
        return self._local.get(item_id)

    def _require(self, phase: SessionPhase) -> None:
        if self.phase is not phase:
            raise SessionStateError(f"Expected phase {phase.value}, session is {self.phase.value}")

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def start(self, limit: int | None = None, category: str | None = None) -> list[ReviewableItem]:
        """
        Fetch due items and begin presenting them.

        Args:
            limit: Maximum items (defaults to settings.session_limit)
            category: Only review items in this category

        Returns:
            The session queue (empty if nothing is due)
        """
        self._require(SessionPhase.IDLE)
        limit = self.settings.session_limit if limit is None else limit

        self.summary = None
        self._queue = []
        self._index = 0
        self._skipped = 0
        self._outcomes = []
        self._local = {}

        self.phase = SessionPhase.FETCHING_DUE
        now = self.clock()
        try:
            items = self.stores.items.list_due_items(
                before=now, limit=limit, category_filter=category
            )
        except PersistenceError:
            self.phase = SessionPhase.IDLE
            raise

        self._queue = sorted(items, key=due_sort_key)[: max(0, limit)]
        self.phase = SessionPhase.PRESENTING if self._queue else SessionPhase.IDLE

        logger.info(
            f"Session started for {self.user_id}: {len(self._queue)} items due"
            + (f" in '{category}'" if category else "")
        )
        return list(self._queue)

    def submit(self, signal: Signal | bool, *, time_spent_ms: int | None = None) -> ScoreOutcome:
        """
        Score the current item and write back its new state.

        Args:
            signal: Quality 0-4 / level rating, or a bool for correct/incorrect
            time_spent_ms: Time the learner took to answer

        Returns:
            ScoreOutcome with the new state and whether it was persisted

        Raises:
            ValidationError: Signal outside the item's domain (item stays presented)
        """
        self._require(SessionPhase.PRESENTING)
        item = self._queue[self._index]
        scheduler = self.schedulers.for_item(item)

        signal = self._from_correctness(item, signal, time_spent_ms)
        normalized = scheduler.validate_signal(signal)

        self.phase = SessionPhase.SCORING
        now = self.clock()
        new_item = scheduler.compute_next(item, signal, now)
        correct = scheduler.is_correct(signal)
        quality = normalized if isinstance(normalized, int) else status_quality(normalized)
        attempt = ReviewAttempt(
            item_id=item.id,
            user_id=self.user_id,
            category=item.category,
            quality=quality,
            correct=correct,
            timestamp=now,
            time_spent_ms=time_spent_ms,
        )

        self.phase = SessionPhase.PERSISTING
        error = self._write("item", item.id, lambda: self.stores.items.upsert_item(new_item))
        if error is None:
            error = self._write(
                "attempt", item.id, lambda: self.stores.attempts.append_attempt(attempt)
            )
        else:
            # No attempt without the item state it produced
            logger.warning(f"Attempt for {item.id} not recorded: item write failed")

        self._local[item.id] = new_item
        outcome = ScoreOutcome(
            item=new_item,
            attempt=attempt,
            correct=correct,
            persisted=error is None,
            error=error,
        )
        self._outcomes.append(outcome)

        logger.debug(
            f"Scored {item.id}: {new_item.status.value}, next review "
            f"{new_item.next_review_date:%Y-%m-%d} ({new_item.interval_days}d)"
        )

        self._advance()
        return outcome

    def skip(self) -> None:
        """Move past the current item without scoring it."""
        self._require(SessionPhase.PRESENTING)
        self._skipped += 1
        self._advance()

    def finish(self) -> SessionSummary:
        """Close the session now, discarding unscored items."""
        if self.phase is SessionPhase.IDLE and self.summary is not None:
            return self.summary
        self._require(SessionPhase.PRESENTING)
        self._close()
        return self.summary

    def abandon(self) -> int:
        """
        Drop the remaining items.

        Items already scored were persisted, so their session still gets
        its metrics update. A session with nothing scored writes nothing.

        Returns:
            Number of unscored items discarded
        """
        if self.phase is SessionPhase.IDLE:
            return 0
        discarded = len(self._queue) - self._index
        if self._outcomes:
            self._close()
        else:
            self._queue = []
            self._index = 0
            self.phase = SessionPhase.IDLE
        logger.info(f"Session abandoned for {self.user_id}: {discarded} items discarded")
        return discarded

    # =========================================================================
    # Internals
    # =========================================================================

    def _from_correctness(
        self, item: ReviewableItem, signal: Signal | bool, time_spent_ms: int | None
    ) -> Signal:
        """Translate a plain correct/incorrect answer into the item's signal domain."""
        if not isinstance(signal, bool):
            return signal
        if item.strategy is StrategyKind.LEVEL:
            return ReviewStatus.EASY if signal else ReviewStatus.AGAIN
        return grade_from_response(signal, time_spent_ms, self.settings.expected_response_ms)

    def _write(self, what: str, item_id: str, write: Callable[[], None]) -> PersistenceError | None:
        """Run a store write with the configured retries. Never raises PersistenceError."""
        tries = 1 + max(0, self.settings.persist_retries)
        last_error: PersistenceError | None = None
        for n in range(1, tries + 1):
            try:
                write()
                return None
            except ConcurrencyError as e:
                logger.error(f"Stale {what} write for {item_id}, keeping local state: {e}")
                return e
            except PersistenceError as e:
                last_error = e
                logger.warning(f"Failed to persist {what} for {item_id} (try {n}/{tries}): {e}")

        logger.error(f"Giving up on {what} write for {item_id}; continuing with local state")
        return last_error

    def _advance(self) -> None:
        self._index += 1
        if self._index < len(self._queue):
            self.phase = SessionPhase.PRESENTING
        else:
            self._close()

    def _close(self) -> None:
        """Apply the once-per-session metrics update and return to IDLE."""
        answered = len(self._outcomes)
        correct = sum(1 for o in self._outcomes if o.correct)
        summary = SessionSummary(
            answered=answered,
            correct=correct,
            skipped=self._skipped,
            discarded=len(self._queue) - min(self._index, len(self._queue)),
            failed_writes=sum(1 for o in self._outcomes if not o.persisted),
            outcomes=list(self._outcomes),
        )

        try:
            metrics = self.stores.metrics.get_user_metrics(self.user_id)
            summary.metrics = apply_session(metrics, self.clock().date(), answered, correct)
            self.stores.metrics.upsert_user_metrics(self.user_id, summary.metrics)
        except PersistenceError as e:
            summary.metrics_error = e
            logger.error(f"Failed to update metrics for {self.user_id}: {e}")

        self.summary = summary
        self.phase = SessionPhase.IDLE
        logger.info(
            f"Session closed for {self.user_id}: {correct}/{answered} correct, "
            f"{summary.skipped} skipped, {summary.failed_writes} unsaved"
        )

    # =========================================================================
    # Mastery overrides
    # =========================================================================

    def mark_item_mastered(self, item_id: str) -> ReviewableItem:
        """Force an item into the mastered state and save it."""
        item = mark_mastered(self.stores.items.get_item(item_id), self.settings.level_mastery)
        self.stores.items.upsert_item(item)
        logger.info(f"Marked {item_id} as mastered")
        return item

    def reset_item(self, item_id: str) -> ReviewableItem:
        """Return an item to its initial state, due now, and save it."""
        item = reset_item(
            self.stores.items.get_item(item_id), self.clock(), self.settings.ease_initial
        )
        self.stores.items.upsert_item(item)
        logger.info(f"Reset {item_id}")
        return item
