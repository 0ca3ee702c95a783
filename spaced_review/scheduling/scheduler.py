"""
Spaced Repetition Schedulers.

Implements:
- Ease-factor scheduling (SM-2 derived) for test questions
- Level-based exponential backoff for vocabulary flashcards
- Mastery overrides (mark mastered, reset)

Both strategies sit behind one Scheduler protocol and are picked per
item through its StrategyKind.

Quality Scale (ease-factor strategy):
0 - Again: complete failure
1 - Hard: recalled with serious difficulty
2 - Hard: recalled with some difficulty
3 - Good: correct
4 - Easy: correct with no hesitation

Level ratings (level strategy):
0 / "again" - back to level 1
1 / "hard"  - repeat the current level
2+ / "easy" - promote one level ("good" is accepted as an alias)
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol, Union, runtime_checkable

from loguru import logger

from spaced_review.core.errors import ValidationError
from spaced_review.core.models import (
    DEFAULT_EASE_FACTOR,
    MINIMUM_EASE_FACTOR,
    PASSING_QUALITY,
    QUALITY_AGAIN,
    QUALITY_EASY,
    QUALITY_GOOD,
    QUALITY_HARD,
    QUALITY_RANGE,
    ReviewableItem,
    ReviewStatus,
    StrategyKind,
    to_utc,
    utc_now,
)

if TYPE_CHECKING:
    from spaced_review.config import Settings

Clock = Callable[[], datetime]
Signal = Union[int, str, ReviewStatus]

_STATUS_QUALITY = {
    ReviewStatus.AGAIN: QUALITY_AGAIN,
    ReviewStatus.HARD: QUALITY_HARD,
    ReviewStatus.GOOD: QUALITY_GOOD,
    ReviewStatus.EASY: QUALITY_EASY,
}


@runtime_checkable
class Scheduler(Protocol):
    """Computes the next scheduling state of an item from one review signal."""

    kind: StrategyKind

    def validate_signal(self, signal: Signal) -> object:
        """Normalize a signal, raising ValidationError when out of domain."""
        ...

    def is_correct(self, signal: Signal) -> bool:
        """Whether the signal counts as a correct answer."""
        ...

    def compute_next(
        self, item: ReviewableItem, signal: Signal, now: datetime | None = None
    ) -> ReviewableItem:
        """Return a new item state. The input item is never mutated."""
        ...


# =============================================================================
# Ease-Factor Strategy
# =============================================================================


@dataclass
class EaseFactorConfig:
    """Configuration for the ease-factor strategy."""

    initial_easiness: float = DEFAULT_EASE_FACTOR
    minimum_easiness: float = MINIMUM_EASE_FACTOR
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    max_interval: int = 365
    mastery_interval: int = 21  # Items at or beyond this interval count as mastered

    def __post_init__(self) -> None:
        if self.minimum_easiness < MINIMUM_EASE_FACTOR:
            raise ValidationError(f"minimum_easiness cannot go below {MINIMUM_EASE_FACTOR}")
        if self.first_interval < 1 or self.max_interval < self.first_interval:
            raise ValidationError("Intervals must be >= 1 and max_interval >= first_interval")

    @classmethod
    def from_settings(cls, settings: Settings) -> EaseFactorConfig:
        return cls(
            initial_easiness=settings.ease_initial,
            minimum_easiness=settings.ease_minimum,
            first_interval=settings.ease_first_interval,
            second_interval=settings.ease_second_interval,
            max_interval=settings.ease_max_interval,
            mastery_interval=settings.ease_mastery_interval,
        )


class EaseFactorScheduler:
    """
    SM-2 derived scheduler.

    Each item carries:
    - Ease Factor (EF): how fast the interval grows (2.5 default, min 1.3)
    - Interval: days until next review
    - Review count: consecutive successful recalls
    """

    kind = StrategyKind.EASE_FACTOR

    def __init__(self, config: EaseFactorConfig | None = None, clock: Clock = utc_now):
        """
        Initialize the scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
            clock: Source of "now" when compute_next is not given one
        """
        self.config = config or EaseFactorConfig()
        self.clock = clock

    def validate_signal(self, signal: Signal) -> int:
        if isinstance(signal, ReviewStatus):
            return _STATUS_QUALITY[signal]
        if isinstance(signal, bool) or not isinstance(signal, int):
            raise ValidationError(f"Quality must be an integer 0-4, got {signal!r}")
        if signal not in QUALITY_RANGE:
            raise ValidationError(f"Quality must be 0-4, got {signal}")
        return signal

    def is_correct(self, signal: Signal) -> bool:
        return self.validate_signal(signal) >= PASSING_QUALITY

    def compute_next(
        self, item: ReviewableItem, signal: Signal, now: datetime | None = None
    ) -> ReviewableItem:
        """
        Calculate the next review state from a quality rating.

        Args:
            item: Current item state
            signal: Quality 0-4 (or a ReviewStatus)
            now: Reference instant (defaults to the scheduler clock)

        Returns:
            New ReviewableItem with interval, EF, status and next review date
        """
        quality = self.validate_signal(signal)
        now = to_utc(now) if now is not None else self.clock()

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        new_ef = max(self.config.minimum_easiness, item.ease_factor + ef_delta)

        if quality == 0:
            # Failed - reset to beginning
            repetitions = 0
            interval = self.config.first_interval
            status = ReviewStatus.AGAIN
        elif quality < PASSING_QUALITY:
            # Hard - hold the interval, no growth
            repetitions = item.review_count
            if item.is_new:
                interval = self.config.first_interval
            else:
                interval = max(self.config.first_interval, item.interval_days)
            status = ReviewStatus.HARD
        else:
            # Passed - advance
            repetitions = item.review_count + 1
            if repetitions == 1:
                interval = self.config.first_interval
            elif repetitions == 2:
                interval = self.config.second_interval
            else:
                # Half-up rounding, so 12.5 days becomes 13
                grown = math.floor(item.interval_days * item.ease_factor + 0.5)
                interval = max(self.config.first_interval, grown)
            status = ReviewStatus.EASY if quality == QUALITY_EASY else ReviewStatus.GOOD

        interval = min(interval, self.config.max_interval)

        logger.debug(
            f"{item.id}: q={quality} ef {item.ease_factor:.2f}->{new_ef:.2f} "
            f"interval={interval}d reps={repetitions} status={status.value}"
        )

        return replace(
            item,
            ease_factor=new_ef,
            interval_days=interval,
            review_count=repetitions,
            next_review_date=now + timedelta(days=interval),
            last_reviewed_at=now,
            mastered=interval >= self.config.mastery_interval,
            status=status,
        )


# =============================================================================
# Level-Based Strategy
# =============================================================================


@dataclass
class LevelConfig:
    """Configuration for the level-based strategy."""

    max_interval: int = 90
    mastery_level: int = 8

    @classmethod
    def from_settings(cls, settings: Settings) -> LevelConfig:
        return cls(max_interval=settings.level_max_interval, mastery_level=settings.level_mastery)


_LEVEL_SIGNALS = {
    0: ReviewStatus.AGAIN,
    1: ReviewStatus.HARD,
    2: ReviewStatus.EASY,
    "again": ReviewStatus.AGAIN,
    "hard": ReviewStatus.HARD,
    "good": ReviewStatus.GOOD,
    "easy": ReviewStatus.EASY,
}


class LevelScheduler:
    """
    Exponential level backoff for vocabulary flashcards.

    Level n is reviewed every 2^(n-1) days (capped), and a card is
    mastered once it reaches the mastery level.
    """

    kind = StrategyKind.LEVEL

    def __init__(self, config: LevelConfig | None = None, clock: Clock = utc_now):
        self.config = config or LevelConfig()
        self.clock = clock

    def validate_signal(self, signal: Signal) -> ReviewStatus:
        if isinstance(signal, ReviewStatus):
            return signal
        if isinstance(signal, bool) or not isinstance(signal, (int, str)):
            raise ValidationError(
                f"Rating must be a non-negative integer or a rating name, got {signal!r}"
            )
        if isinstance(signal, int) and signal > 2:
            return ReviewStatus.EASY  # Any higher rating promotes
        key = signal.strip().lower() if isinstance(signal, str) else signal
        try:
            return _LEVEL_SIGNALS[key]
        except (KeyError, TypeError):
            raise ValidationError(
                f"Rating must be a non-negative integer or a rating name, got {signal!r}"
            ) from None

    def is_correct(self, signal: Signal) -> bool:
        return self.validate_signal(signal) in (ReviewStatus.GOOD, ReviewStatus.EASY)

    def compute_next(
        self, item: ReviewableItem, signal: Signal, now: datetime | None = None
    ) -> ReviewableItem:
        status = self.validate_signal(signal)
        now = to_utc(now) if now is not None else self.clock()

        if status is ReviewStatus.AGAIN:
            level = 1
            interval = 1
            repetitions = 0
        elif status is ReviewStatus.HARD:
            level = item.level
            interval = item.level  # Current level used directly as day count
            repetitions = item.review_count
        else:
            level = item.level + 1
            interval = 2 ** (level - 1)
            repetitions = item.review_count + 1

        interval = min(interval, self.config.max_interval)

        logger.debug(
            f"{item.id}: rating={status.value} level {item.level}->{level} interval={interval}d"
        )

        return replace(
            item,
            level=level,
            interval_days=interval,
            review_count=repetitions,
            next_review_date=now + timedelta(days=interval),
            last_reviewed_at=now,
            mastered=level >= self.config.mastery_level,
            status=status,
        )


# =============================================================================
# Strategy Selection
# =============================================================================


class SchedulerRegistry:
    """Maps each StrategyKind to the scheduler that owns it."""

    def __init__(self, schedulers: Iterable[Scheduler]):
        self._by_kind = {s.kind: s for s in schedulers}

    @classmethod
    def from_settings(cls, settings: Settings | None = None, clock: Clock = utc_now) -> SchedulerRegistry:
        return cls(get_scheduler(kind, settings, clock) for kind in StrategyKind)

    def get(self, kind: StrategyKind) -> Scheduler:
        try:
            return self._by_kind[StrategyKind(kind)]
        except (KeyError, ValueError):
            raise ValidationError(f"No scheduler registered for strategy {kind!r}") from None

    def for_item(self, item: ReviewableItem) -> Scheduler:
        return self.get(item.strategy)


def get_scheduler(
    kind: StrategyKind, settings: Settings | None = None, clock: Clock = utc_now
) -> Scheduler:
    """Build the scheduler for a strategy, using settings when given."""
    kind = StrategyKind(kind)
    if kind is StrategyKind.LEVEL:
        config = LevelConfig.from_settings(settings) if settings else None
        return LevelScheduler(config, clock)
    config = EaseFactorConfig.from_settings(settings) if settings else None
    return EaseFactorScheduler(config, clock)


# =============================================================================
# Helpers
# =============================================================================


def grade_from_response(
    is_correct: bool,
    response_ms: int | None = None,
    expected_ms: int = 10000,
) -> int:
    """
    Convert a correctness flag and response time to a 0-4 quality.

    Args:
        is_correct: Whether the answer was correct
        response_ms: Time taken to respond (None if untimed)
        expected_ms: Expected response time

    Returns:
        Quality 0-4
    """
    if not is_correct:
        return 0
    if response_ms is None:
        return 3
    if response_ms < expected_ms * 0.5:
        return 4  # Quick and correct
    elif response_ms <= expected_ms:
        return 3
    else:
        return 2  # Correct but struggled


def status_quality(status: ReviewStatus) -> int:
    """Quality ordinal recorded for a rating given as a status."""
    return _STATUS_QUALITY[ReviewStatus(status)]


def mark_mastered(item: ReviewableItem, mastery_level: int = 8) -> ReviewableItem:
    """Force an item into the mastered state."""
    level = item.level
    if item.strategy is StrategyKind.LEVEL:
        level = max(item.level, mastery_level)
    return replace(item, mastered=True, level=level)


def reset_item(
    item: ReviewableItem,
    now: datetime | None = None,
    initial_easiness: float = DEFAULT_EASE_FACTOR,
) -> ReviewableItem:
    """Return an item to its initial scheduling state, due immediately."""
    now = to_utc(now) if now is not None else utc_now()
    return replace(
        item,
        interval_days=0,
        ease_factor=initial_easiness,
        review_count=0,
        level=1,
        mastered=False,
        status=None,
        next_review_date=now,
    )
