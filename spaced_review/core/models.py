"""
Core data model for the review engine.

Design:
- ReviewableItem: scheduling state of one learnable item (card or question)
- ReviewAttempt: immutable record of one review event
- ReviewSchedule / ReviewPerformance: derived aggregates, never persisted
- UserMetrics: learner-level rolling counters

All timestamps are timezone-aware UTC. Naive datetimes are read as UTC.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from .errors import ValidationError

DEFAULT_EASE_FACTOR = 2.5
MINIMUM_EASE_FACTOR = 1.3

# Quality ordinal used by the ease-factor strategy
QUALITY_AGAIN = 0
QUALITY_HARD = 1
QUALITY_GOOD = 3
QUALITY_EASY = 4
QUALITY_RANGE = range(0, 5)
PASSING_QUALITY = 3


class StrategyKind(str, Enum):
    """Which scheduling strategy owns an item."""

    EASE_FACTOR = "ease_factor"  # SM-2 style, used for test questions
    LEVEL = "level"  # Exponential level backoff, used for vocabulary cards


class ReviewStatus(str, Enum):
    """Tag of the last scheduling decision."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) to aware UTC."""
    if value is None or isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(value))


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}, got {value}")


# =============================================================================
# Reviewable Item
# =============================================================================


@dataclass(frozen=True)
class ReviewableItem:
    """
    Scheduling state for a single learnable item.

    Items are immutable: schedulers return a new instance rather than
    mutating the one they were given.
    """

    id: str
    content: dict[str, Any] = field(default_factory=dict)  # Opaque to the engine
    category: str = "general"
    strategy: StrategyKind = StrategyKind.EASE_FACTOR
    interval_days: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    review_count: int = 0  # Consecutive successes
    next_review_date: datetime | None = None
    last_reviewed_at: datetime | None = None
    level: int = 1
    mastered: bool = False
    status: ReviewStatus | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Item id must not be empty")
        try:
            object.__setattr__(self, "strategy", StrategyKind(self.strategy))
            if self.status is not None:
                object.__setattr__(self, "status", ReviewStatus(self.status))
        except ValueError as e:
            raise ValidationError(f"Malformed item {self.id}: {e}") from e

        object.__setattr__(self, "next_review_date", to_utc(self.next_review_date))
        object.__setattr__(self, "last_reviewed_at", to_utc(self.last_reviewed_at))

        _require_int("interval_days", self.interval_days, 0)
        _require_int("review_count", self.review_count, 0)
        _require_int("level", self.level, 1)
        if self.ease_factor < MINIMUM_EASE_FACTOR:
            raise ValidationError(
                f"ease_factor must be >= {MINIMUM_EASE_FACTOR}, got {self.ease_factor}"
            )

    @property
    def is_new(self) -> bool:
        """True if the item has never been reviewed."""
        return self.review_count == 0 and self.last_reviewed_at is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "content": dict(self.content),
            "category": self.category,
            "strategy": self.strategy.value,
            "interval_days": self.interval_days,
            "ease_factor": self.ease_factor,
            "review_count": self.review_count,
            "next_review_date": format_datetime(self.next_review_date),
            "last_reviewed_at": format_datetime(self.last_reviewed_at),
            "level": self.level,
            "mastered": self.mastered,
            "status": self.status.value if self.status else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewableItem:
        """Create from a dictionary produced by to_dict (or a remote API)."""
        try:
            return cls(
                id=data["id"],
                content=data.get("content") or {},
                category=data.get("category") or "general",
                strategy=data.get("strategy") or StrategyKind.EASE_FACTOR,
                interval_days=data.get("interval_days", 0),
                ease_factor=float(data.get("ease_factor", DEFAULT_EASE_FACTOR)),
                review_count=data.get("review_count", 0),
                next_review_date=parse_datetime(data.get("next_review_date")),
                last_reviewed_at=parse_datetime(data.get("last_reviewed_at")),
                level=data.get("level", 1),
                mastered=bool(data.get("mastered", False)),
                status=data.get("status"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed item record: {e}") from e


# =============================================================================
# Review Attempt
# =============================================================================


@dataclass(frozen=True)
class ReviewAttempt:
    """
    One review event. Append-only.

    Carries a 0-4 quality ordinal, a boolean correctness flag, or both.
    """

    item_id: str
    user_id: str
    category: str = "general"
    quality: int | None = None
    correct: bool | None = None
    timestamp: datetime = field(default_factory=utc_now)
    time_spent_ms: int | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if self.quality is None and self.correct is None:
            raise ValidationError("Attempt needs a quality or a correctness flag")
        if self.quality is not None:
            _require_int("quality", self.quality, 0)
            if self.quality not in QUALITY_RANGE:
                raise ValidationError(f"quality must be 0-4, got {self.quality}")
        if self.time_spent_ms is not None:
            _require_int("time_spent_ms", self.time_spent_ms, 0)
        object.__setattr__(self, "timestamp", to_utc(self.timestamp))

    @property
    def is_correct(self) -> bool:
        """Explicit flag wins; otherwise quality >= 3 counts as correct."""
        if self.correct is not None:
            return self.correct
        return self.quality >= PASSING_QUALITY

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "user_id": self.user_id,
            "category": self.category,
            "quality": self.quality,
            "correct": self.correct,
            "timestamp": format_datetime(self.timestamp),
            "time_spent_ms": self.time_spent_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewAttempt:
        try:
            return cls(
                id=data["id"],
                item_id=data["item_id"],
                user_id=data["user_id"],
                category=data.get("category") or "general",
                quality=data.get("quality"),
                correct=data.get("correct"),
                timestamp=parse_datetime(data["timestamp"]),
                time_spent_ms=data.get("time_spent_ms"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed attempt record: {e}") from e


# =============================================================================
# Aggregates
# =============================================================================


@dataclass
class ReviewSchedule:
    """Due counts bucketed relative to a reference instant."""

    due_today: int = 0
    due_this_week: int = 0  # Includes due_today
    due_next_week: int = 0
    due_by_date: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CategoryStats:
    """Review counts for one category."""

    total: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0


@dataclass
class ReviewPerformance:
    """Summary of a learner's review history."""

    total_reviews: int = 0
    correct_reviews: int = 0
    efficiency: float = 0.0  # 0.0 - 1.0
    streak_days: int = 0
    reviews_by_category: dict[str, CategoryStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UserMetrics:
    """Learner-level rolling counters, updated once per session."""

    user_id: str
    total_questions: int = 0
    correct_answers: int = 0
    streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None

    def __post_init__(self) -> None:
        _require_int("total_questions", self.total_questions, 0)
        _require_int("correct_answers", self.correct_answers, 0)
        _require_int("streak", self.streak, 0)
        _require_int("longest_streak", self.longest_streak, 0)

    @property
    def accuracy(self) -> float:
        return self.correct_answers / self.total_questions if self.total_questions else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "streak": self.streak,
            "longest_streak": self.longest_streak,
            "last_activity_date": (
                self.last_activity_date.isoformat() if self.last_activity_date else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserMetrics:
        try:
            last = data.get("last_activity_date")
            return cls(
                user_id=data["user_id"],
                total_questions=data.get("total_questions", 0),
                correct_answers=data.get("correct_answers", 0),
                streak=data.get("streak", 0),
                longest_streak=data.get("longest_streak", 0),
                last_activity_date=date.fromisoformat(last) if isinstance(last, str) else last,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed metrics record: {e}") from e
