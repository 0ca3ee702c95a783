"""
Core Module - Shared data model and error taxonomy.

Components:
- models: ReviewableItem, ReviewAttempt, aggregates, UserMetrics
- errors: ValidationError, NotFoundError, PersistenceError, ConcurrencyError

Design Principle:
Scheduling, analytics, stores and the session controller all import
from spaced_review.core rather than defining their own records.
"""

from spaced_review.core.errors import (
    ConcurrencyError,
    NotFoundError,
    PersistenceError,
    ReviewEngineError,
    SessionStateError,
    ValidationError,
)
from spaced_review.core.models import (
    DEFAULT_EASE_FACTOR,
    MINIMUM_EASE_FACTOR,
    CategoryStats,
    ReviewableItem,
    ReviewAttempt,
    ReviewPerformance,
    ReviewSchedule,
    ReviewStatus,
    StrategyKind,
    UserMetrics,
    to_utc,
    utc_now,
)

__all__ = [
    # Models
    "ReviewableItem",
    "ReviewAttempt",
    "ReviewSchedule",
    "ReviewPerformance",
    "CategoryStats",
    "UserMetrics",
    "ReviewStatus",
    "StrategyKind",
    "DEFAULT_EASE_FACTOR",
    "MINIMUM_EASE_FACTOR",
    "utc_now",
    "to_utc",
    # Errors
    "ReviewEngineError",
    "ValidationError",
    "NotFoundError",
    "PersistenceError",
    "ConcurrencyError",
    "SessionStateError",
]
