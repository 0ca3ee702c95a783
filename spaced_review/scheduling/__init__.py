"""
Scheduling Module.

Provides:
- Per-item schedulers (ease-factor and level-based strategies)
- Due-queue bucketing and due-item helpers
"""

from spaced_review.scheduling.due_queue import (
    DeckStats,
    StudyRecommendation,
    all_reviews_complete,
    build_review_schedule,
    days_until_review,
    deck_stats,
    due_items,
    due_sort_key,
    is_due,
    recommend_sessions,
)
from spaced_review.scheduling.scheduler import (
    EaseFactorConfig,
    EaseFactorScheduler,
    LevelConfig,
    LevelScheduler,
    Scheduler,
    SchedulerRegistry,
    get_scheduler,
    grade_from_response,
    mark_mastered,
    reset_item,
    status_quality,
)

__all__ = [
    "Scheduler",
    "SchedulerRegistry",
    "EaseFactorConfig",
    "EaseFactorScheduler",
    "LevelConfig",
    "LevelScheduler",
    "get_scheduler",
    "grade_from_response",
    "mark_mastered",
    "reset_item",
    "status_quality",
    "build_review_schedule",
    "is_due",
    "days_until_review",
    "due_items",
    "due_sort_key",
    "all_reviews_complete",
    "deck_stats",
    "DeckStats",
    "recommend_sessions",
    "StudyRecommendation",
]
