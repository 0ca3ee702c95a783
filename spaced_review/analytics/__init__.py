"""
Analytics Module.

Provides:
- Review performance summaries (efficiency, day streak, per-category stats)
- Learner metrics updates applied once per session
"""

from spaced_review.analytics.metrics import apply_session, next_streak
from spaced_review.analytics.performance import (
    calculate_streak_days,
    filter_attempts,
    longest_streak_days,
    summarize,
)

__all__ = [
    "summarize",
    "filter_attempts",
    "calculate_streak_days",
    "longest_streak_days",
    "apply_session",
    "next_streak",
]
