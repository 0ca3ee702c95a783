"""
Learner-level metrics updates.

UserMetrics.streak is a session-driven activity streak, kept separately
from ReviewPerformance.streak_days (which is recomputed from history).
apply_session must run once per session, never once per item.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from spaced_review.core.errors import ValidationError
from spaced_review.core.models import UserMetrics


def next_streak(current: int, last_activity: date | None, today: date, correct: int) -> int:
    """
    Streak value after a session on `today`.

    - Correct answers and (yesterday was active, or no streak yet): +1
    - Correct answers, already active today: unchanged
    - Correct answers after a gap of more than one day: restart at 1
    - No correct answers and a gap of more than one day: 0
    - Otherwise unchanged
    """
    gap = (today - last_activity).days if last_activity is not None else None

    if correct > 0:
        if current == 0 or gap is None or gap == 1:
            return current + 1
        if gap <= 0:
            return current
        return 1

    if gap is not None and gap > 1:
        return 0
    return current


def apply_session(
    metrics: UserMetrics,
    today: date,
    answered: int,
    correct: int,
) -> UserMetrics:
    """
    Fold one completed session into a learner's metrics.

    Args:
        metrics: Current metrics
        today: Calendar day the session ran on
        answered: Items scored in the session
        correct: Items answered correctly

    Returns:
        New UserMetrics
    """
    if answered < 0 or correct < 0 or correct > answered:
        raise ValidationError(f"Invalid session counts: answered={answered}, correct={correct}")

    streak = next_streak(metrics.streak, metrics.last_activity_date, today, correct)
    return replace(
        metrics,
        total_questions=metrics.total_questions + answered,
        correct_answers=metrics.correct_answers + correct,
        streak=streak,
        longest_streak=max(metrics.longest_streak, streak),
        last_activity_date=today if answered > 0 else metrics.last_activity_date,
    )
