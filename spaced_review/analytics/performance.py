"""
Review performance aggregation.

Reduces a learner's attempt history into efficiency, a day streak, and
per-category counts. Reads no clock: every date comes from the attempts
themselves, so results are deterministic for a fixed input.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta, tzinfo

from spaced_review.core.models import CategoryStats, ReviewAttempt, ReviewPerformance, to_utc


def filter_attempts(
    attempts: Iterable[ReviewAttempt],
    category: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[ReviewAttempt]:
    """Keep attempts matching the category and falling in [since, until)."""
    since = to_utc(since)
    until = to_utc(until)
    return [
        a
        for a in attempts
        if (category is None or a.category == category)
        and (since is None or a.timestamp >= since)
        and (until is None or a.timestamp < until)
    ]


def active_days(attempts: Iterable[ReviewAttempt], tz: tzinfo = UTC) -> set[date]:
    """Calendar days (in tz) with at least one correct attempt."""
    return {a.timestamp.astimezone(tz).date() for a in attempts if a.is_correct}


def calculate_streak_days(attempts: Iterable[ReviewAttempt], tz: tzinfo = UTC) -> int:
    """
    Count consecutive active days ending at the most recent active day.

    The walk starts from the latest day with a correct attempt rather
    than from today, so a day with no activity yet does not break the
    streak.
    """
    days = active_days(attempts, tz)
    if not days:
        return 0

    day = max(days)
    streak = 0
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak_days(attempts: Iterable[ReviewAttempt], tz: tzinfo = UTC) -> int:
    """Longest run of consecutive active days anywhere in the history."""
    days = sorted(active_days(attempts, tz))
    best = run = 0
    previous: date | None = None
    for day in days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def summarize(
    attempts: Iterable[ReviewAttempt],
    *,
    category: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    tz: tzinfo = UTC,
) -> ReviewPerformance:
    """
    Summarize a learner's review attempts.

    Args:
        attempts: Attempts for one learner
        category: Only count this category
        since: Only count attempts at or after this instant
        until: Only count attempts before this instant
        tz: Timezone used to group attempts into calendar days

    Returns:
        ReviewPerformance (efficiency is 0.0 when there are no attempts)
    """
    selected = filter_attempts(attempts, category, since, until)

    by_category: dict[str, CategoryStats] = {}
    correct = 0
    for attempt in selected:
        stats = by_category.setdefault(attempt.category, CategoryStats())
        stats.total += 1
        if attempt.is_correct:
            stats.correct += 1
            correct += 1

    total = len(selected)
    return ReviewPerformance(
        total_reviews=total,
        correct_reviews=correct,
        efficiency=correct / total if total > 0 else 0.0,
        streak_days=calculate_streak_days(selected, tz),
        reviews_by_category=by_category,
    )
