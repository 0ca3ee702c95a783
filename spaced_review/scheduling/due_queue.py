"""
Due-queue building.

Buckets a snapshot of items into due counts relative to a reference
instant. Day boundaries are always computed in UTC so that "today"
does not drift with the host timezone.

Buckets:
- due_today:     next review on or before the end of today (overdue included)
- due_this_week: on or before end of today + 7 days. This bucket includes
                 due_today, since "this week" subsumes today.
- due_next_week: after end of today + 7 days, up to end of today + 14 days
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta

from spaced_review.core.models import ReviewableItem, ReviewSchedule, to_utc

UPCOMING_WINDOW_DAYS = 3
MINUTES_PER_ITEM = 0.5


def end_of_day(moment: datetime) -> datetime:
    """Last representable instant of moment's UTC calendar day."""
    moment = to_utc(moment)
    return datetime.combine(moment.date(), time.max, tzinfo=UTC)


def due_sort_key(item: ReviewableItem) -> tuple:
    """Order by next review date ascending, then id. Never-reviewed items first."""
    if item.next_review_date is None:
        return (0, datetime.min.replace(tzinfo=UTC), item.id)
    return (1, item.next_review_date, item.id)


def build_review_schedule(items: Iterable[ReviewableItem], now: datetime) -> ReviewSchedule:
    """
    Partition items into time-bucketed due counts.

    Pure: no I/O, no clock access. Items without a next review date are
    not counted.

    Args:
        items: Snapshot of items
        now: Reference instant

    Returns:
        ReviewSchedule with bucket counts and per-date counts
    """
    end_today = end_of_day(now)
    end_week = end_today + timedelta(days=7)
    end_next_week = end_today + timedelta(days=14)

    schedule = ReviewSchedule()
    by_date: Counter[str] = Counter()

    for item in items:
        due = item.next_review_date
        if due is None:
            continue

        by_date[due.date().isoformat()] += 1

        if due <= end_today:
            schedule.due_today += 1
        if due <= end_week:
            schedule.due_this_week += 1
        elif due <= end_next_week:
            schedule.due_next_week += 1

    schedule.due_by_date = dict(sorted(by_date.items()))
    return schedule


def is_due(item: ReviewableItem, now: datetime, include_new: bool = False) -> bool:
    """Check if an item's review time has arrived."""
    if item.next_review_date is None:
        return include_new
    return item.next_review_date <= to_utc(now)


def days_until_review(item: ReviewableItem, now: datetime) -> int | None:
    """Calendar days (UTC) until the next review; negative when overdue."""
    if item.next_review_date is None:
        return None
    return (item.next_review_date.date() - to_utc(now).date()).days


def due_items(
    items: Iterable[ReviewableItem],
    now: datetime,
    include_mastered: bool = True,
) -> list[ReviewableItem]:
    """Items due at `now`, ordered by next review date then id."""
    due = [
        item
        for item in items
        if is_due(item, now) and (include_mastered or not item.mastered)
    ]
    return sorted(due, key=due_sort_key)


def all_reviews_complete(items: Iterable[ReviewableItem], now: datetime) -> bool:
    """True when nothing is due at `now`."""
    return not due_items(items, now)


@dataclass
class DeckStats:
    """Headline counts for a deck of items."""

    total: int = 0
    mastered: int = 0
    due_today: int = 0  # Excludes mastered items


def deck_stats(items: Iterable[ReviewableItem], now: datetime) -> DeckStats:
    stats = DeckStats()
    for item in items:
        stats.total += 1
        if item.mastered:
            stats.mastered += 1
        elif is_due(item, now):
            stats.due_today += 1
    return stats


@dataclass
class StudyRecommendation:
    """A suggested study session."""

    priority: str  # "high" | "medium"
    title: str
    description: str
    duration_minutes: int
    item_count: int


def recommend_sessions(items: Iterable[ReviewableItem], now: datetime) -> list[StudyRecommendation]:
    """
    Suggest study sessions from the current snapshot.

    - High priority when anything is due now
    - Medium priority for items coming due within the next few days
    """
    items = list(items)
    sessions: list[StudyRecommendation] = []

    due_count = sum(1 for item in items if is_due(item, now))
    if due_count:
        sessions.append(
            StudyRecommendation(
                priority="high",
                title="Review Due Items",
                description=f"{due_count} items need review today",
                duration_minutes=math.ceil(due_count * MINUTES_PER_ITEM),
                item_count=due_count,
            )
        )

    upcoming = 0
    for item in items:
        if is_due(item, now):
            continue
        days = days_until_review(item, now)
        if days is not None and 0 < days <= UPCOMING_WINDOW_DAYS:
            upcoming += 1
    if upcoming:
        sessions.append(
            StudyRecommendation(
                priority="medium",
                title="Upcoming Reviews",
                description=f"{upcoming} items due in the next {UPCOMING_WINDOW_DAYS} days",
                duration_minutes=math.ceil(upcoming * MINUTES_PER_ITEM),
                item_count=upcoming,
            )
        )

    return sessions
