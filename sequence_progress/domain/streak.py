"""
Streak Calculator.

A streak is the number of consecutive calendar days with at least one
qualifying completion. Input is a set of calendar dates already resolved in
the user's zone (see domain.clock); nothing here knows about instants.

Policy decisions:
- Today not done yet does not zero the streak: if yesterday is present the
  walk starts from yesterday. Users see their streak before they act today.
- Any gap, including a single missed day, breaks the current streak. There
  are no grace days.
- longest_streak is computed over the full history, independent of today.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from sequence_progress.domain.clock import next_date, previous_date
from sequence_progress.domain.models import StreakSummary

# Thresholds shown as badges: CONSISTENT, MOMENTUM, two weeks, a month.
STREAK_MILESTONES: tuple[int, ...] = (3, 7, 14, 30)


def compute_streak(completed_dates: Iterable[date], today: date) -> StreakSummary:
    """
    Derive the streak summary from distinct completion dates.

    Example:
        today = Jan 10
        {Jan 10, Jan 9, Jan 8}  -> current 3
        {Jan 9, Jan 8}          -> current 2 (today not done yet)
        {Jan 10, Jan 8}         -> current 1 (Jan 9 missed)
    """
    days = set(completed_dates)
    if not days:
        return StreakSummary(next_expected_date=today)

    cursor = today if today in days else previous_date(today)
    current = 0
    while cursor in days:
        current += 1
        cursor = previous_date(cursor)

    return StreakSummary(
        current_streak=current,
        longest_streak=longest_run(days),
        last_completed_date=max(days),
        next_expected_date=next_date(today) if today in days else today,
    )


def longest_run(days: Iterable[date]) -> int:
    """Length of the longest run of consecutive dates."""
    ordered = sorted(set(days))
    if not ordered:
        return 0

    best = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if (cur - prev).days == 1:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def milestones_reached(streak_length: int) -> list[int]:
    return [m for m in STREAK_MILESTONES if streak_length >= m]
