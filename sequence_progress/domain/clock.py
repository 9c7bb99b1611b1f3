"""
Clock / Calendar Adapter - the single source of day boundaries.

Nothing else in the engine reads the system clock. Unlock, streak and
experiment-window checks all ask a Clock for "today in this zone", and the
reveal pacer asks it for monotonic seconds. Tests inject FixedClock.

Calendar math is done on ``datetime.date`` values only, after the instant has
been converted into the user's zone. Date arithmetic has no notion of DST, so
a 23- or 25-hour local day is still exactly one calendar day.

Example:
    23:30 in America/New_York on 2024-03-09 is 04:30 UTC on 2024-03-10.
    today("America/New_York") -> 2024-03-09
    today("UTC")              -> 2024-03-10
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Interface every component uses for time."""

    def now(self) -> datetime:
        """Current instant (timezone-aware)."""
        ...

    def monotonic(self) -> float:
        """Monotonic seconds, for measuring elapsed time."""
        ...


def today(clock: Clock, time_zone: str) -> date:
    """Calendar date of the clock's current instant in ``time_zone``."""
    return local_date(clock.now(), time_zone)


def local_date(instant: datetime, time_zone: str) -> date:
    """Calendar date of ``instant`` as seen in ``time_zone``."""
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(ZoneInfo(time_zone)).date()


def days_between(a: date, b: date) -> int:
    """Whole calendar days from ``a`` to ``b`` (negative when b is earlier)."""
    return (b - a).days


def previous_date(d: date) -> date:
    return d - timedelta(days=1)


def next_date(d: date) -> date:
    return d + timedelta(days=1)


class SystemClock:
    """Production clock backed by the OS."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class FixedClock:
    """
    Deterministic clock for tests and replays.

    ``now`` only moves when told to; ``monotonic`` moves with it so elapsed
    time stays consistent with the wall clock.
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        self._instant = instant
        self._monotonic = 0.0

    def now(self) -> datetime:
        return self._instant

    def monotonic(self) -> float:
        return self._monotonic

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        self._monotonic += max((instant - self._instant).total_seconds(), 0.0)
        self._instant = instant

    def advance(self, seconds: float = 0.0, days: int = 0) -> None:
        delta = timedelta(days=days, seconds=seconds)
        self._instant += delta
        self._monotonic += max(delta.total_seconds(), 0.0)
