"""
Experiment window rules - a bounded sequence with a calendar floor per day.

A 7-day habit experiment starting on D:

    day:        1    2    3    4    5    6    7
    available:  D   D+1  D+2  D+3  D+4  D+5  D+6

Day k is completable when BOTH hold:
- day k-1 is completed (the ordinary unlock rule)
- today >= D + (k-1) (the date floor; otherwise TooEarly)

So finishing several days in one sitting is not possible. Completing late,
after the window end, is allowed: the window bounds when days open, not when
they close.

Reflection unlocks one day before the finish line: completed >= total - 1.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from sequence_progress.domain.errors import TooEarly
from sequence_progress.domain.models import SequenceDefinition, UnlockState, UnlockStatus


class DayPosition(str, Enum):
    PAST = "past"
    TODAY = "today"
    FUTURE = "future"


class ExperimentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class ExperimentDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_number: int
    available_on: date
    status: UnlockStatus
    position: DayPosition
    completable: bool


class ExperimentView(BaseModel):
    """Calendar-style view of one user's experiment."""

    model_config = ConfigDict(frozen=True)

    sequence_id: str
    window_start_date: date
    window_end_date: date
    total_items: int
    completed_count: int
    reflection_unlocked: bool
    status: ExperimentStatus
    days: list[ExperimentDay]
    reflection: Optional[str] = None


def _require_window(definition: SequenceDefinition) -> date:
    if definition.window_start_date is None:
        raise ValueError(f"sequence {definition.sequence_id} has no experiment window")
    return definition.window_start_date


def item_available_on(definition: SequenceDefinition, item_number: int) -> date:
    """Calendar date on which day ``item_number`` opens."""
    return _require_window(definition) + timedelta(days=item_number - 1)


def check_date_floor(definition: SequenceDefinition, item_number: int, today: date) -> None:
    """Raise TooEarly if day ``item_number`` has not opened yet."""
    available_on = item_available_on(definition, item_number)
    if today < available_on:
        raise TooEarly(definition.sequence_id, item_number, available_on)


def reflection_unlocked(completed_count: int, total_items: int) -> bool:
    return completed_count >= total_items - 1


def build_experiment_view(
    definition: SequenceDefinition,
    state: UnlockState,
    today: date,
    reflection: Optional[str] = None,
) -> ExperimentView:
    """Compose unlock state, date floors and reflection gate into one view."""
    start = _require_window(definition)
    total = definition.total_items

    days = []
    for n in range(1, total + 1):
        available_on = start + timedelta(days=n - 1)
        if available_on < today:
            position = DayPosition.PAST
        elif available_on == today:
            position = DayPosition.TODAY
        else:
            position = DayPosition.FUTURE
        status = state.status_of(n)
        days.append(
            ExperimentDay(
                day_number=n,
                available_on=available_on,
                status=status,
                position=position,
                completable=status is UnlockStatus.UNLOCKED and available_on <= today,
            )
        )

    completed_count = len(state.completed_items)
    return ExperimentView(
        sequence_id=definition.sequence_id,
        window_start_date=start,
        window_end_date=definition.window_end,
        total_items=total,
        completed_count=completed_count,
        reflection_unlocked=reflection_unlocked(completed_count, total),
        status=ExperimentStatus.COMPLETED if completed_count >= total else ExperimentStatus.ACTIVE,
        days=days,
        reflection=reflection,
    )
