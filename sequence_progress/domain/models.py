"""
Domain models - immutable facts and derived views.

Stored:
- CompletionRecord: "user U completed item N of sequence S on calendar date D"

Read-only input (owned by the content repository):
- SequenceDefinition

Derived on demand, never stored:
- UnlockState, StreakSummary, SequenceProgress

Derived views are never persisted: they must always reflect the latest ledger
truth, so they are recomputed from the record set every time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


def build_idempotency_key(sequence_id: str, item_number: int, completed_on: date) -> str:
    """
    Canonical idempotency key for one completion.

    Format: {sequence_id}:{item_number}:{YYYY-MM-DD}

    Built only from the logical fact, never from an instant or random data, so
    every retry of the same completion produces the same key. This is the one
    place the format is defined; clients that build keys differently are still
    deduplicated on (user, sequence, item) by the ledger.
    """
    return f"{sequence_id}:{item_number}:{completed_on.isoformat()}"


class UnlockStatus(str, Enum):
    """Accessibility of one item."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


class CompletionRecord(BaseModel):
    """One completion fact. Created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    sequence_id: str = Field(..., min_length=1)
    item_number: int = Field(..., gt=0)
    completed_on: date
    completed_at: datetime  # audit/display only
    idempotency_key: str = Field(..., min_length=1)
    note: Optional[str] = None

    @field_validator("completed_at")
    @classmethod
    def require_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("completed_at must be timezone-aware")
        return v

    @property
    def triple(self) -> tuple[str, str, int]:
        return (self.user_id, self.sequence_id, self.item_number)


class SequenceDefinition(BaseModel):
    """
    Read-only description of an ordered sequence.

    total_items=None means open-ended content. A window start turns the
    sequence into a time-boxed experiment; the window then needs a fixed
    length.
    """

    model_config = ConfigDict(frozen=True)

    sequence_id: str = Field(..., min_length=1)
    total_items: Optional[int] = Field(default=None, gt=0)
    window_start_date: Optional[date] = None
    window_end_date: Optional[date] = None
    streak_eligible: bool = True
    streak_group: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self) -> SequenceDefinition:
        if self.window_start_date is None:
            if self.window_end_date is not None:
                raise ValueError("window_end_date requires window_start_date")
            return self
        if self.total_items is None:
            raise ValueError("a windowed sequence needs total_items")
        if self.window_end_date is not None and self.window_end_date < self.window_start_date:
            raise ValueError("window_end_date is before window_start_date")
        return self

    @property
    def is_windowed(self) -> bool:
        return self.window_start_date is not None

    @property
    def kind(self) -> str:
        if self.is_windowed:
            return "windowed"
        return "bounded" if self.total_items is not None else "open"

    @property
    def window_end(self) -> Optional[date]:
        """Explicit end date, or the last day implied by the window length."""
        if self.window_start_date is None:
            return None
        if self.window_end_date is not None:
            return self.window_end_date
        return self.window_start_date + timedelta(days=self.total_items - 1)


class UnlockState(BaseModel):
    """
    Item number -> status for one (user, sequence).

    For open-ended sequences only items up to (max completed) + 1 are listed;
    anything not listed is locked.
    """

    model_config = ConfigDict(frozen=True)

    sequence_id: str
    total_items: Optional[int] = None
    statuses: dict[int, UnlockStatus]

    def status_of(self, item_number: int) -> UnlockStatus:
        return self.statuses.get(item_number, UnlockStatus.LOCKED)

    def is_accessible(self, item_number: int) -> bool:
        return self.status_of(item_number) is not UnlockStatus.LOCKED

    @property
    def completed_items(self) -> list[int]:
        return sorted(n for n, s in self.statuses.items() if s is UnlockStatus.COMPLETED)


class StreakSummary(BaseModel):
    """Consecutive-day engagement derived from completion dates."""

    model_config = ConfigDict(frozen=True)

    current_streak: int = 0
    longest_streak: int = 0
    last_completed_date: Optional[date] = None
    next_expected_date: Optional[date] = None


class SequenceProgress(BaseModel):
    """Where a user stands in one sequence."""

    model_config = ConfigDict(frozen=True)

    sequence_id: str
    completed_count: int
    current_item: int
    total_items: Optional[int] = None
    percent_complete: Optional[float] = None
    is_complete: bool = False


_records_adapter = TypeAdapter(list[CompletionRecord])


def records_to_json(records: list[CompletionRecord]) -> str:
    """Serialize a record set (export, cache warmup, fixtures)."""
    return _records_adapter.dump_json(records).decode("utf-8")


def records_from_json(payload: str | bytes) -> list[CompletionRecord]:
    """Load a record set serialized by :func:`records_to_json`."""
    return _records_adapter.validate_json(payload)
