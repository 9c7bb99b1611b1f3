"""
Sequence Progress Engine

Tracks a user's progress through ordered daily content (plans, journeys,
cohorts, time-boxed experiments):
- Completion ledger (idempotent, one record per user/sequence/item)
- Strict sequential unlock
- Calendar-day streaks in the user's zone
- Progressive reveal pacing within one item
- Experiment windows with per-day date floors
"""

__version__ = "0.1.0"

from sequence_progress.core.engine import ItemAccess, ProgressEngine, SequenceGuard
from sequence_progress.core.ledger import CompletionLedger
from sequence_progress.domain.clock import FixedClock, SystemClock
from sequence_progress.domain.errors import (
    ItemLocked,
    OutOfRange,
    ProgressError,
    ReflectionLocked,
    SequenceNotFound,
    TooEarly,
)
from sequence_progress.domain.models import (
    CompletionRecord,
    SequenceDefinition,
    SequenceProgress,
    StreakSummary,
    UnlockState,
    UnlockStatus,
)
from sequence_progress.domain.reveal import RevealPacer, RevealPolicy

__all__ = [
    "CompletionLedger",
    "CompletionRecord",
    "FixedClock",
    "ItemAccess",
    "ItemLocked",
    "OutOfRange",
    "ProgressEngine",
    "ProgressError",
    "ReflectionLocked",
    "RevealPacer",
    "RevealPolicy",
    "SequenceDefinition",
    "SequenceGuard",
    "SequenceNotFound",
    "SequenceProgress",
    "StreakSummary",
    "SystemClock",
    "TooEarly",
    "UnlockState",
    "UnlockStatus",
]
