"""
Sequence Unlock Resolver.

Strict, no skipping:
- Item 1 is always unlocked.
- Item k (k > 1) is unlocked iff item k-1 is completed.
- A completed item stays completed, whatever happens to other items.
- Everything above (max completed) + 1 is locked. No exceptions.

This module is the only place lock state is decided. Every entry point (list
view, direct link, back/forward navigation, deep link) goes through
``SequenceGuard`` in ``core.engine``, which calls ``resolve_unlock_state``.

Pure functions over a snapshot of completed item numbers: safe to recompute
as often as needed, nothing is cached.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sequence_progress.domain.errors import OutOfRange
from sequence_progress.domain.models import SequenceProgress, UnlockState, UnlockStatus


def resolve_unlock_state(
    completions: Iterable[int],
    total_items: Optional[int] = None,
    sequence_id: str = "",
) -> UnlockState:
    """
    Compute item -> status from the set of completed item numbers.

    Args:
        completions: Completed item numbers for one (user, sequence)
        total_items: Sequence length, or None for open-ended content
        sequence_id: Carried into the result for callers

    Returns:
        UnlockState covering 1..total_items (bounded) or
        1..(max completed)+1 (open-ended)
    """
    completed = {n for n in completions if n >= 1}
    if total_items is not None:
        # Completions beyond the current content length carry no meaning.
        completed = {n for n in completed if n <= total_items}

    frontier = (max(completed) if completed else 0) + 1
    last = total_items if total_items is not None else frontier

    statuses: dict[int, UnlockStatus] = {}
    for n in range(1, last + 1):
        if n in completed:
            statuses[n] = UnlockStatus.COMPLETED
        elif n == 1 or (n - 1) in completed:
            statuses[n] = UnlockStatus.UNLOCKED
        else:
            statuses[n] = UnlockStatus.LOCKED

    return UnlockState(sequence_id=sequence_id, total_items=total_items, statuses=statuses)


def check_in_range(sequence_id: str, item_number: int, total_items: Optional[int]) -> None:
    """Raise OutOfRange for item numbers the sequence cannot contain."""
    if item_number < 1 or (total_items is not None and item_number > total_items):
        raise OutOfRange(sequence_id, item_number, total_items)


def summarize_progress(state: UnlockState) -> SequenceProgress:
    """Where the user stands: next item to do, counts, percentage."""
    completed = state.completed_items
    unlocked = sorted(n for n, s in state.statuses.items() if s is UnlockStatus.UNLOCKED)

    if unlocked:
        current_item = unlocked[0]
    elif state.total_items is not None:
        current_item = state.total_items
    else:
        current_item = 1

    percent: Optional[float] = None
    is_complete = False
    if state.total_items is not None:
        percent = round(len(completed) / state.total_items * 100, 1)
        is_complete = len(completed) >= state.total_items

    return SequenceProgress(
        sequence_id=state.sequence_id,
        completed_count=len(completed),
        current_item=current_item,
        total_items=state.total_items,
        percent_complete=percent,
        is_complete=is_complete,
    )
