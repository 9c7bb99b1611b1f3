"""
Tests for the sequence unlock resolver.
"""
import itertools

import pytest

from sequence_progress.domain.errors import OutOfRange
from sequence_progress.domain.models import UnlockStatus
from sequence_progress.domain.unlock import (
    check_in_range,
    resolve_unlock_state,
    summarize_progress,
)

LOCKED = UnlockStatus.LOCKED
UNLOCKED = UnlockStatus.UNLOCKED
COMPLETED = UnlockStatus.COMPLETED


@pytest.mark.unit
class TestResolveUnlockState:
    def test_empty_set_only_first_item_unlocked(self) -> None:
        state = resolve_unlock_state(set(), total_items=5)

        assert state.statuses == {1: UNLOCKED, 2: LOCKED, 3: LOCKED, 4: LOCKED, 5: LOCKED}

    def test_next_item_after_completed_prefix(self) -> None:
        state = resolve_unlock_state({1, 2}, total_items=5)

        assert state.status_of(1) is COMPLETED
        assert state.status_of(2) is COMPLETED
        assert state.status_of(3) is UNLOCKED
        assert state.status_of(4) is LOCKED

    def test_items_beyond_frontier_are_locked(self) -> None:
        state = resolve_unlock_state({1, 2, 3}, total_items=10)

        assert all(state.status_of(n) is LOCKED for n in range(5, 11))
        assert not state.is_accessible(5)

    def test_open_ended_sequence_lists_up_to_frontier(self) -> None:
        state = resolve_unlock_state({1, 2})

        assert state.statuses == {1: COMPLETED, 2: COMPLETED, 3: UNLOCKED}
        assert state.status_of(50) is LOCKED

    def test_all_completed(self) -> None:
        state = resolve_unlock_state({1, 2, 3}, total_items=3)

        assert state.completed_items == [1, 2, 3]
        assert UNLOCKED not in state.statuses.values()

    def test_completions_past_content_length_ignored(self) -> None:
        state = resolve_unlock_state({1, 2, 3, 4}, total_items=3)

        assert state.completed_items == [1, 2, 3]
        assert 4 not in state.statuses

    def test_completed_item_stays_completed_in_gapped_history(self) -> None:
        # Only reachable via imported history, but history is never relocked.
        state = resolve_unlock_state({1, 3}, total_items=5)

        assert state.status_of(3) is COMPLETED
        assert state.status_of(2) is UNLOCKED
        assert state.status_of(4) is UNLOCKED
        assert state.status_of(5) is LOCKED

    def test_no_skip_for_every_reachable_history(self) -> None:
        total = 8
        for done in range(total + 1):
            state = resolve_unlock_state(set(range(1, done + 1)), total_items=total)
            for k in range(2, total + 1):
                if state.status_of(k) is not LOCKED:
                    assert state.status_of(k - 1) is COMPLETED

    def test_completed_never_relocks(self) -> None:
        total = 6
        for size in range(1, total + 1):
            for base in itertools.combinations(range(1, total + 1), size):
                before = resolve_unlock_state(set(base), total_items=total)
                for extra in range(1, total + 1):
                    after = resolve_unlock_state(set(base) | {extra}, total_items=total)
                    for n in before.completed_items:
                        assert after.status_of(n) is COMPLETED


@pytest.mark.unit
class TestCheckInRange:
    def test_within_bounds(self) -> None:
        check_in_range("plan", 1, 7)
        check_in_range("plan", 7, 7)
        check_in_range("open", 999, None)

    @pytest.mark.parametrize("item_number", [0, -1, 8])
    def test_out_of_bounds(self, item_number: int) -> None:
        with pytest.raises(OutOfRange) as exc_info:
            check_in_range("plan", item_number, 7)

        assert exc_info.value.http_status == 404
        assert exc_info.value.user_message == "Not found."


@pytest.mark.unit
class TestSummarizeProgress:
    def test_midway(self) -> None:
        progress = summarize_progress(resolve_unlock_state({1, 2}, 7, "plan-7"))

        assert progress.sequence_id == "plan-7"
        assert progress.completed_count == 2
        assert progress.current_item == 3
        assert progress.percent_complete == 28.6
        assert not progress.is_complete

    def test_finished_points_at_last_item(self) -> None:
        progress = summarize_progress(resolve_unlock_state({1, 2, 3}, 3))

        assert progress.current_item == 3
        assert progress.percent_complete == 100.0
        assert progress.is_complete

    def test_open_ended_has_no_percentage(self) -> None:
        progress = summarize_progress(resolve_unlock_state({1}))

        assert progress.current_item == 2
        assert progress.percent_complete is None
        assert not progress.is_complete
