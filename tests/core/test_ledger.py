"""
Tests for the completion ledger: idempotency, validation order, experiment floor.
"""
from datetime import timedelta

import pytest

from sequence_progress.core.engine import ProgressEngine
from sequence_progress.domain.clock import FixedClock
from sequence_progress.domain.errors import ItemLocked, OutOfRange, SequenceNotFound, TooEarly
from sequence_progress.infrastructure.ledger_store import InMemoryCompletionStore
from sequence_progress.monitoring.metrics import completion_duplicates_total

from tests.conftest import START_DATE, USER


class TestRecordCompletion:
    """Test suite for recording completions."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_item_records(
        self, engine: ProgressEngine, store: InMemoryCompletionStore
    ) -> None:
        record = await engine.record_completion(USER, "plan-7", 1, note="Done before work")

        assert record.item_number == 1
        assert record.completed_on == START_DATE
        assert record.idempotency_key == "plan-7:1:2024-03-10"
        assert record.note == "Done before work"
        assert len(await store.list_for_user(USER)) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_key_returns_original(self, engine: ProgressEngine) -> None:
        first = await engine.record_completion(USER, "plan-7", 1)
        second = await engine.record_completion(USER, "plan-7", 1, idempotency_key=first.idempotency_key)

        assert second == first

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mixed_keys_yield_one_record(
        self, engine: ProgressEngine, store: InMemoryCompletionStore
    ) -> None:
        keys = [None, "plan-7:1:2024-03-10", "plan-7-1-03/10/2024", "tab-2-retry", None]

        results = [await engine.record_completion(USER, "plan-7", 1, idempotency_key=k) for k in keys]

        assert all(r == results[0] for r in results)
        assert len(await store.list_for_sequence(USER, "plan-7")) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_does_not_overwrite_note(self, engine: ProgressEngine) -> None:
        await engine.record_completion(USER, "plan-7", 1, note="original")
        again = await engine.record_completion(USER, "plan-7", 1, note="changed")

        assert again.note == "original"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_next_day_returns_original(
        self, engine: ProgressEngine, clock: FixedClock
    ) -> None:
        first = await engine.record_completion(USER, "plan-7", 1)
        clock.advance(days=1)

        again = await engine.record_completion(USER, "plan-7", 1)

        assert again == first
        assert again.completed_on == START_DATE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicates_are_counted(self, engine: ProgressEngine) -> None:
        before = completion_duplicates_total.labels(match="triple")._value.get()

        await engine.record_completion(USER, "plan-7", 1)
        await engine.record_completion(USER, "plan-7", 1, idempotency_key="other-key")

        after = completion_duplicates_total.labels(match="triple")._value.get()
        assert after == before + 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_users_are_independent(self, engine: ProgressEngine) -> None:
        mine = await engine.record_completion(USER, "plan-7", 1)
        theirs = await engine.record_completion("user-456", "plan-7", 1)

        assert mine.idempotency_key == theirs.idempotency_key
        assert mine.user_id != theirs.user_id


class TestValidation:
    """Rejected completions are typed errors and write nothing."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_locked_item(self, engine: ProgressEngine, store: InMemoryCompletionStore) -> None:
        with pytest.raises(ItemLocked) as exc_info:
            await engine.record_completion(USER, "plan-7", 2)

        assert exc_info.value.http_status == 409
        assert await store.list_for_user(USER) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_jump_ahead_rejected(self, engine: ProgressEngine) -> None:
        await engine.record_completion(USER, "plan-7", 1)
        await engine.record_completion(USER, "plan-7", 2)

        with pytest.raises(ItemLocked):
            await engine.record_completion(USER, "plan-7", 5)

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("item_number", [0, 8, 100])
    async def test_out_of_range(self, engine: ProgressEngine, item_number: int) -> None:
        with pytest.raises(OutOfRange):
            await engine.record_completion(USER, "plan-7", item_number)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_sequence(self, engine: ProgressEngine) -> None:
        with pytest.raises(SequenceNotFound):
            await engine.record_completion(USER, "no-such-plan", 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_ended_has_no_upper_bound(self, engine: ProgressEngine) -> None:
        for n in range(1, 40):
            await engine.record_completion(USER, "journey-open", n)

        state = await engine.get_unlock_state(USER, "journey-open")
        assert len(state.completed_items) == 39


class TestExperimentWindow:
    """Day k opens on window_start + (k - 1)."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_day_three_on_day_one_is_too_early(self, engine: ProgressEngine) -> None:
        with pytest.raises(TooEarly) as exc_info:
            await engine.record_completion(USER, "experiment-7", 3)

        assert exc_info.value.available_on == START_DATE + timedelta(days=2)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_day_two_on_day_one_is_too_early(self, engine: ProgressEngine) -> None:
        await engine.record_completion(USER, "experiment-7", 1)

        with pytest.raises(TooEarly):
            await engine.record_completion(USER, "experiment-7", 2)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repeat_day_two_is_idempotent(
        self, engine: ProgressEngine, clock: FixedClock, store: InMemoryCompletionStore
    ) -> None:
        await engine.record_completion(USER, "experiment-7", 1)
        clock.advance(days=1)
        day_two = await engine.record_completion(USER, "experiment-7", 2)

        again = await engine.record_completion(USER, "experiment-7", 2)

        assert again == day_two
        assert len(await store.list_for_sequence(USER, "experiment-7")) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_skipped_day_still_locked_when_date_reached(
        self, engine: ProgressEngine, clock: FixedClock
    ) -> None:
        await engine.record_completion(USER, "experiment-7", 1)
        clock.advance(days=3)

        with pytest.raises(ItemLocked):
            await engine.record_completion(USER, "experiment-7", 4)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_before_window_start(self, engine: ProgressEngine, clock: FixedClock) -> None:
        clock.advance(days=-1)

        with pytest.raises(TooEarly):
            await engine.record_completion(USER, "experiment-7", 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_late_completion_after_window(
        self, engine: ProgressEngine, clock: FixedClock
    ) -> None:
        await engine.record_completion(USER, "experiment-7", 1)
        clock.advance(days=20)

        record = await engine.record_completion(USER, "experiment-7", 2)

        assert record.completed_on == START_DATE + timedelta(days=20)


class TestTimeZones:
    """The completion date is the user's local date."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_completed_on_uses_user_zone(self, engine: ProgressEngine) -> None:
        # START is 15:00 UTC: already Mar 11 in Auckland, still Mar 10 in Honolulu.
        auckland = await engine.record_completion(USER, "plan-7", 1, time_zone="Pacific/Auckland")
        honolulu = await engine.record_completion("user-456", "plan-7", 1, time_zone="Pacific/Honolulu")

        assert auckland.completed_on == START_DATE + timedelta(days=1)
        assert auckland.idempotency_key == "plan-7:1:2024-03-11"
        assert honolulu.completed_on == START_DATE
