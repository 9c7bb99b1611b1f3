"""
Tests for the in-memory completion store and content repository.
"""
import asyncio
from datetime import date, datetime, timezone

import pytest

from sequence_progress.domain.models import (
    CompletionRecord,
    SequenceDefinition,
    build_idempotency_key,
    records_from_json,
    records_to_json,
)
from sequence_progress.infrastructure.content import InMemoryContentRepository
from sequence_progress.infrastructure.ledger_store import InMemoryCompletionStore


def make_record(item_number: int, key: str | None = None) -> CompletionRecord:
    day = date(2024, 3, 10)
    return CompletionRecord(
        user_id="u1",
        sequence_id="plan",
        item_number=item_number,
        completed_on=day,
        completed_at=datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc),
        idempotency_key=key or build_idempotency_key("plan", item_number, day),
    )


class TestInMemoryCompletionStore:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_insert_if_absent(self) -> None:
        store = InMemoryCompletionStore()

        first, created = await store.insert_if_absent(make_record(1))
        again, created_again = await store.insert_if_absent(make_record(1, key="other"))

        assert created and not created_again
        assert again == first
        assert await store.get_by_key("u1", "other") is None

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_inserts_one_winner(self) -> None:
        store = InMemoryCompletionStore()

        results = await asyncio.gather(
            *(store.insert_if_absent(make_record(1, key=f"k{i}")) for i in range(10))
        )

        assert sum(created for _, created in results) == 1
        assert len({stored.idempotency_key for stored, _ in results}) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_load_from_json(self) -> None:
        records = [make_record(1), make_record(2)]
        store = InMemoryCompletionStore()

        store.load(records_from_json(records_to_json(records)))

        assert await store.list_for_sequence("u1", "plan") == records
        assert await store.completion_dates("u1") == {date(2024, 3, 10)}


class TestInMemoryContentRepository:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lookup(self) -> None:
        repo = InMemoryContentRepository([SequenceDefinition(sequence_id="a", total_items=3)])
        repo.add(SequenceDefinition(sequence_id="b"))

        assert (await repo.get_sequence_definition("a")).total_items == 3
        assert await repo.get_sequence_definition("missing") is None
        assert set(await repo.list_sequence_definitions(["a", "b", "missing"])) == {"a", "b"}
