"""
Completion storage interface and in-memory implementation.

Logical layout (storage-agnostic):
- one record per (user_id, sequence_id, item_number), unique
- lookup by (user_id, idempotency_key)
- dates by (user_id, completed_on) for streak queries

The one write operation is ``insert_if_absent``: it must be atomic. Two
concurrent inserts for the same triple yield one stored record and both
callers get that record back. A read-then-write sequence would race, so
implementations rely on a uniqueness constraint or a lock instead.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Collection, Optional, Protocol

from sequence_progress.domain.models import CompletionRecord


class CompletionStore(Protocol):
    """Interface for completion storage (PostgreSQL, SQLite, memory)."""

    async def insert_if_absent(self, record: CompletionRecord) -> tuple[CompletionRecord, bool]:
        """
        Store ``record`` unless its triple already exists.

        Returns:
            (stored record, created) - the stored record is the pre-existing
            one when created is False
        """
        ...

    async def get_by_key(self, user_id: str, idempotency_key: str) -> Optional[CompletionRecord]:
        ...

    async def get_by_triple(
        self, user_id: str, sequence_id: str, item_number: int
    ) -> Optional[CompletionRecord]:
        ...

    async def list_for_sequence(self, user_id: str, sequence_id: str) -> list[CompletionRecord]:
        ...

    async def list_for_user(self, user_id: str) -> list[CompletionRecord]:
        ...

    async def completion_dates(
        self, user_id: str, sequence_ids: Optional[Collection[str]] = None
    ) -> set[date]:
        ...

    async def save_reflection(self, user_id: str, sequence_id: str, text: str) -> None:
        ...

    async def get_reflection(self, user_id: str, sequence_id: str) -> Optional[str]:
        ...


class InMemoryCompletionStore:
    """
    In-memory completion store for testing and local development.

    Writes are serialized per (user_id, sequence_id) with an asyncio.Lock,
    which stands in for the database's unique constraint.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str, int], CompletionRecord] = {}
        self._by_key: dict[tuple[str, str], tuple[str, str, int]] = {}
        self._reflections: dict[tuple[str, str], str] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock_for(self, user_id: str, sequence_id: str) -> asyncio.Lock:
        key = (user_id, sequence_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def insert_if_absent(self, record: CompletionRecord) -> tuple[CompletionRecord, bool]:
        async with self._lock_for(record.user_id, record.sequence_id):
            existing = self._records.get(record.triple)
            if existing is not None:
                return existing, False
            key_owner = self._by_key.get((record.user_id, record.idempotency_key))
            if key_owner is not None:
                return self._records[key_owner], False

            self._records[record.triple] = record
            self._by_key[(record.user_id, record.idempotency_key)] = record.triple
            return record, True

    async def get_by_key(self, user_id: str, idempotency_key: str) -> Optional[CompletionRecord]:
        triple = self._by_key.get((user_id, idempotency_key))
        return self._records[triple] if triple is not None else None

    async def get_by_triple(
        self, user_id: str, sequence_id: str, item_number: int
    ) -> Optional[CompletionRecord]:
        return self._records.get((user_id, sequence_id, item_number))

    async def list_for_sequence(self, user_id: str, sequence_id: str) -> list[CompletionRecord]:
        return sorted(
            (r for r in self._records.values() if r.user_id == user_id and r.sequence_id == sequence_id),
            key=lambda r: r.item_number,
        )

    async def list_for_user(self, user_id: str) -> list[CompletionRecord]:
        return sorted(
            (r for r in self._records.values() if r.user_id == user_id),
            key=lambda r: (r.completed_on, r.sequence_id, r.item_number),
        )

    async def completion_dates(
        self, user_id: str, sequence_ids: Optional[Collection[str]] = None
    ) -> set[date]:
        return {
            r.completed_on
            for r in self._records.values()
            if r.user_id == user_id and (sequence_ids is None or r.sequence_id in sequence_ids)
        }

    async def save_reflection(self, user_id: str, sequence_id: str, text: str) -> None:
        self._reflections[(user_id, sequence_id)] = text

    async def get_reflection(self, user_id: str, sequence_id: str) -> Optional[str]:
        return self._reflections.get((user_id, sequence_id))

    def load(self, records: Collection[CompletionRecord]) -> None:
        """Seed the store, e.g. from ``records_from_json``. Duplicates are ignored."""
        for record in records:
            if record.triple not in self._records:
                self._records[record.triple] = record
                self._by_key[(record.user_id, record.idempotency_key)] = record.triple
