"""
Completion Ledger - records each completion exactly once.

Flow for ``record_completion``:
1. Resolve today in the user's zone and build the canonical idempotency key
2. Replay check by idempotency key
3. Replay check by (user, sequence, item)
4. Validate: sequence exists, item in range, experiment date floor, unlock
5. Atomic insert-if-absent; a lost race returns the winner's record

A retried completion gets the original record back even when the experiment
date floor would now reject it. "Already completed" is success, never an error.

The ledger does not recompute streaks or unlock state. Those are pulled from
the ledger by the engine's queries.
"""

from __future__ import annotations

import time
from datetime import date
from typing import Optional

import structlog

from sequence_progress.config import Settings, get_settings
from sequence_progress.domain.clock import Clock, SystemClock, today
from sequence_progress.domain.errors import ItemLocked, ProgressError, SequenceNotFound
from sequence_progress.domain.experiment import check_date_floor
from sequence_progress.domain.models import (
    CompletionRecord,
    SequenceDefinition,
    UnlockStatus,
    build_idempotency_key,
)
from sequence_progress.domain.unlock import check_in_range, resolve_unlock_state
from sequence_progress.infrastructure.content import ContentRepository
from sequence_progress.infrastructure.ledger_store import CompletionStore
from sequence_progress.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class CompletionLedger:
    """Idempotent writer of CompletionRecords."""

    def __init__(
        self,
        store: CompletionStore,
        content: ContentRepository,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.content = content
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def load_definition(self, sequence_id: str) -> SequenceDefinition:
        definition = await self.content.get_sequence_definition(sequence_id)
        if definition is None:
            raise SequenceNotFound(sequence_id)
        return definition

    async def record_completion(
        self,
        user_id: str,
        sequence_id: str,
        item_number: int,
        idempotency_key: Optional[str] = None,
        time_zone: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CompletionRecord:
        """
        Record that ``user_id`` completed ``item_number`` of ``sequence_id`` today.

        Args:
            user_id: Authenticated user identifier (opaque)
            sequence_id: Plan / journey / cohort / experiment id
            item_number: 1-based day number
            idempotency_key: Client-supplied key; canonical key used when omitted
            time_zone: User's IANA zone; settings default when omitted
            note: Optional free text stored with the record

        Returns:
            CompletionRecord: The stored record (the original one on retries)

        Raises:
            SequenceNotFound: Unknown sequence
            OutOfRange: Item number outside the sequence
            TooEarly: Experiment day before its calendar date
            ItemLocked: Predecessor not completed
        """
        started = time.perf_counter()
        tz = time_zone or self.settings.default_time_zone
        completed_on = today(self.clock, tz)
        canonical_key = build_idempotency_key(sequence_id, item_number, completed_on)
        log = logger.bind(user_id=user_id, sequence_id=sequence_id, item_number=item_number)

        if idempotency_key is not None and idempotency_key != canonical_key:
            log.warning(
                "idempotency_key_mismatch",
                supplied_key=idempotency_key,
                canonical_key=canonical_key,
            )

        existing = await self.store.get_by_key(user_id, idempotency_key or canonical_key)
        if existing is not None and existing.triple == (user_id, sequence_id, item_number):
            metrics.record_duplicate("key")
            log.info("completion_duplicate", match="key")
            return existing

        existing = await self.store.get_by_triple(user_id, sequence_id, item_number)
        if existing is not None:
            metrics.record_duplicate("triple")
            log.info("completion_duplicate", match="triple")
            return existing

        try:
            definition = await self.load_definition(sequence_id)
            await self._validate(user_id, definition, item_number, completed_on)
        except ProgressError as e:
            metrics.record_rejection(e.error_code)
            if e.http_status == 404:
                log.warning("completion_rejected", error_code=e.error_code, reason=e.message)
            else:
                log.info("completion_rejected", error_code=e.error_code, reason=e.message)
            raise

        record = CompletionRecord(
            user_id=user_id,
            sequence_id=sequence_id,
            item_number=item_number,
            completed_on=completed_on,
            completed_at=self.clock.now(),
            idempotency_key=canonical_key,
            note=note,
        )
        stored, created = await self.store.insert_if_absent(record)

        if not created:
            metrics.record_duplicate("race")
            log.info("completion_duplicate", match="race")
            return stored

        metrics.record_completion(definition.kind, time.perf_counter() - started)
        log.info(
            "completion_recorded",
            completed_on=completed_on.isoformat(),
            sequence_kind=definition.kind,
        )
        return stored

    async def _validate(
        self,
        user_id: str,
        definition: SequenceDefinition,
        item_number: int,
        completed_on: date,
    ) -> None:
        check_in_range(definition.sequence_id, item_number, definition.total_items)

        # Date floor first: day 3 on day 1 is TooEarly, not merely locked.
        if definition.is_windowed:
            check_date_floor(definition, item_number, completed_on)

        records = await self.store.list_for_sequence(user_id, definition.sequence_id)
        state = resolve_unlock_state(
            (r.item_number for r in records),
            definition.total_items,
            definition.sequence_id,
        )
        if state.status_of(item_number) is UnlockStatus.LOCKED:
            raise ItemLocked(definition.sequence_id, item_number)
