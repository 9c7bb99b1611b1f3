"""
ProgressEngine - the inbound command and queries in one place.

Command:
- record_completion -> CompletionRecord | ItemLocked | OutOfRange | TooEarly

Queries (pure reads over the current ledger, recomputed on every call):
- get_unlock_state, get_progress, get_streak_summary, get_experiment
- open_item: guarded access + fresh reveal state

There is no cache between the ledger and these queries. Each query reads the
store and asks the clock again.

SequenceGuard is the single lock authority: every route that renders
interactive item content calls ``require_accessible`` first.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict

from sequence_progress.config import Settings, get_settings
from sequence_progress.core.ledger import CompletionLedger
from sequence_progress.domain.clock import Clock, SystemClock, today
from sequence_progress.domain.errors import ItemLocked, ReflectionLocked
from sequence_progress.domain.experiment import (
    ExperimentView,
    build_experiment_view,
    reflection_unlocked,
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
from sequence_progress.domain.streak import compute_streak
from sequence_progress.domain.unlock import check_in_range, resolve_unlock_state, summarize_progress
from sequence_progress.infrastructure.content import ContentRepository
from sequence_progress.infrastructure.ledger_store import CompletionStore

logger = structlog.get_logger(__name__)


class ItemAccess(BaseModel):
    """Result of opening one item through the guard."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sequence_id: str
    item_number: int
    status: UnlockStatus
    pacer: RevealPacer


class ProgressEngine:
    """Facade over the ledger, the resolver and the streak calculator."""

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
        self.ledger = CompletionLedger(store, content, self.clock, self.settings)
        self.guard = SequenceGuard(self)

    def _today(self, time_zone: Optional[str]):
        return today(self.clock, time_zone or self.settings.default_time_zone)

    async def record_completion(
        self,
        user_id: str,
        sequence_id: str,
        item_number: int,
        idempotency_key: Optional[str] = None,
        time_zone: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CompletionRecord:
        return await self.ledger.record_completion(
            user_id,
            sequence_id,
            item_number,
            idempotency_key=idempotency_key,
            time_zone=time_zone,
            note=note,
        )

    async def state_for(
        self, user_id: str, definition: SequenceDefinition
    ) -> UnlockState:
        """Unlock state recomputed from the ledger for an already loaded definition."""
        records = await self.store.list_for_sequence(user_id, definition.sequence_id)
        return resolve_unlock_state(
            (r.item_number for r in records),
            definition.total_items,
            definition.sequence_id,
        )

    async def get_unlock_state(self, user_id: str, sequence_id: str) -> UnlockState:
        definition = await self.ledger.load_definition(sequence_id)
        return await self.state_for(user_id, definition)

    async def get_progress(self, user_id: str, sequence_id: str) -> SequenceProgress:
        return summarize_progress(await self.get_unlock_state(user_id, sequence_id))

    async def get_streak_summary(
        self,
        user_id: str,
        streak_group_id: Optional[str] = None,
        time_zone: Optional[str] = None,
    ) -> StreakSummary:
        """
        Streak over every streak-eligible sequence the user has touched.

        One completion per calendar day counts, whichever sequence it came
        from. With ``streak_group_id`` only sequences in that group count.
        Sequences unknown to the content repository are not eligible.
        """
        records = await self.store.list_for_user(user_id)
        definitions = await self.content.list_sequence_definitions(
            {r.sequence_id for r in records}
        )
        eligible = {
            sid
            for sid, d in definitions.items()
            if d.streak_eligible and (streak_group_id is None or d.streak_group == streak_group_id)
        }
        dates = await self.store.completion_dates(user_id, eligible)
        return compute_streak(dates, self._today(time_zone))

    async def get_experiment(
        self, user_id: str, sequence_id: str, time_zone: Optional[str] = None
    ) -> ExperimentView:
        definition = await self.ledger.load_definition(sequence_id)
        state = await self.state_for(user_id, definition)
        reflection = await self.store.get_reflection(user_id, sequence_id)
        return build_experiment_view(definition, state, self._today(time_zone), reflection)

    async def save_reflection(
        self,
        user_id: str,
        sequence_id: str,
        text: str,
        time_zone: Optional[str] = None,
    ) -> ExperimentView:
        """Store the closing reflection once the experiment is nearly done."""
        definition = await self.ledger.load_definition(sequence_id)
        if not definition.is_windowed:
            raise ValueError(f"sequence {sequence_id} is not an experiment")

        state = await self.state_for(user_id, definition)
        completed = len(state.completed_items)
        if not reflection_unlocked(completed, definition.total_items):
            raise ReflectionLocked(sequence_id, completed, definition.total_items - 1)

        await self.store.save_reflection(user_id, sequence_id, text)
        logger.info("reflection_saved", user_id=user_id, sequence_id=sequence_id)
        return build_experiment_view(definition, state, self._today(time_zone), text)

    async def open_item(
        self,
        user_id: str,
        sequence_id: str,
        item_number: int,
        total_sub_units: int,
        policy: RevealPolicy = RevealPolicy.MANUAL,
        word_counts: Optional[Sequence[int]] = None,
    ) -> ItemAccess:
        """Guarded open: status from the ledger, reveal state built fresh."""
        status = await self.guard.require_accessible(user_id, sequence_id, item_number)
        pacer = RevealPacer.open(
            status,
            total_sub_units,
            policy=policy,
            word_counts=word_counts,
            words_per_second=self.settings.reveal_words_per_second,
            fallback_interval=self.settings.reveal_fallback_interval_seconds,
            clock=self.clock,
            tick_interval=self.settings.reveal_tick_seconds,
        )
        return ItemAccess(
            sequence_id=sequence_id, item_number=item_number, status=status, pacer=pacer
        )


class SequenceGuard:
    """
    Lock check shared by every entry point.

    Views never decide lock state themselves; they call this and render only
    if it returns.
    """

    def __init__(self, engine: ProgressEngine):
        self._engine = engine

    async def require_accessible(
        self, user_id: str, sequence_id: str, item_number: int
    ) -> UnlockStatus:
        """
        Raises:
            SequenceNotFound: Unknown sequence
            OutOfRange: Item number outside the sequence
            ItemLocked: Item not reachable yet
        """
        definition = await self._engine.ledger.load_definition(sequence_id)
        check_in_range(sequence_id, item_number, definition.total_items)
        state = await self._engine.state_for(user_id, definition)
        status = state.status_of(item_number)
        if status is UnlockStatus.LOCKED:
            logger.info(
                "item_access_denied",
                user_id=user_id,
                sequence_id=sequence_id,
                item_number=item_number,
            )
            raise ItemLocked(sequence_id, item_number)
        return status
