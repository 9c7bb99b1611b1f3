"""
Progressive Reveal Pacer - client-local, single-session state machine.

Controls how many sub-units (paragraphs) of one item are visible while the
user is viewing it. Two policies:

MANUAL: each "continue" reveals exactly one more sub-unit.

TIMED: each sub-unit has an estimated consumption time
(word_count / words_per_second, or a fixed interval when word counts are
unknown). While the engagement signal is on (e.g. audio playing), sub-unit
k+1 appears once engaged time reaches the cumulative duration of units 1..k.

    durations:   [4s, 6s, 2s]
    thresholds:  unit 2 at 4s, unit 3 at 10s

Engaged time pauses the moment the signal goes off and resumes from the same
total when it comes back. The count never moves backward.

State never outlives one viewing: a pacer is always built through
``RevealPacer.open`` from the item's current UnlockStatus. A completed item
opens fully revealed; anything else starts at one sub-unit. Nothing is
resumed from a previous visit.

The pacer never writes to the ledger. It only answers whether completion may
be offered (``can_complete``).
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from itertools import accumulate
from typing import AsyncIterator, Optional, Sequence

import structlog

from sequence_progress.domain.clock import Clock, SystemClock
from sequence_progress.domain.models import UnlockStatus

logger = structlog.get_logger(__name__)

DEFAULT_WORDS_PER_SECOND = 2.5
DEFAULT_FALLBACK_INTERVAL_SECONDS = 12.0
DEFAULT_TICK_SECONDS = 0.25


class RevealPolicy(str, Enum):
    MANUAL = "manual"
    TIMED = "timed"


def estimate_durations(
    total_sub_units: int,
    word_counts: Optional[Sequence[int]] = None,
    words_per_second: float = DEFAULT_WORDS_PER_SECOND,
    fallback_interval: float = DEFAULT_FALLBACK_INTERVAL_SECONDS,
) -> list[float]:
    """
    Seconds each sub-unit takes to consume.

    Word counts are only trusted when there is exactly one per sub-unit;
    otherwise every unit gets ``fallback_interval``.
    """
    if words_per_second <= 0:
        raise ValueError("words_per_second must be positive")
    if word_counts is not None and len(word_counts) == total_sub_units:
        return [max(count, 0) / words_per_second for count in word_counts]
    return [fallback_interval] * total_sub_units


class RevealPacer:
    """Reveal state for one item in one viewing session."""

    def __init__(
        self,
        total_sub_units: int,
        policy: RevealPolicy = RevealPolicy.MANUAL,
        durations: Optional[Sequence[float]] = None,
        clock: Optional[Clock] = None,
        fully_revealed: bool = False,
        tick_interval: float = DEFAULT_TICK_SECONDS,
    ):
        if total_sub_units < 0:
            raise ValueError("total_sub_units cannot be negative")
        if durations is not None and len(durations) != total_sub_units:
            raise ValueError("need one duration per sub-unit")
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")

        self.total_sub_units = total_sub_units
        self.policy = policy
        self.clock = clock or SystemClock()
        self.tick_interval = tick_interval
        self._durations = list(durations) if durations is not None else [0.0] * total_sub_units
        # Unit k+1 shows once engaged time reaches _thresholds[k-1].
        self._thresholds = list(accumulate(self._durations))[:-1]

        self._revealed = total_sub_units if fully_revealed else min(1, total_sub_units)
        self._accumulated = 0.0
        self._engaged_since: Optional[float] = None
        self._closed = False

    @classmethod
    def open(
        cls,
        status: UnlockStatus,
        total_sub_units: int,
        policy: RevealPolicy = RevealPolicy.MANUAL,
        word_counts: Optional[Sequence[int]] = None,
        words_per_second: float = DEFAULT_WORDS_PER_SECOND,
        fallback_interval: float = DEFAULT_FALLBACK_INTERVAL_SECONDS,
        clock: Optional[Clock] = None,
        tick_interval: float = DEFAULT_TICK_SECONDS,
    ) -> RevealPacer:
        """
        Build fresh reveal state for an item being opened.

        Args:
            status: The item's current status from the unlock resolver
            total_sub_units: Number of paragraphs/segments in the item
            policy: MANUAL or TIMED
            word_counts: Optional per-unit word counts (TIMED pacing)
            words_per_second: Reading speed for duration estimates
            fallback_interval: Per-unit seconds when word counts are unusable
            clock: Injected clock (monotonic time source)
            tick_interval: Period of the pacing timer started by ``pacing()``

        Raises:
            ValueError: If the item is locked
        """
        if status is UnlockStatus.LOCKED:
            raise ValueError("locked items cannot be opened")

        durations = None
        if policy is RevealPolicy.TIMED:
            durations = estimate_durations(
                total_sub_units, word_counts, words_per_second, fallback_interval
            )
        return cls(
            total_sub_units=total_sub_units,
            policy=policy,
            durations=durations,
            clock=clock,
            fully_revealed=status is UnlockStatus.COMPLETED,
            tick_interval=tick_interval,
        )

    @property
    def durations(self) -> list[float]:
        """Estimated seconds per sub-unit (zeros under MANUAL)."""
        return list(self._durations)

    @property
    def revealed_count(self) -> int:
        return self._revealed

    @property
    def is_fully_revealed(self) -> bool:
        return self._revealed >= self.total_sub_units

    @property
    def can_complete(self) -> bool:
        """Completion is only offered on fully revealed content."""
        return self.is_fully_revealed

    @property
    def is_engaged(self) -> bool:
        return self._engaged_since is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def elapsed_engaged_seconds(self) -> float:
        """Total engaged time, including the current engaged stretch."""
        if self._engaged_since is None:
            return self._accumulated
        return self._accumulated + (self.clock.monotonic() - self._engaged_since)

    def reveal_next(self) -> int:
        """Reveal exactly one more sub-unit."""
        if not self._closed:
            self._revealed = min(self._revealed + 1, self.total_sub_units)
        return self._revealed

    def reveal_all(self) -> int:
        if not self._closed:
            self._revealed = self.total_sub_units
        return self._revealed

    def set_engaged(self, engaged: bool) -> None:
        """Feed the external engagement signal (e.g. audio playing)."""
        if self._closed:
            return
        if engaged and self._engaged_since is None:
            self._engaged_since = self.clock.monotonic()
        elif not engaged and self._engaged_since is not None:
            # Apply whatever was earned up to this instant, then freeze.
            self.tick()
            self._accumulated += self.clock.monotonic() - self._engaged_since
            self._engaged_since = None

    def tick(self) -> int:
        """Advance TIMED reveal to match engaged time. Never moves backward."""
        if self._closed or self.policy is not RevealPolicy.TIMED or self.is_fully_revealed:
            return self._revealed

        elapsed = self.elapsed_engaged_seconds
        crossed = sum(1 for threshold in self._thresholds if elapsed >= threshold)
        target = min(1 + crossed, self.total_sub_units)
        if target > self._revealed:
            self._revealed = target
        return self._revealed

    def close(self) -> None:
        """End of viewing: freeze the state so late callbacks cannot touch it."""
        if self._closed:
            return
        self.set_engaged(False)
        self._closed = True

    @contextlib.asynccontextmanager
    async def pacing(self, interval: Optional[float] = None) -> AsyncIterator[RevealPacer]:
        """
        Run the pacing timer for the lifetime of a view.

        Ticks every ``interval`` seconds, the pacer's ``tick_interval`` when
        omitted. The timer task is cancelled and awaited on every exit path, including
        exceptions, and the pacer is closed afterwards.

        Example:
            async with pacer.pacing():
                pacer.set_engaged(True)
                ...
        """
        if interval is None:
            interval = self.tick_interval
        if interval <= 0:
            raise ValueError("interval must be positive")

        async def _run() -> None:
            while not self.is_fully_revealed:
                await asyncio.sleep(interval)
                self.tick()

        task = asyncio.create_task(_run())
        try:
            yield self
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self.close()
            logger.debug(
                "reveal_pacing_stopped",
                revealed_count=self._revealed,
                total_sub_units=self.total_sub_units,
            )
