"""
Tests for experiment window rules.
"""
from datetime import date, timedelta

import pytest

from sequence_progress.domain.errors import TooEarly
from sequence_progress.domain.experiment import (
    DayPosition,
    ExperimentStatus,
    build_experiment_view,
    check_date_floor,
    item_available_on,
    reflection_unlocked,
)
from sequence_progress.domain.models import SequenceDefinition, UnlockStatus
from sequence_progress.domain.unlock import resolve_unlock_state

D = date(2024, 3, 10)


@pytest.fixture
def experiment() -> SequenceDefinition:
    return SequenceDefinition(sequence_id="exp", total_items=7, window_start_date=D)


@pytest.mark.unit
class TestDateFloor:
    def test_available_on(self, experiment: SequenceDefinition) -> None:
        assert item_available_on(experiment, 1) == D
        assert item_available_on(experiment, 7) == D + timedelta(days=6)

    def test_day_three_on_day_one_is_too_early(self, experiment: SequenceDefinition) -> None:
        with pytest.raises(TooEarly) as exc_info:
            check_date_floor(experiment, 3, D)

        error = exc_info.value
        assert error.available_on == D + timedelta(days=2)
        assert error.to_dict()["error"]["available_on"] == "2024-03-12"

    def test_late_completion_allowed(self, experiment: SequenceDefinition) -> None:
        check_date_floor(experiment, 2, D + timedelta(days=30))

    def test_window_end_defaults_to_length(self, experiment: SequenceDefinition) -> None:
        assert experiment.window_end == D + timedelta(days=6)


@pytest.mark.unit
class TestReflection:
    @pytest.mark.parametrize(
        "completed,expected", [(0, False), (5, False), (6, True), (7, True)]
    )
    def test_unlocks_one_day_before_finish(self, completed: int, expected: bool) -> None:
        assert reflection_unlocked(completed, 7) is expected


@pytest.mark.unit
class TestExperimentView:
    def test_calendar_positions_and_completable(self, experiment: SequenceDefinition) -> None:
        today = D + timedelta(days=1)
        state = resolve_unlock_state({1}, 7, "exp")

        view = build_experiment_view(experiment, state, today)

        assert [d.position for d in view.days[:3]] == [
            DayPosition.PAST,
            DayPosition.TODAY,
            DayPosition.FUTURE,
        ]
        assert view.days[0].status is UnlockStatus.COMPLETED
        assert view.days[1].completable
        assert not view.days[2].completable
        assert view.status is ExperimentStatus.ACTIVE
        assert not view.reflection_unlocked

    def test_unlocked_but_future_day_not_completable(self, experiment: SequenceDefinition) -> None:
        state = resolve_unlock_state({1}, 7, "exp")

        view = build_experiment_view(experiment, state, D)

        assert view.days[1].status is UnlockStatus.UNLOCKED
        assert not view.days[1].completable

    def test_completed_experiment(self, experiment: SequenceDefinition) -> None:
        state = resolve_unlock_state(range(1, 8), 7, "exp")

        view = build_experiment_view(experiment, state, D + timedelta(days=8), "Went well")

        assert view.status is ExperimentStatus.COMPLETED
        assert view.reflection_unlocked
        assert view.reflection == "Went well"
        assert all(d.position is DayPosition.PAST for d in view.days)

    def test_requires_window(self) -> None:
        plain = SequenceDefinition(sequence_id="plan", total_items=3)

        with pytest.raises(ValueError):
            build_experiment_view(plain, resolve_unlock_state(set(), 3), D)
