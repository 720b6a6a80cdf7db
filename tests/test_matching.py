"""Tests for matching tasks to free slots."""

from datetime import date, datetime, time, timedelta

import pytest

from slotwise.core.calendar import EnergyLevel, FreeSlot
from slotwise.core.durations import DurationEstimator, DurationSource
from slotwise.core.learning import RescheduleLearner, RescheduleReason
from slotwise.core.matching import (
    MatchSettings,
    ResidualReason,
    SlotPreference,
    match_tasks,
)
from slotwise.core.tasks import Priority, TaskCandidate


@pytest.fixture
def today():
    return date(2025, 1, 15)


@pytest.fixture
def at(today):
    def _at(hour: int, minute: int = 0) -> datetime:
        return datetime.combine(today, time(hour, minute))
    return _at


@pytest.fixture
def slot(at):
    def _slot(start_hour, start_minute, end_hour, end_minute, level=None) -> FreeSlot:
        return FreeSlot(at(start_hour, start_minute), at(end_hour, end_minute), level)
    return _slot


@pytest.fixture
def estimator():
    return DurationEstimator(default_minutes=30)


def make_task(
    id: str,
    minutes: int | None = None,
    energy: EnergyLevel = EnergyLevel.MEDIUM,
    title: str | None = None,
    group: str = "Work",
) -> TaskCandidate:
    return TaskCandidate(
        id=id,
        title=title or f"Task {id}",
        priority=Priority.MEDIUM,
        due_date=None,
        group_key=group,
        notes=f"[duration:{minutes}m]" if minutes else "",
        energy_requirement=energy,
    )


def spans(suggestions) -> list[str]:
    return [f"{s.start:%H:%M}-{s.end:%H:%M}" for s in suggestions]


class TestWholePlacement:
    def test_fits_first_slot(self, slot, estimator):
        result = match_tasks([make_task("a")], [slot(9, 0, 10, 0)], estimator, MatchSettings())

        assert spans(result.suggestions) == ["09:00-09:30"]
        suggestion = result.suggestions[0]
        assert suggestion.block_index is None
        assert suggestion.total_blocks is None
        assert suggestion.duration_source == DurationSource.DEFAULT
        assert result.residual == []

    def test_skips_slot_too_small(self, slot, estimator):
        slots = [slot(9, 0, 9, 20), slot(10, 0, 11, 0)]
        result = match_tasks([make_task("a")], slots, estimator, MatchSettings())
        assert spans(result.suggestions) == ["10:00-10:30"]

    def test_remaining_slot_reused(self, slot, estimator):
        tasks = [make_task("a"), make_task("b")]
        result = match_tasks(tasks, [slot(9, 0, 10, 0)], estimator, MatchSettings())
        assert spans(result.suggestions) == ["09:00-09:30", "09:30-10:00"]

    def test_buffer_between_blocks(self, slot, estimator):
        tasks = [make_task("a"), make_task("b")]
        settings = MatchSettings(buffer_minutes=10)
        result = match_tasks(tasks, [slot(9, 0, 11, 0)], estimator, settings)
        assert spans(result.suggestions) == ["09:00-09:30", "09:40-10:10"]

    def test_input_slots_untouched(self, slot, estimator):
        slots = [slot(9, 0, 10, 0)]
        match_tasks([make_task("a")], slots, estimator, MatchSettings())
        assert slots == [slot(9, 0, 10, 0)]


class TestSplitting:
    def test_ninety_minutes_over_two_slots(self, slot, estimator):
        slots = [slot(9, 0, 9, 30), slot(13, 0, 14, 0)]
        result = match_tasks([make_task("a", 90)], slots, estimator, MatchSettings())

        assert spans(result.suggestions) == ["09:00-09:30", "13:00-14:00"]
        assert [(s.block_index, s.total_blocks) for s in result.suggestions] == [(1, 2), (2, 2)]
        assert all(s.duration_source == DurationSource.HINT for s in result.suggestions)
        assert result.residual == []

    def test_partial_placement_carries_over(self, slot, estimator):
        slots = [slot(9, 0, 9, 30), slot(10, 0, 10, 40)]
        result = match_tasks([make_task("a", 120)], slots, estimator, MatchSettings())

        placed = sum((s.duration for s in result.suggestions), timedelta())
        assert placed == timedelta(minutes=70)
        assert len(result.residual) == 1
        assert result.residual[0].reason == ResidualReason.PARTIAL
        assert placed + result.residual[0].remaining == timedelta(minutes=120)
        assert result.carry_over() == {"a": timedelta(minutes=50)}

    def test_never_allocates_below_minimum(self, slot, estimator):
        slots = [slot(9, 0, 10, 30), slot(11, 0, 12, 0)]
        result = match_tasks([make_task("a", 100)], slots, estimator, MatchSettings(minimum_slot_minutes=15))

        assert spans(result.suggestions) == ["09:00-10:30"]
        assert result.residual[0].remaining == timedelta(minutes=10)

    @pytest.mark.parametrize("minutes", [45, 75, 100, 150, 400])
    def test_blocks_plus_carry_over_equal_estimate(self, slot, estimator, minutes):
        slots = [slot(8, 0, 8, 40), slot(9, 0, 9, 20), slot(10, 0, 10, 50), slot(14, 0, 14, 25)]
        result = match_tasks([make_task("a", minutes)], slots, estimator, MatchSettings())

        placed = sum((s.duration for s in result.for_task("a")), timedelta())
        carried = result.carry_over().get("a", timedelta())
        assert placed + carried == timedelta(minutes=minutes)
        assert all(s.duration >= timedelta(minutes=15) for s in result.suggestions)


class TestNoPlacement:
    def test_no_slots(self, estimator):
        result = match_tasks([make_task("a")], [], estimator, MatchSettings())
        assert result.suggestions == []
        assert result.residual[0].reason == ResidualReason.NO_SLOT
        assert result.residual[0].remaining == timedelta(minutes=30)

    def test_only_tiny_slots(self, slot, estimator):
        result = match_tasks([make_task("a")], [slot(9, 0, 9, 10)], estimator, MatchSettings())
        assert result.suggestions == []
        assert result.residual[0].reason == ResidualReason.NO_SLOT

    def test_daily_cap(self, slot, estimator):
        tasks = [make_task("a"), make_task("b"), make_task("c")]
        settings = MatchSettings(max_suggestions_per_day=2)
        result = match_tasks(tasks, [slot(8, 0, 12, 0)], estimator, settings)

        assert {s.task_id for s in result.suggestions} == {"a", "b"}
        assert [(r.task.id, r.reason) for r in result.residual] == [("c", ResidualReason.OVER_CAP)]


class TestEnergyMatching:
    def test_prefers_matching_energy(self, slot, estimator):
        slots = [slot(8, 0, 9, 0), slot(9, 0, 11, 0, EnergyLevel.HIGH)]
        task = make_task("a", energy=EnergyLevel.HIGH)
        result = match_tasks([task], slots, estimator, MatchSettings())

        assert spans(result.suggestions) == ["09:00-09:30"]
        assert result.suggestions[0].energy_source == EnergyLevel.HIGH

    def test_short_matching_slot_splits_instead_of_switching_level(self, slot, estimator):
        slots = [slot(9, 0, 9, 45, EnergyLevel.HIGH), slot(16, 0, 18, 0, EnergyLevel.LOW)]
        task = make_task("a", 60, EnergyLevel.HIGH)
        result = match_tasks([task], slots, estimator, MatchSettings())

        assert spans(result.suggestions) == ["09:00-09:45"]
        assert all(s.energy_source == EnergyLevel.HIGH for s in result.suggestions)
        assert (result.suggestions[0].block_index, result.suggestions[0].total_blocks) == (1, 1)
        assert result.residual[0].reason == ResidualReason.PARTIAL
        assert result.carry_over() == {"a": timedelta(minutes=15)}

    def test_falls_back_once_matching_slots_are_used_up(self, slot, estimator):
        slots = [slot(9, 0, 9, 30, EnergyLevel.HIGH), slot(16, 0, 17, 0, EnergyLevel.LOW)]
        tasks = [make_task("a", 30, EnergyLevel.HIGH), make_task("b", 30, EnergyLevel.HIGH)]
        result = match_tasks(tasks, slots, estimator, MatchSettings())
        assert spans(result.suggestions) == ["09:00-09:30", "16:00-16:30"]

    def test_falls_back_when_no_slot_matches(self, slot, estimator):
        slots = [slot(13, 0, 14, 0, EnergyLevel.LOW), slot(16, 0, 17, 0, EnergyLevel.LOW)]
        task = make_task("a", energy=EnergyLevel.HIGH)
        result = match_tasks([task], slots, estimator, MatchSettings())
        assert spans(result.suggestions) == ["13:00-13:30"]

    def test_matching_disabled(self, slot, estimator):
        slots = [slot(8, 0, 9, 0), slot(9, 0, 11, 0, EnergyLevel.HIGH)]
        task = make_task("a", energy=EnergyLevel.HIGH)
        result = match_tasks([task], slots, estimator, MatchSettings(match_energy_to_tasks=False))
        assert spans(result.suggestions) == ["08:00-08:30"]


class TestSlotPreference:
    def test_afternoon_first(self, slot, estimator):
        slots = [slot(9, 0, 10, 0), slot(14, 0, 15, 0)]
        settings = MatchSettings(preferred_slot_times=SlotPreference.AFTERNOON_FIRST)
        result = match_tasks([make_task("a")], slots, estimator, settings)
        assert spans(result.suggestions) == ["14:00-14:30"]

    def test_spread_evenly_alternates(self, slot, estimator):
        slots = [slot(9, 0, 10, 0), slot(11, 0, 12, 0), slot(14, 0, 15, 0)]
        tasks = [make_task("a"), make_task("b"), make_task("c")]
        settings = MatchSettings(preferred_slot_times=SlotPreference.SPREAD_EVENLY)
        result = match_tasks(tasks, slots, estimator, settings)
        assert spans(result.suggestions) == ["09:00-09:30", "14:00-14:30", "09:30-10:00"]


def history(reason: RescheduleReason, count: int, title: str, hour: int = 9) -> RescheduleLearner:
    learner = RescheduleLearner()
    start = datetime(2025, 1, 14, hour)
    for _ in range(count):
        learner.record_reschedule("x", title, "Work", reason, start, start + timedelta(hours=1), datetime(2025, 1, 14, 18))
    return learner


class TestRescheduleHistory:
    def test_too_long_stretches_duration(self, slot, estimator):
        learner = history(RescheduleReason.TOO_LONG, 2, "Write report")
        task = make_task("a", 60, title="Write report")
        result = match_tasks([task], [slot(9, 0, 11, 0)], estimator, MatchSettings(), learning=learner)

        assert spans(result.suggestions) == ["09:00-10:15"]

    def test_three_too_long_stretches_further(self, slot, estimator):
        learner = history(RescheduleReason.TOO_LONG, 3, "Write report")
        task = make_task("a", 60, title="Write report")
        result = match_tasks([task], [slot(9, 0, 11, 0)], estimator, MatchSettings(), learning=learner)

        assert spans(result.suggestions) == ["09:00-10:30"]

    def test_interrupted_task_split_in_halves(self, slot, estimator):
        learner = history(RescheduleReason.INTERRUPTED, 2, "Write report")
        task = make_task("a", 60, title="Write report")
        result = match_tasks([task], [slot(9, 0, 12, 0)], estimator, MatchSettings(), learning=learner)

        assert spans(result.suggestions) == ["09:00-09:30", "09:35-10:05"]
        assert [(s.block_index, s.total_blocks) for s in result.suggestions] == [(1, 2), (2, 2)]
        assert result.residual == []

    def test_interrupted_task_gets_longer_buffer(self, slot, estimator):
        learner = history(RescheduleReason.INTERRUPTED, 3, "Write report")
        tasks = [make_task("a", 20, title="Write report"), make_task("b", 20, title="Gym", group="Home")]
        result = match_tasks(tasks, [slot(9, 0, 12, 0)], estimator, MatchSettings(), learning=learner)

        assert spans(result.suggestions) == ["09:00-09:20", "09:30-09:50"]

    def test_bad_time_moves_task_to_preferred_period(self, slot, estimator):
        learner = history(RescheduleReason.BAD_TIME, 3, "Gym session")
        tasks = [make_task("a", title="Gym session"), make_task("b", title="Write report", group="Home")]
        slots = [slot(9, 0, 10, 0), slot(14, 0, 15, 0)]
        result = match_tasks(tasks, slots, estimator, MatchSettings(), learning=learner)

        assert spans(result.for_task("a")) == ["14:00-14:30"]
        assert spans(result.for_task("b")) == ["09:00-09:30"]

    def test_too_few_samples_keep_slot_order(self, slot, estimator):
        learner = history(RescheduleReason.BAD_TIME, 2, "Gym session")
        slots = [slot(9, 0, 10, 0), slot(14, 0, 15, 0)]
        result = match_tasks([make_task("a", title="Gym session")], slots, estimator, MatchSettings(), learning=learner)

        assert spans(result.suggestions) == ["09:00-09:30"]

    def test_old_history_ignored(self, slot, estimator, at):
        learner = history(RescheduleReason.TOO_LONG, 3, "Write report")
        task = make_task("a", 60, title="Write report")
        result = match_tasks(
            [task],
            [slot(9, 0, 11, 0)],
            estimator,
            MatchSettings(),
            learning=learner,
            as_of=at(9) + timedelta(days=40),
        )

        assert spans(result.suggestions) == ["09:00-10:00"]


class TestDeterminism:
    def test_repeated_calls_identical(self, slot, estimator):
        slots = [
            slot(8, 0, 9, 0),
            slot(9, 0, 9, 50, EnergyLevel.HIGH),
            slot(11, 10, 12, 0, EnergyLevel.MEDIUM),
            slot(13, 0, 14, 0, EnergyLevel.LOW),
        ]
        tasks = [
            make_task("a", 90, EnergyLevel.HIGH),
            make_task("b", 45),
            make_task("c", 20, EnergyLevel.LOW),
            make_task("d", 200),
        ]
        settings = MatchSettings(preferred_slot_times=SlotPreference.SPREAD_EVENLY, buffer_minutes=5)

        first = match_tasks(tasks, slots, estimator, settings)
        second = match_tasks(tasks, slots, estimator, settings)

        assert first == second
        assert [s.to_dict() for s in first.suggestions] == [s.to_dict() for s in second.suggestions]


class TestSuggestion:
    def test_format_block(self, slot, estimator):
        slots = [slot(9, 0, 9, 30), slot(13, 0, 14, 0)]
        result = match_tasks([make_task("a", 90)], slots, estimator, MatchSettings())
        assert result.suggestions[0].format() == "09:00-09:30 Task a (block 1/2)"

    def test_to_dict(self, slot, estimator):
        result = match_tasks([make_task("a")], [slot(9, 0, 10, 0)], estimator, MatchSettings())
        assert result.suggestions[0].to_dict() == {
            "task_id": "a",
            "title": "Task a",
            "start": "2025-01-15T09:00:00",
            "end": "2025-01-15T09:30:00",
            "block_index": None,
            "total_blocks": None,
            "energy_source": None,
            "duration_source": "default",
        }
