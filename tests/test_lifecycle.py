"""Tests for the task state machine."""

from datetime import datetime

import pytest

from slotwise.core.lifecycle import (
    InvalidTransitionError,
    ScheduledTask,
    TaskState,
    allowed_transitions,
    can_transition,
)

TERMINAL = [
    TaskState.COMPLETED,
    TaskState.PARTIALLY_DONE,
    TaskState.RESCHEDULED,
    TaskState.SKIPPED,
    TaskState.CANCELLED,
]


class TestTransitions:
    @pytest.mark.parametrize(
        "old,new",
        [
            (TaskState.PENDING, TaskState.APPROVED),
            (TaskState.APPROVED, TaskState.IN_PROGRESS),
            (TaskState.APPROVED, TaskState.CONFLICTED),
            (TaskState.APPROVED, TaskState.CANCELLED),
            (TaskState.IN_PROGRESS, TaskState.AWAITING_REVIEW),
            (TaskState.IN_PROGRESS, TaskState.CONFLICTED),
            (TaskState.AWAITING_REVIEW, TaskState.COMPLETED),
            (TaskState.AWAITING_REVIEW, TaskState.PARTIALLY_DONE),
            (TaskState.AWAITING_REVIEW, TaskState.RESCHEDULED),
            (TaskState.AWAITING_REVIEW, TaskState.SKIPPED),
            (TaskState.CONFLICTED, TaskState.APPROVED),
            (TaskState.CONFLICTED, TaskState.CANCELLED),
        ],
    )
    def test_allowed(self, old, new):
        assert can_transition(old, new)

    @pytest.mark.parametrize(
        "old,new",
        [
            (TaskState.PENDING, TaskState.IN_PROGRESS),
            (TaskState.PENDING, TaskState.CONFLICTED),
            (TaskState.APPROVED, TaskState.COMPLETED),
            (TaskState.CONFLICTED, TaskState.IN_PROGRESS),
            (TaskState.CANCELLED, TaskState.APPROVED),
            (TaskState.COMPLETED, TaskState.CONFLICTED),
        ],
    )
    def test_forbidden(self, old, new):
        assert not can_transition(old, new)

    @pytest.mark.parametrize("state", TERMINAL)
    def test_terminal_states(self, state):
        assert state.is_terminal
        assert allowed_transitions(state) == frozenset()

    def test_every_state_covered(self):
        for state in TaskState:
            assert isinstance(allowed_transitions(state), frozenset)

    def test_live_states(self):
        assert TaskState.APPROVED.is_live
        assert TaskState.CONFLICTED.is_live
        assert not TaskState.PENDING.is_live
        assert not TaskState.CANCELLED.is_live


class TestScheduledTask:
    def test_transition_returns_change(self):
        task = ScheduledTask(task_id="t1", state=TaskState.PENDING)
        change = task.transition(TaskState.APPROVED, "suggestion approved")

        assert task.state == TaskState.APPROVED
        assert change.to_dict() == {
            "task_id": "t1",
            "old_state": "pending",
            "new_state": "approved",
            "reason": "suggestion approved",
        }

    def test_invalid_transition_raises(self):
        task = ScheduledTask(task_id="t1", state=TaskState.CANCELLED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            task.transition(TaskState.APPROVED, "retry")

        assert exc_info.value.old == TaskState.CANCELLED
        assert exc_info.value.new == TaskState.APPROVED
        assert task.state == TaskState.CANCELLED

    def test_invalid_transition_is_value_error(self):
        task = ScheduledTask(task_id="t1", state=TaskState.PENDING)
        with pytest.raises(ValueError):
            task.transition(TaskState.COMPLETED, "skip ahead")

    def test_dict_round_trip(self):
        task = ScheduledTask(
            task_id="t1",
            state=TaskState.IN_PROGRESS,
            start=datetime(2025, 1, 15, 10, 0),
            end=datetime(2025, 1, 15, 11, 0),
            title="Write report",
        )
        assert ScheduledTask.from_dict(task.to_dict()) == task

    def test_from_dict_without_times(self):
        task = ScheduledTask.from_dict({"task_id": "t1", "state": "pending"})
        assert task.start is None
        assert task.end is None
        assert task.title == ""
