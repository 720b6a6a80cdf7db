"""Task state machine - pure, no I/O."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TaskState(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    AWAITING_REVIEW = "awaiting_review"
    COMPLETED = "completed"
    PARTIALLY_DONE = "partially_done"
    RESCHEDULED = "rescheduled"
    SKIPPED = "skipped"
    CONFLICTED = "conflicted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not allowed_transitions(self)

    @property
    def is_live(self) -> bool:
        """Whether the task currently occupies a block on the calendar."""
        return self in _LIVE_STATES


_LIVE_STATES = frozenset(
    {TaskState.APPROVED, TaskState.IN_PROGRESS, TaskState.AWAITING_REVIEW, TaskState.CONFLICTED}
)


def allowed_transitions(state: TaskState) -> frozenset[TaskState]:
    """Every state reachable from `state` in one step."""
    match state:
        case TaskState.PENDING:
            return frozenset({TaskState.APPROVED})
        case TaskState.APPROVED:
            return frozenset({TaskState.IN_PROGRESS, TaskState.CONFLICTED, TaskState.CANCELLED})
        case TaskState.IN_PROGRESS:
            return frozenset({TaskState.AWAITING_REVIEW, TaskState.CONFLICTED, TaskState.CANCELLED})
        case TaskState.AWAITING_REVIEW:
            return frozenset(
                {
                    TaskState.COMPLETED,
                    TaskState.PARTIALLY_DONE,
                    TaskState.RESCHEDULED,
                    TaskState.SKIPPED,
                    TaskState.CONFLICTED,
                    TaskState.CANCELLED,
                }
            )
        case TaskState.CONFLICTED:
            return frozenset({TaskState.APPROVED, TaskState.CANCELLED})
        case (
            TaskState.COMPLETED
            | TaskState.PARTIALLY_DONE
            | TaskState.RESCHEDULED
            | TaskState.SKIPPED
            | TaskState.CANCELLED
        ):
            return frozenset()


def can_transition(old: TaskState, new: TaskState) -> bool:
    return new in allowed_transitions(old)


class InvalidTransitionError(ValueError):
    """Raised when a state change is not an edge of the task state machine."""

    def __init__(self, task_id: str, old: TaskState, new: TaskState):
        super().__init__(f"Task {task_id}: cannot go from {old.value} to {new.value}")
        self.task_id = task_id
        self.old = old
        self.new = new


@dataclass(frozen=True)
class StateTransition:
    """A state change emitted to collaborators."""

    task_id: str
    old_state: TaskState
    new_state: TaskState
    reason: str

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "old_state": self.old_state.value,
            "new_state": self.new_state.value,
            "reason": self.reason,
        }


@dataclass
class ScheduledTask:
    """A task that has been given a place on the calendar."""

    task_id: str
    state: TaskState
    start: datetime | None = None
    end: datetime | None = None
    title: str = ""

    def transition(self, new_state: TaskState, reason: str) -> StateTransition:
        """Move to `new_state`, raising InvalidTransitionError for illegal edges."""
        if not can_transition(self.state, new_state):
            raise InvalidTransitionError(self.task_id, self.state, new_state)
        change = StateTransition(self.task_id, self.state, new_state, reason)
        self.state = new_state
        return change

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "state": self.state.value,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledTask":
        return cls(
            task_id=data["task_id"],
            state=TaskState(data["state"]),
            start=datetime.fromisoformat(data["start"]) if data.get("start") else None,
            end=datetime.fromisoformat(data["end"]) if data.get("end") else None,
            title=data.get("title", ""),
        )
