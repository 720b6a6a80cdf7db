"""Reconcile tracked task events against a fresh calendar snapshot.

Pure business logic - the caller supplies the snapshot and persists the
updated registry. For each active tracked event:

1. missing from the snapshot  -> task cancelled, record deactivated
2. start/end changed          -> task follows the move, record updated
3. overlaps any other event   -> task conflicted, reported for resolution

Running twice on the same snapshot emits nothing the second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from .lifecycle import ScheduledTask, StateTransition, TaskState, can_transition

logger = logging.getLogger(__name__)


def to_local(moment: datetime) -> datetime:
    """Naive local time; offset-aware timestamps are converted first."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


class ReconcileError(Exception):
    """Raised when a single tracked record cannot be evaluated."""

    pass


class AmbiguousMatchError(ReconcileError):
    pass


class UnknownTaskError(ReconcileError):
    pass


@dataclass(frozen=True)
class ExternalEvent:
    """An event currently on the calendar."""

    external_event_id: str
    start: datetime
    end: datetime
    title: str = ""

    def overlaps(self, other: "ExternalEvent") -> bool:
        return self.start < other.end and other.start < self.end

    @classmethod
    def from_dict(cls, data: dict) -> "ExternalEvent":
        return cls(
            external_event_id=str(data["id"]),
            start=to_local(datetime.fromisoformat(data["start"])),
            end=to_local(datetime.fromisoformat(data["end"])),
            title=data.get("title", ""),
        )


@dataclass
class TrackedEvent:
    """Durable link between a task and the calendar event holding its block."""

    task_id: str
    external_event_id: str
    original_start: datetime
    original_end: datetime
    active: bool = True
    overlapping_ids: list[str] = field(default_factory=list)
    acknowledged_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "external_event_id": self.external_event_id,
            "original_start": self.original_start.isoformat(),
            "original_end": self.original_end.isoformat(),
            "active": self.active,
            "overlapping_ids": self.overlapping_ids,
            "acknowledged_ids": self.acknowledged_ids,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrackedEvent":
        return cls(
            task_id=data["task_id"],
            external_event_id=data["external_event_id"],
            original_start=datetime.fromisoformat(data["original_start"]),
            original_end=datetime.fromisoformat(data["original_end"]),
            active=data.get("active", True),
            overlapping_ids=list(data.get("overlapping_ids", [])),
            acknowledged_ids=list(data.get("acknowledged_ids", [])),
        )


@dataclass(frozen=True)
class Move:
    task_id: str
    old_start: datetime
    old_end: datetime
    new_start: datetime
    new_end: datetime


@dataclass(frozen=True)
class Conflict:
    """A task block that now overlaps other events; resolved externally."""

    task_id: str
    event: ExternalEvent
    overlapping: tuple[ExternalEvent, ...]


@dataclass(frozen=True)
class ReconcileFailure:
    task_id: str
    external_event_id: str
    error: str


@dataclass
class ReconcileReport:
    transitions: list[StateTransition] = field(default_factory=list)
    moves: list[Move] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    errors: list[ReconcileFailure] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.transitions or self.moves or self.conflicts or self.errors)


class ConflictReconciler:
    """Owns the registry of tracked events and the tasks they belong to."""

    def __init__(
        self,
        tracked: list[TrackedEvent] | None = None,
        tasks: dict[str, ScheduledTask] | None = None,
    ):
        self.tracked = list(tracked or [])
        self.tasks = dict(tasks or {})

    def active_records(self) -> list[TrackedEvent]:
        return [r for r in self.tracked if r.active]

    def track(
        self,
        task: ScheduledTask,
        external_event_id: str,
        start: datetime,
        end: datetime,
    ) -> TrackedEvent:
        """Register the calendar event created for an approved task."""
        for record in self.active_records():
            if record.task_id == task.task_id:
                raise ValueError(f"Task {task.task_id} already tracks event {record.external_event_id}")
            if record.external_event_id == external_event_id:
                raise ValueError(f"Event {external_event_id} already tracked for task {record.task_id}")

        task.start, task.end = start, end
        self.tasks[task.task_id] = task
        record = TrackedEvent(task.task_id, external_event_id, start, end)
        self.tracked.append(record)
        return record

    def reconcile(self, snapshot: list[ExternalEvent]) -> ReconcileReport:
        """Compare every active record against the snapshot."""
        report = ReconcileReport()
        by_id: dict[str, list[ExternalEvent]] = {}
        for event in snapshot:
            by_id.setdefault(event.external_event_id, []).append(event)

        for record in self.active_records():
            try:
                self._reconcile_record(record, snapshot, by_id, report)
            except ReconcileError as e:
                logger.warning(f"Skipping tracked event {record.external_event_id}: {e}")
                report.errors.append(ReconcileFailure(record.task_id, record.external_event_id, str(e)))
            except Exception as e:
                logger.exception(f"Failed to reconcile tracked event {record.external_event_id}")
                report.errors.append(ReconcileFailure(record.task_id, record.external_event_id, repr(e)))

        if not report.is_empty:
            logger.info(
                f"Reconciled {len(self.active_records())} active event(s): "
                f"{len(report.transitions)} transition(s), {len(report.moves)} move(s), "
                f"{len(report.errors)} error(s)"
            )
        return report

    def _reconcile_record(
        self,
        record: TrackedEvent,
        snapshot: list[ExternalEvent],
        by_id: dict[str, list[ExternalEvent]],
        report: ReconcileReport,
    ) -> None:
        task = self.tasks.get(record.task_id)
        if task is None:
            raise UnknownTaskError(f"No task {record.task_id} for tracked event")

        matches = by_id.get(record.external_event_id, [])
        if len(matches) > 1:
            raise AmbiguousMatchError(
                f"{len(matches)} events share id {record.external_event_id}"
            )

        if not matches:
            record.active = False
            if can_transition(task.state, TaskState.CANCELLED):
                report.transitions.append(task.transition(TaskState.CANCELLED, "event deleted"))
            return

        event = matches[0]
        if (event.start, event.end) != (record.original_start, record.original_end):
            report.moves.append(
                Move(record.task_id, record.original_start, record.original_end, event.start, event.end)
            )
            record.original_start, record.original_end = event.start, event.end
            task.start, task.end = event.start, event.end

        overlapping = tuple(
            other for other in snapshot
            if other.external_event_id != event.external_event_id
            and other.external_event_id not in record.acknowledged_ids
            and event.overlaps(other)
        )
        if not overlapping or task.state == TaskState.CONFLICTED:
            return
        if can_transition(task.state, TaskState.CONFLICTED):
            titles = ", ".join(o.title or o.external_event_id for o in overlapping)
            report.transitions.append(task.transition(TaskState.CONFLICTED, f"overlaps {titles}"))
            record.overlapping_ids = [o.external_event_id for o in overlapping]
            report.conflicts.append(Conflict(record.task_id, event, overlapping))

    def resolve_conflict(self, task_id: str, keep: bool) -> StateTransition:
        """Apply an external decision on a conflicted task."""
        task = self.tasks.get(task_id)
        if task is None:
            raise UnknownTaskError(f"No task {task_id}")
        if task.state != TaskState.CONFLICTED:
            raise ValueError(f"Task {task_id} is {task.state.value}, not conflicted")

        records = [r for r in self.active_records() if r.task_id == task_id]
        if keep:
            # Keep both: the overlaps seen so far stop counting as conflicts.
            for record in records:
                record.acknowledged_ids.extend(record.overlapping_ids)
                record.overlapping_ids = []
            return task.transition(TaskState.APPROVED, "conflict resolved: keep")

        for record in records:
            record.active = False
        return task.transition(TaskState.CANCELLED, "conflict resolved: cancel")
