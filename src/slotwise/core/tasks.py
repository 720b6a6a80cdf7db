"""Pure task domain logic - no I/O dependencies."""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from .calendar import EnergyLevel

logger = logging.getLogger(__name__)


class Priority(Enum):
    """Task priority, ordered from most to least important."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_int(cls, value: int) -> "Priority":
        """Convert a reminder-store priority (0=none, 1-4=high, 5=medium, 6-9=low)."""
        if 1 <= value <= 4:
            return cls.HIGH
        if value == 5:
            return cls.MEDIUM
        if 6 <= value <= 9:
            return cls.LOW
        return cls.NONE

    @classmethod
    def parse(cls, value: "str | int | None") -> "Priority":
        if value is None:
            return cls.NONE
        if isinstance(value, int):
            return cls.from_int(value)
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NONE


_PRIORITY_RANK = {
    Priority.HIGH: 0,
    Priority.MEDIUM: 1,
    Priority.LOW: 2,
    Priority.NONE: 3,
}


@dataclass(frozen=True)
class TaskCandidate:
    """Read-only view of an open task to be scheduled."""

    id: str
    title: str
    priority: Priority
    due_date: date | None
    group_key: str
    notes: str = ""
    energy_requirement: EnergyLevel = EnergyLevel.MEDIUM

    def days_until_due(self, as_of: date) -> int | None:
        """Days until due date (negative if overdue)."""
        if not self.due_date:
            return None
        return (self.due_date - as_of).days

    def is_overdue(self, as_of: date) -> bool:
        return self.due_date is not None and self.due_date < as_of

    @classmethod
    def from_dict(
        cls,
        data: dict,
        list_energy_defaults: dict[str, EnergyLevel] | None = None,
    ) -> "TaskCandidate":
        """Create a TaskCandidate from a task snapshot record."""
        due = None
        if data.get("due_date"):
            due = date.fromisoformat(str(data["due_date"]).split("T")[0])

        priority = Priority.parse(data.get("priority"))
        group_key = data.get("group_key") or data.get("list") or "Unknown"

        energy = energy_for(priority, group_key, list_energy_defaults)
        if data.get("energy"):
            try:
                energy = EnergyLevel.parse(data["energy"])
            except (ValueError, AttributeError):
                logger.warning(f"Unknown energy {data['energy']!r} on task {data.get('id')}, using {energy.value}")

        return cls(
            id=str(data["id"]),
            title=data.get("title") or "Untitled",
            priority=priority,
            due_date=due,
            group_key=group_key,
            notes=data.get("notes") or "",
            energy_requirement=energy,
        )


def energy_for(
    priority: Priority,
    group_key: str,
    list_energy_defaults: dict[str, EnergyLevel] | None = None,
) -> EnergyLevel:
    """Energy a task demands: the list default if configured, else mapped from priority."""
    if list_energy_defaults and group_key in list_energy_defaults:
        return list_energy_defaults[group_key]

    match priority:
        case Priority.HIGH:
            return EnergyLevel.HIGH
        case Priority.MEDIUM:
            return EnergyLevel.MEDIUM
        case Priority.LOW | Priority.NONE:
            return EnergyLevel.LOW


def _same_week(a: date, b: date) -> bool:
    return a.isocalendar()[:2] == b.isocalendar()[:2]


def priority_key(task: TaskCandidate, as_of: date, demoted: bool = False) -> tuple[int, int, int]:
    """
    Bucket and in-bucket rank for a task.

    Buckets: overdue, due today, due this week, due later, no date. A demoted
    task sorts after the rest of its bucket but ahead of the next one.
    """
    due = task.due_date
    if due is None:
        return (4, int(demoted), task.priority.rank)
    if due < as_of:
        # Earlier due date = more overdue
        return (0, int(demoted), due.toordinal())
    if due == as_of:
        return (1, int(demoted), task.priority.rank)
    if _same_week(due, as_of):
        return (2, int(demoted), task.priority.rank)
    return (3, int(demoted), task.priority.rank)


def sort_by_priority(
    tasks: list[TaskCandidate],
    as_of: date,
    demoted_ids: set[str] | None = None,
) -> list[TaskCandidate]:
    """
    Order tasks for allocation.

    Pure function - no I/O. `sorted` is stable, so ties keep input order.
    Tasks in demoted_ids (repeatedly rescheduled as not important) drop to
    the end of their bucket.
    """
    demoted_ids = demoted_ids or set()
    return sorted(tasks, key=lambda t: priority_key(t, as_of, t.id in demoted_ids))


def filter_schedulable(
    tasks: list[TaskCandidate],
    exclude_ids: set[str],
) -> list[TaskCandidate]:
    """Drop tasks that already have an allocation."""
    return [t for t in tasks if t.id not in exclude_ids]
