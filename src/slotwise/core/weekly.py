"""Spread unscheduled tasks across the working days of a week.

Pure business logic - no I/O. Works on per-day capacity totals rather than
individual slots; the per-day SlotMatcher pass does the exact placement.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta

from .calendar import EnergyLevel, FreeSlot, total_free_time
from .durations import DurationEstimator, DurationSource
from .matching import MatchSettings, Residual, ResidualReason
from .tasks import TaskCandidate, sort_by_priority


@dataclass(frozen=True)
class DayCapacity:
    """Free time available on one working day."""

    day: date
    free: timedelta
    high_energy: timedelta = timedelta()


def capacity_from_slots(day: date, slots: list[FreeSlot]) -> DayCapacity:
    high = sum((s.duration for s in slots if s.level == EnergyLevel.HIGH), timedelta())
    return DayCapacity(day=day, free=total_free_time(slots), high_energy=high)


def week_dates(as_of: date, working_days: set[int]) -> list[date]:
    """Working days from `as_of` through the end of its ISO week (Sunday)."""
    days_left = 6 - as_of.weekday()
    return [
        as_of + timedelta(days=i)
        for i in range(days_left + 1)
        if (as_of + timedelta(days=i)).weekday() in working_days
    ]


@dataclass(frozen=True)
class PlannedTask:
    task: TaskCandidate
    duration: timedelta
    duration_source: DurationSource
    pinned: bool = False


@dataclass
class DayPlan:
    """Tasks assigned to one day, with running capacity bookkeeping."""

    day: date
    capacity: timedelta
    high_energy_capacity: timedelta = timedelta()
    tasks: list[PlannedTask] = field(default_factory=list)
    used: timedelta = timedelta()
    high_energy_used: timedelta = timedelta()
    over_committed: bool = False

    @property
    def remaining(self) -> timedelta:
        return self.capacity - self.used

    @property
    def high_energy_remaining(self) -> timedelta:
        return self.high_energy_capacity - self.high_energy_used

    def assign(self, planned: PlannedTask) -> None:
        self.tasks.append(planned)
        self.used += planned.duration
        if planned.task.energy_requirement == EnergyLevel.HIGH:
            self.high_energy_used += min(planned.duration, max(self.high_energy_remaining, timedelta()))
        if self.used > self.capacity:
            self.over_committed = True

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "capacity_minutes": self.capacity.total_seconds() / 60,
            "used_minutes": self.used.total_seconds() / 60,
            "over_committed": self.over_committed,
            "tasks": [
                {
                    "task_id": p.task.id,
                    "title": p.task.title,
                    "minutes": p.duration.total_seconds() / 60,
                    "duration_source": p.duration_source.value,
                    "pinned": p.pinned,
                }
                for p in self.tasks
            ],
        }


@dataclass
class WeeklyPlan:
    week_start: date
    days: list[DayPlan] = field(default_factory=list)
    unassigned: list[Residual] = field(default_factory=list)

    def day(self, target: date) -> DayPlan | None:
        return next((d for d in self.days if d.day == target), None)

    def to_dict(self) -> dict:
        return {
            "week_start": self.week_start.isoformat(),
            "days": [d.to_dict() for d in self.days],
            "unassigned": [r.to_dict() for r in self.unassigned],
        }


def _pin_target(plans: list[DayPlan], due: date, duration: timedelta) -> DayPlan | None:
    """Day for a dated task."""
    for plan in plans:
        if plan.day > due:
            break
        if plan.remaining >= duration:
            return plan

    if not plans or due > plans[-1].day:
        return None

    # No day with room: put it on the due date itself, or the nearest
    # working day before it; overdue tasks land on the first day.
    on_or_before = [p for p in plans if p.day <= due]
    return on_or_before[-1] if on_or_before else plans[0]


def _greedy_target(
    plans: list[DayPlan],
    task: TaskCandidate,
    duration: timedelta,
    settings: MatchSettings,
) -> DayPlan | None:
    open_days = [
        p for p in plans
        if p.remaining >= duration and len(p.tasks) < settings.max_suggestions_per_day
    ]
    if not open_days:
        return None

    if settings.match_energy_to_tasks and task.energy_requirement == EnergyLevel.HIGH:
        fresh = [p for p in open_days if p.high_energy_remaining >= duration]
        if fresh:
            return fresh[0]
    return open_days[0]


def distribute_week(
    capacities: list[DayCapacity],
    tasks: list[TaskCandidate],
    estimator: DurationEstimator,
    settings: MatchSettings,
    as_of: date,
    demoted_ids: set[str] | None = None,
) -> WeeklyPlan:
    """
    Assign tasks to the days of a week.

    Dated tasks are pinned first, to the earliest day at or before their due
    date with enough room; failing that, to the due date, which is then
    flagged as over-committed. Dateless tasks then fill the earliest days with
    room and an open suggestion slot. Tasks in demoted_ids go last within
    their priority bucket.
    """
    plans = [
        DayPlan(day=c.day, capacity=c.free, high_energy_capacity=c.high_energy)
        for c in sorted(capacities, key=lambda c: c.day)
    ]
    week_start = plans[0].day if plans else as_of
    plan = WeeklyPlan(week_start=week_start, days=plans)

    ordered = sort_by_priority(tasks, as_of, demoted_ids)
    dated = [t for t in ordered if t.due_date is not None]
    dateless = [t for t in ordered if t.due_date is None]

    for task in dated:
        duration, source = estimator.estimate(task)
        target = _pin_target(plans, task.due_date, duration)
        if target is None:
            plan.unassigned.append(Residual(task, duration, ResidualReason.NO_SLOT))
            continue
        target.assign(PlannedTask(task, duration, source, pinned=True))

    for task in dateless:
        duration, source = estimator.estimate(task)
        target = _greedy_target(plans, task, duration, settings)
        if target is None:
            plan.unassigned.append(Residual(task, duration, ResidualReason.NO_SLOT))
            continue
        target.assign(PlannedTask(task, duration, source))

    return plan
