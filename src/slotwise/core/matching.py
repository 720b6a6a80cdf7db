"""Greedy slot assignment - the scheduling core.

Tasks arrive already in priority order. Each task is placed whole into the
first candidate slot that can hold it, or split across several slots when no
single slot is long enough. Consumed time leaves the pool immediately so later
tasks in the same pass cannot double-book it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from .calendar import EnergyLevel, FreeSlot
from .durations import DurationEstimator, DurationSource
from .learning import RescheduleLearner, TaskAdvice
from .tasks import TaskCandidate


class SlotPreference(Enum):
    """Which part of the day gets filled first."""

    MORNING_FIRST = "morning_first"
    AFTERNOON_FIRST = "afternoon_first"
    SPREAD_EVENLY = "spread_evenly"


@dataclass(frozen=True)
class MatchSettings:
    """Matcher knobs, passed in explicitly on every call."""

    max_suggestions_per_day: int = 10
    match_energy_to_tasks: bool = True
    preferred_slot_times: SlotPreference = SlotPreference.MORNING_FIRST
    minimum_slot_minutes: int = 15
    buffer_minutes: int = 0


@dataclass(frozen=True)
class Suggestion:
    """A proposed allocation of (part of) a task."""

    task_id: str
    title: str
    start: datetime
    end: datetime
    energy_source: EnergyLevel | None
    duration_source: DurationSource
    block_index: int | None = None
    total_blocks: int | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() / 60)

    def format(self) -> str:
        block = f" (block {self.block_index}/{self.total_blocks})" if self.block_index else ""
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')} {self.title}{block}"

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "block_index": self.block_index,
            "total_blocks": self.total_blocks,
            "energy_source": self.energy_source.value if self.energy_source else None,
            "duration_source": self.duration_source.value,
        }


class ResidualReason(Enum):
    NO_SLOT = "no_slot"
    PARTIAL = "partial"
    OVER_CAP = "over_cap"


@dataclass(frozen=True)
class Residual:
    """A task that received no allocation, or only part of one."""

    task: TaskCandidate
    remaining: timedelta
    reason: ResidualReason

    def to_dict(self) -> dict:
        return {
            "task_id": self.task.id,
            "title": self.task.title,
            "remaining_minutes": self.remaining.total_seconds() / 60,
            "reason": self.reason.value,
        }


@dataclass
class MatchResult:
    suggestions: list[Suggestion] = field(default_factory=list)
    residual: list[Residual] = field(default_factory=list)

    def for_task(self, task_id: str) -> list[Suggestion]:
        return [s for s in self.suggestions if s.task_id == task_id]

    def carry_over(self) -> dict[str, timedelta]:
        """Unplaced duration per task, for a later day to reattempt."""
        return {r.task.id: r.remaining for r in self.residual}


def _energy_filtered(pool: list[FreeSlot], task: TaskCandidate, settings: MatchSettings) -> bool:
    """Whether this task's candidates are limited to usable slots of its energy level."""
    if not settings.match_energy_to_tasks:
        return False
    minimum = timedelta(minutes=settings.minimum_slot_minutes)
    # Never refuse to schedule just because no slot has the right energy.
    return any(slot.level == task.energy_requirement and slot.duration >= minimum for slot in pool)


def _candidate_order(
    pool: list[FreeSlot],
    task: TaskCandidate,
    energy_only: bool,
    descending: bool,
) -> list[int]:
    """Indices into the pool, best candidate first."""
    order = sorted(range(len(pool)), key=lambda i: pool[i].start, reverse=descending)
    if energy_only:
        return [i for i in order if pool[i].level == task.energy_requirement]
    return order


def _consume(pool: list[FreeSlot], index: int, used_until: datetime, buffer: timedelta) -> None:
    """Shrink a slot from its head, dropping it once nothing is left."""
    slot = pool[index]
    tail_start = used_until + buffer
    if tail_start < slot.end:
        pool[index] = FreeSlot(start=tail_start, end=slot.end, level=slot.level)
    else:
        del pool[index]


def _split(
    task: TaskCandidate,
    duration: timedelta,
    pool: list[FreeSlot],
    settings: MatchSettings,
    energy_only: bool,
    descending: bool,
    buffer: timedelta,
) -> tuple[list[FreeSlot], timedelta]:
    """Spread a task across slots. Returns the allocated blocks and the carry-over."""
    minimum = timedelta(minutes=settings.minimum_slot_minutes)
    remaining = duration
    blocks = []

    while remaining > timedelta():
        order = _candidate_order(pool, task, energy_only, descending)
        index = next((i for i in order if pool[i].duration >= minimum), None)
        if index is None:
            break

        slot = pool[index]
        allocation = min(slot.duration, remaining)
        if allocation < minimum:
            break

        end = slot.start + allocation
        blocks.append(FreeSlot(start=slot.start, end=end, level=slot.level))
        _consume(pool, index, end, buffer)
        remaining -= allocation

    return blocks, remaining


def _best_fit(pool: list[FreeSlot], order: list[int], duration: timedelta, advice: TaskAdvice | None) -> int | None:
    """First slot that holds the whole piece, or the best-scored one when history prefers a time of day."""
    fitting = [i for i in order if pool[i].duration >= duration]
    if not fitting:
        return None
    if advice is None:
        return fitting[0]
    scores = [advice.slot_score(pool[i].start) for i in fitting]
    if max(scores) > 0:
        return fitting[scores.index(max(scores))]
    return fitting[0]


def match_tasks(
    tasks: list[TaskCandidate],
    slots: list[FreeSlot],
    estimator: DurationEstimator,
    settings: MatchSettings,
    learning: RescheduleLearner | None = None,
    as_of: datetime | None = None,
) -> MatchResult:
    """
    Assign prioritized tasks to a day's free slots.

    Pure function - the slot list passed in is copied, not mutated. Identical
    inputs always produce identical output.

    Args:
        tasks: Tasks in priority order
        slots: The day's free slots
        estimator: Source of per-task duration estimates
        settings: Matcher settings
        learning: Reschedule history; stretches durations, adds buffers,
            splits interrupted tasks and steers toward preferred times of day
        as_of: Reference time for the reschedule history (defaults to the
            earliest slot start)

    Returns:
        MatchResult with suggestions in assignment order and a residual list
        covering every task that was not fully placed
    """
    pool = sorted(slots, key=lambda s: s.start)
    base_buffer = timedelta(minutes=settings.buffer_minutes)
    minimum = timedelta(minutes=settings.minimum_slot_minutes)
    preference = settings.preferred_slot_times
    if as_of is None and pool:
        as_of = pool[0].start
    result = MatchResult()

    cap = max(settings.max_suggestions_per_day, 0)
    attempted, over_cap = tasks[:cap], tasks[cap:]
    spread_from_end = False

    for task in attempted:
        duration, source = estimator.estimate(task)
        advice = learning.advice(task, as_of) if learning is not None and as_of is not None else None
        buffer = base_buffer
        pieces = [duration]
        if advice is not None:
            duration = advice.adjust_duration(duration)
            buffer += advice.extra_buffer
            pieces = advice.pieces(duration, minimum)

        match preference:
            case SlotPreference.MORNING_FIRST:
                descending = False
            case SlotPreference.AFTERNOON_FIRST:
                descending = True
            case SlotPreference.SPREAD_EVENLY:
                descending = spread_from_end

        placed: list[FreeSlot] = []
        remaining = timedelta()
        for piece in pieces:
            if not pool:
                remaining += piece
                continue
            energy_only = _energy_filtered(pool, task, settings)
            order = _candidate_order(pool, task, energy_only, descending)
            fit = _best_fit(pool, order, piece, advice)
            if fit is not None:
                slot = pool[fit]
                end = slot.start + piece
                placed.append(FreeSlot(start=slot.start, end=end, level=slot.level))
                _consume(pool, fit, end, buffer)
                continue
            blocks, left = _split(task, piece, pool, settings, energy_only, descending, buffer)
            placed.extend(blocks)
            remaining += left

        if not placed:
            result.residual.append(Residual(task, duration, ResidualReason.NO_SLOT))
            continue

        numbered = len(placed) > 1 or remaining > timedelta()
        for index, block in enumerate(placed, start=1):
            result.suggestions.append(
                Suggestion(
                    task_id=task.id,
                    title=task.title,
                    start=block.start,
                    end=block.end,
                    energy_source=block.level,
                    duration_source=source,
                    block_index=index if numbered else None,
                    total_blocks=len(placed) if numbered else None,
                )
            )
        if remaining > timedelta():
            result.residual.append(Residual(task, remaining, ResidualReason.PARTIAL))
        spread_from_end = not spread_from_end

    for task in over_cap:
        duration, _ = estimator.estimate(task)
        result.residual.append(Residual(task, duration, ResidualReason.OVER_CAP))

    return result
