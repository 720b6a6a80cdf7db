"""Pure calendar domain logic - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum


class EnergyLevel(Enum):
    """Expected focus capacity for a part of the day."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: str) -> "EnergyLevel":
        """Parse a level name, accepting the legacy 'high_focus' spelling."""
        normalized = value.strip().lower().replace("-", "_")
        if normalized == "high_focus":
            normalized = "high"
        return cls(normalized)


@dataclass(frozen=True)
class BusyInterval:
    """Opaque occupied time from the calendar. Never mutated."""

    start: datetime
    end: datetime

    def overlaps(self, other: "BusyInterval") -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class EnergyBlock:
    """A labelled time-of-day range, in seconds from midnight."""

    start: int
    end: int
    level: EnergyLevel

    def on(self, day: date) -> tuple[datetime, datetime]:
        """Anchor this block to a specific date."""
        return at_time_of_day(day, self.start), at_time_of_day(day, self.end)


@dataclass(frozen=True)
class FreeSlot:
    """A contiguous span with no busy overlap, carrying at most one energy label."""

    start: datetime
    end: datetime
    level: EnergyLevel | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() / 60)

    def format(self) -> str:
        label = f" [{self.level.value}]" if self.level else ""
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')} ({self.duration_minutes()} min){label}"


def at_time_of_day(day: date, seconds_from_midnight: int) -> datetime:
    """Build a naive local datetime on `day` at the given offset."""
    return datetime.combine(day, time.min) + timedelta(seconds=seconds_from_midnight)


def seconds_from_midnight(moment: datetime) -> int:
    return moment.hour * 3600 + moment.minute * 60 + moment.second


def validate_energy_blocks(blocks: list[EnergyBlock]) -> list[EnergyBlock]:
    """Return blocks sorted by start, raising ValueError if any overlap or are empty."""
    ordered = sorted(blocks, key=lambda b: b.start)
    for block in ordered:
        if block.end <= block.start:
            raise ValueError(f"Energy block {block} has no duration")
    for prev, nxt in zip(ordered, ordered[1:]):
        if nxt.start < prev.end:
            raise ValueError(f"Energy blocks overlap: {prev} and {nxt}")
    return ordered


def energy_level_at(moment: datetime, blocks: list[EnergyBlock]) -> EnergyLevel | None:
    """Energy label covering a moment, or None in the gaps between blocks."""
    offset = seconds_from_midnight(moment)
    for block in blocks:
        if block.start <= offset < block.end:
            return block.level
    return None


def working_window(
    day: date,
    work_start: int,
    work_end: int,
    working_days: set[int],
    now: datetime | None = None,
) -> tuple[datetime, datetime] | None:
    """
    Resolve the schedulable window for a day.

    Args:
        day: Date being scanned
        work_start: Start of work day (seconds from midnight)
        work_end: End of work day (seconds from midnight)
        working_days: Weekday numbers (Monday = 0) that are working days
        now: Current time; a scan later in the day starts from here

    Returns:
        (start, end) or None when there is nothing left to schedule
    """
    if day.weekday() not in working_days:
        return None

    start = at_time_of_day(day, work_start)
    end = at_time_of_day(day, work_end)

    if now is not None and now.date() == day:
        start = max(start, now)
    elif now is not None and now.date() > day:
        return None

    if start >= end:
        return None
    return start, end


def focus_intervals(day: date, blocks: list[tuple[int, int]]) -> list[BusyInterval]:
    """Turn configured focus-time ranges into busy intervals for a day."""
    return [
        BusyInterval(start=at_time_of_day(day, start), end=at_time_of_day(day, end))
        for start, end in blocks
        if end > start
    ]


def merge_intervals(intervals: list[BusyInterval]) -> list[BusyInterval]:
    """Merge intervals that overlap or touch into a minimal sorted set."""
    ordered = sorted(
        (i for i in intervals if i.end > i.start),
        key=lambda i: (i.start, i.end),
    )
    if not ordered:
        return []

    merged = [ordered[0]]
    for interval in ordered[1:]:
        last = merged[-1]
        if interval.start <= last.end:
            if interval.end > last.end:
                merged[-1] = BusyInterval(start=last.start, end=interval.end)
        else:
            merged.append(interval)
    return merged


def _raw_gaps(
    busy: list[BusyInterval],
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[datetime, datetime, bool, bool]]:
    """Complement merged busy time against the window.

    Each gap carries flags saying whether its start/end edge touches busy time.
    """
    gaps = []
    cursor = window_start
    cursor_after_busy = False

    for interval in busy:
        if interval.end <= window_start:
            continue
        if interval.start >= window_end:
            break
        if interval.start > cursor:
            gaps.append((cursor, interval.start, cursor_after_busy, True))
        if interval.end > cursor:
            cursor = interval.end
            cursor_after_busy = True

    if cursor < window_end:
        gaps.append((cursor, window_end, cursor_after_busy, False))
    return gaps


def _split_by_energy(
    start: datetime,
    end: datetime,
    blocks: list[EnergyBlock],
) -> list[FreeSlot]:
    """Subdivide a gap at energy-block boundaries."""
    day = start.date()
    cuts = {start, end}
    for block in blocks:
        block_start, block_end = block.on(day)
        for boundary in (block_start, block_end):
            if start < boundary < end:
                cuts.add(boundary)

    points = sorted(cuts)
    return [
        FreeSlot(start=a, end=b, level=energy_level_at(a, blocks))
        for a, b in zip(points, points[1:])
    ]


def find_free_slots(
    busy: list[BusyInterval],
    window_start: datetime,
    window_end: datetime,
    buffer_minutes: int = 10,
    min_slot_minutes: int = 15,
    focus_blocks: list[BusyInterval] | None = None,
    energy_blocks: list[EnergyBlock] | None = None,
) -> list[FreeSlot]:
    """
    Find free, energy-annotated slots in a working window.

    Pure function - no I/O.

    Args:
        busy: Busy intervals for the day (any order)
        window_start: Start of the schedulable window
        window_end: End of the schedulable window
        buffer_minutes: Padding kept between a slot and adjacent busy time
        min_slot_minutes: Minimum slot duration in minutes
        focus_blocks: Focus time, treated as additional busy time
        energy_blocks: Non-overlapping energy blocks used to label slots

    Returns:
        List of FreeSlots sorted by start
    """
    if window_start >= window_end:
        return []

    merged = merge_intervals(list(busy) + list(focus_blocks or []))
    buffer = timedelta(minutes=buffer_minutes)
    minimum = timedelta(minutes=min_slot_minutes)
    blocks = sorted(energy_blocks or [], key=lambda b: b.start)

    slots = []
    for start, end, after_busy, before_busy in _raw_gaps(merged, window_start, window_end):
        # Only edges that touch busy time are shrunk; the window edge is not.
        if after_busy:
            start += buffer
        if before_busy:
            end -= buffer
        if end - start < minimum:
            continue

        for piece in _split_by_energy(start, end, blocks):
            if piece.duration >= minimum:
                slots.append(piece)

    return sorted(slots, key=lambda s: s.start)


def total_free_time(slots: list[FreeSlot]) -> timedelta:
    return sum((s.duration for s in slots), timedelta())

