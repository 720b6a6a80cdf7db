"""Shared workflow layer between CLI and service.

Each run_* function loads what it needs from the configured stores, hands
snapshots to the pure core, persists the outcome and returns it. Nothing is
persisted when any step raises.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path

from .adapters.file_history import FileDurationStore
from .adapters.file_reschedules import FileRescheduleStore
from .adapters.file_scans import FileScanLog
from .adapters.file_tracking import FileTrackingStore
from .adapters.json_snapshot import JsonCalendarSnapshot, JsonTaskSnapshot
from .config import DATA_DIR, Config
from .coordination import ScanGate
from .core.calendar import FreeSlot, find_free_slots, focus_intervals, working_window
from .core.durations import DurationEstimate, DurationEstimator, extract_keywords
from .core.learning import RescheduleEvent, RescheduleLearner, RescheduleReason, SchedulingInsight
from .core.lifecycle import ScheduledTask, StateTransition, TaskState, can_transition
from .core.matching import MatchResult, match_tasks
from .core.reconcile import ConflictReconciler, ReconcileReport, UnknownTaskError
from .core.tasks import filter_schedulable, sort_by_priority
from .core.weekly import WeeklyPlan, capacity_from_slots, distribute_week, week_dates
from .ports import CalendarRepository, TaskRepository

logger = logging.getLogger(__name__)


class ScanType(Enum):
    SCHEDULED = "scheduled"
    LATE_DAY = "late_day"
    MANUAL = "manual"


@dataclass
class DayScan:
    """Outcome of scanning one day."""

    day: date
    scan_type: ScanType
    scanned_at: datetime
    slots: list[FreeSlot] = field(default_factory=list)
    result: MatchResult = field(default_factory=MatchResult)

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "scan_type": self.scan_type.value,
            "scanned_at": self.scanned_at.isoformat(),
            "slots": [
                {
                    "start": s.start.isoformat(),
                    "end": s.end.isoformat(),
                    "energy": s.level.value if s.level else None,
                }
                for s in self.slots
            ],
            "suggestions": [s.to_dict() for s in self.result.suggestions],
            "residual": [r.to_dict() for r in self.result.residual],
        }


@dataclass
class Stores:
    durations: FileDurationStore
    tracking: FileTrackingStore
    scans: FileScanLog
    reschedules: FileRescheduleStore


def get_data_dir(config: Config) -> Path:
    """Resolve the data directory from config."""
    if config.data_dir:
        return Path(config.data_dir).expanduser()
    return DATA_DIR


def get_stores(config: Config) -> Stores:
    """Resolve the file stores under the data directory."""
    data_dir = get_data_dir(config)
    return Stores(
        durations=FileDurationStore(data_dir / "durations.json"),
        tracking=FileTrackingStore(data_dir / "tracking.json"),
        scans=FileScanLog(data_dir / "scans"),
        reschedules=FileRescheduleStore(data_dir / "reschedules.json"),
    )


def get_scan_gate(config: Config) -> ScanGate:
    """Gate shared by every process scanning the same data directory."""
    return ScanGate("scan", lock_file=get_data_dir(config) / "scan.lock")


def get_calendar(config: Config) -> JsonCalendarSnapshot:
    return JsonCalendarSnapshot(config.calendar_snapshot_path())


def get_task_source(config: Config) -> JsonTaskSnapshot:
    return JsonTaskSnapshot(config.task_snapshot_path(), config.list_energy_defaults)


def load_estimator(config: Config, stores: Stores) -> DurationEstimator:
    return stores.durations.load(
        default_minutes=config.default_task_duration,
        min_samples=config.min_learned_samples,
    )


# ============== Scanning ==============


def slots_for_day(
    config: Config,
    calendar: CalendarRepository,
    day: date,
    now: datetime | None = None,
) -> list[FreeSlot]:
    """Free slots for a day under the configured working hours and energy map."""
    window = working_window(day, config.work_start, config.work_end, config.working_days, now)
    if window is None:
        return []

    busy = calendar.fetch_busy(day, day)
    return find_free_slots(
        busy,
        window_start=window[0],
        window_end=window[1],
        buffer_minutes=config.buffer_between_blocks,
        min_slot_minutes=config.minimum_slot_size,
        focus_blocks=focus_intervals(day, config.focus_time_blocks),
        energy_blocks=config.energy_levels,
    )


def scan_day(
    config: Config,
    calendar: CalendarRepository,
    task_source: TaskRepository,
    estimator: DurationEstimator,
    day: date,
    now: datetime,
    scan_type: ScanType = ScanType.MANUAL,
    exclude_ids: set[str] | None = None,
    learning: RescheduleLearner | None = None,
) -> DayScan:
    """
    Find a day's free slots and fill them with the highest priority tasks.

    Tasks in exclude_ids already hold a block and are not offered again.
    Reschedule history, when given, demotes tasks and shapes their blocks.
    """
    slots = slots_for_day(config, calendar, day, now)
    candidates = filter_schedulable(task_source.fetch_open_tasks(), exclude_ids or set())
    demoted = learning.demoted_ids(candidates, now) if learning is not None else None
    ordered = sort_by_priority(candidates, day, demoted)
    result = match_tasks(ordered, slots, estimator, config.match_settings(), learning=learning, as_of=now)

    logger.info(
        f"{scan_type.value} scan for {day}: {len(slots)} slot(s), "
        f"{len(result.suggestions)} suggestion(s), {len(result.residual)} unplaced"
    )
    return DayScan(day=day, scan_type=scan_type, scanned_at=now, slots=slots, result=result)


def run_scan(
    config: Config,
    scan_type: ScanType = ScanType.MANUAL,
    day: date | None = None,
    now: datetime | None = None,
) -> DayScan:
    """Scan a day against the configured snapshots and record it in the scan log."""
    now = now or datetime.now()
    day = day or now.date()
    stores = get_stores(config)

    estimator = load_estimator(config, stores)
    reconciler = stores.tracking.load()
    scheduled = {r.task_id for r in reconciler.active_records()}

    scan = scan_day(
        config,
        get_calendar(config),
        get_task_source(config),
        estimator,
        day,
        now,
        scan_type=scan_type,
        exclude_ids=scheduled,
        learning=stores.reschedules.load(),
    )
    stores.scans.append(day, scan.to_dict())
    return scan


# ============== Weekly planning ==============


def plan_week(
    config: Config,
    calendar: CalendarRepository,
    task_source: TaskRepository,
    estimator: DurationEstimator,
    as_of: date,
    now: datetime | None = None,
    exclude_ids: set[str] | None = None,
    learning: RescheduleLearner | None = None,
) -> WeeklyPlan:
    """Distribute open tasks over the rest of the week."""
    capacities = [
        capacity_from_slots(day, slots_for_day(config, calendar, day, now))
        for day in week_dates(as_of, config.working_days)
    ]
    tasks = filter_schedulable(task_source.fetch_open_tasks(), exclude_ids or set())
    demoted = None
    if learning is not None:
        demoted = learning.demoted_ids(tasks, now or datetime.combine(as_of, time.min))
    return distribute_week(capacities, tasks, estimator, config.match_settings(), as_of, demoted)


def run_week(config: Config, as_of: date | None = None, now: datetime | None = None) -> WeeklyPlan:
    now = now or datetime.now()
    as_of = as_of or now.date()
    stores = get_stores(config)
    scheduled = {r.task_id for r in stores.tracking.load().active_records()}
    return plan_week(
        config,
        get_calendar(config),
        get_task_source(config),
        load_estimator(config, stores),
        as_of,
        now=now,
        exclude_ids=scheduled,
        learning=stores.reschedules.load(),
    )


# ============== Tracking and reconciliation ==============


def reconcile_with(reconciler: ConflictReconciler, calendar: CalendarRepository, today: date) -> ReconcileReport:
    """Fetch the events covering every active record and reconcile against them."""
    active = reconciler.active_records()
    if not active:
        return ReconcileReport()

    start = min([today] + [r.original_start.date() for r in active])
    end = max([today] + [r.original_end.date() for r in active])
    return reconciler.reconcile(calendar.fetch_events(start, end))


def run_reconcile(config: Config, today: date | None = None) -> ReconcileReport:
    stores = get_stores(config)
    reconciler = stores.tracking.load()
    report = reconcile_with(reconciler, get_calendar(config), today or date.today())
    if not report.is_empty:
        stores.tracking.save(reconciler)
    return report


def track_event(
    config: Config,
    task_id: str,
    external_event_id: str,
    start: datetime,
    end: datetime,
    title: str = "",
) -> StateTransition:
    """Approve a suggestion and start tracking the calendar event created for it."""
    if end <= start:
        raise ValueError("Event must end after it starts")

    stores = get_stores(config)
    reconciler = stores.tracking.load()
    task = reconciler.tasks.get(task_id)
    if task is None or task.state.is_terminal:
        task = ScheduledTask(task_id=task_id, state=TaskState.PENDING, title=title)

    change = task.transition(TaskState.APPROVED, "suggestion approved")
    reconciler.track(task, external_event_id, start, end)
    stores.tracking.save(reconciler)
    return change


def _release(reconciler: ConflictReconciler, task_id: str) -> None:
    for record in reconciler.active_records():
        if record.task_id == task_id:
            record.active = False


def mark_task(
    config: Config,
    task_id: str,
    state: TaskState,
    reason: str = "",
    group_key: str | None = None,
) -> StateTransition:
    """
    Move a tracked task to a new state.

    Completing a task with a known list counts as a success for its time of day.
    """
    stores = get_stores(config)
    reconciler = stores.tracking.load()
    task = reconciler.tasks.get(task_id)
    if task is None:
        raise UnknownTaskError(f"No task {task_id}")

    change = task.transition(state, reason or "marked by user")
    if state.is_terminal:
        _release(reconciler, task_id)
    stores.tracking.save(reconciler)

    if state == TaskState.COMPLETED and group_key and task.start is not None:
        learner = stores.reschedules.load()
        learner.record_success(task.title, group_key, task.start)
        stores.reschedules.save(learner)
    return change


def reschedule_task(
    config: Config,
    task_id: str,
    reason: RescheduleReason,
    group_key: str,
    title: str = "",
    start: datetime | None = None,
    end: datetime | None = None,
    now: datetime | None = None,
) -> RescheduleEvent:
    """
    Record why a block was moved, so later scans can adapt.

    The block defaults to the tracked one. A tracked task awaiting review
    becomes RESCHEDULED and stops being tracked.
    """
    now = now or datetime.now()
    stores = get_stores(config)
    reconciler = stores.tracking.load()
    task = reconciler.tasks.get(task_id)
    if task is not None:
        title = title or task.title
        start = start or task.start
        end = end or task.end
    if start is None or end is None:
        raise ValueError(f"No scheduled block known for task {task_id}")

    if task is not None and can_transition(task.state, TaskState.RESCHEDULED):
        task.transition(TaskState.RESCHEDULED, f"rescheduled: {reason.value}")
        _release(reconciler, task_id)
        stores.tracking.save(reconciler)

    learner = stores.reschedules.load()
    event = learner.record_reschedule(task_id, title, group_key, reason, start, end, occurred_at=now)
    stores.reschedules.save(learner)
    logger.info(f"Recorded {reason.value} reschedule for {task_id} ({group_key})")
    return event


def reschedule_insights(
    config: Config,
    group_key: str | None = None,
    now: datetime | None = None,
) -> list[SchedulingInsight]:
    learner = get_stores(config).reschedules.load()
    return learner.insights(now or datetime.now(), group_key=group_key)


def resolve_conflict(config: Config, task_id: str, keep: bool) -> StateTransition:
    stores = get_stores(config)
    reconciler = stores.tracking.load()
    change = reconciler.resolve_conflict(task_id, keep)
    stores.tracking.save(reconciler)
    return change


# ============== Duration history ==============


def record_completion(config: Config, group_key: str, minutes: float, title: str = "") -> list[DurationEstimate]:
    """Record an actual duration. Returns the updated estimates it fed."""
    stores = get_stores(config)
    estimator = load_estimator(config, stores)
    estimator.record_completion(group_key, minutes, title)
    stores.durations.save(estimator)

    keywords = extract_keywords(title)
    updated = [estimator.snapshot(group_key, keywords or None)]
    if keywords:
        updated.append(estimator.snapshot(group_key, None))
    return [e for e in updated if e is not None]


def list_estimates(config: Config) -> list[DurationEstimate]:
    return load_estimator(config, get_stores(config)).snapshots()
