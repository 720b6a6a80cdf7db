"""Long-running scheduler service.

Runs the morning scan on working days, catches up with a late-day scan when
the service starts after a missed morning scan, and periodically reconciles
tracked events against the calendar snapshot.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .adapters.json_snapshot import SnapshotError
from .config import WEEKDAYS, Config, format_clock, load_config
from .coordination import Debouncer
from .core.calendar import seconds_from_midnight
from .core.reconcile import ReconcileReport
from .ports import ScanLog
from .workflows import DayScan, ScanType, get_scan_gate, get_stores, run_reconcile, run_scan

logger = logging.getLogger(__name__)

# Reconcile requests closer together than this collapse into one pass.
RECONCILE_DEBOUNCE_SECONDS = 5


def needs_late_day_scan(config: Config, scan_log: ScanLog, now: datetime) -> bool:
    """True when the morning scan was missed and working hours are not over."""
    if now.weekday() not in config.working_days:
        return False
    offset = seconds_from_midnight(now)
    if offset < config.morning_scan_time or offset >= config.work_end:
        return False
    return not scan_log.exists(now.date())


class SchedulerService:
    """Scan and reconcile jobs, guarded against overlapping runs."""

    def __init__(self, config: Config, clock: Callable[[], datetime] = datetime.now):
        self.config = config
        self.clock = clock
        self.gate = get_scan_gate(config)
        self.debouncer = Debouncer(RECONCILE_DEBOUNCE_SECONDS)

    def scan(self, scan_type: ScanType) -> DayScan | None:
        try:
            scan = self.gate.run(run_scan, self.config, scan_type, now=self.clock())
        except (SnapshotError, OSError, json.JSONDecodeError) as e:
            logger.error(f"{scan_type.value} scan failed: {e}")
            return None
        if scan is not None:
            for suggestion in scan.result.suggestions:
                logger.info(f"Suggested {suggestion.format()}")
        return scan

    def morning_scan(self) -> DayScan | None:
        return self.scan(ScanType.SCHEDULED)

    def catch_up(self) -> DayScan | None:
        """Run a late-day scan if this morning's scan never happened."""
        now = self.clock()
        if not needs_late_day_scan(self.config, get_stores(self.config).scans, now):
            return None
        logger.info("Morning scan was missed, running late-day scan")
        return self.scan(ScanType.LATE_DAY)

    def reconcile(self) -> ReconcileReport | None:
        if not self.debouncer.ready():
            logger.debug("Reconcile requested too soon, skipping")
            return None
        try:
            report = run_reconcile(self.config, today=self.clock().date())
        except (SnapshotError, OSError, json.JSONDecodeError) as e:
            logger.error(f"Reconcile failed: {e}")
            return None

        for change in report.transitions:
            logger.info(f"Task {change.task_id}: {change.old_state.value} -> {change.new_state.value} ({change.reason})")
        for conflict in report.conflicts:
            logger.warning(f"Task {conflict.task_id} needs a decision: overlaps {len(conflict.overlapping)} event(s)")
        return report

    def build_scheduler(self) -> BlockingScheduler:
        timezone = self.config.timezone or "America/Toronto"
        scheduler = BlockingScheduler(timezone=timezone)

        days = ",".join(WEEKDAYS[d] for d in sorted(self.config.working_days))
        hour, minute = divmod(self.config.morning_scan_time // 60, 60)
        if days:
            scheduler.add_job(
                self.morning_scan,
                CronTrigger(day_of_week=days, hour=hour, minute=minute, timezone=timezone),
                id="morning_scan",
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Scheduled morning scan at {format_clock(self.config.morning_scan_time)} on {days}")
        else:
            logger.warning("No working days configured - morning scan disabled")

        scheduler.add_job(
            self.reconcile,
            IntervalTrigger(seconds=max(self.config.reconcile_interval, 1), timezone=timezone),
            id="reconcile",
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Scheduled reconcile every {self.config.reconcile_interval}s")
        return scheduler


def run_service(config: Config | None = None) -> None:
    """Run the scheduler service until interrupted."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    config = config or load_config()
    service = SchedulerService(config)
    scheduler = service.build_scheduler()

    service.catch_up()

    logger.info("Starting Slotwise scheduler...")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
