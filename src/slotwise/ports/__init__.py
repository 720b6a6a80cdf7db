"""Ports - interfaces/protocols for external dependencies."""

from .calendar_repo import CalendarRepository
from .task_repo import TaskRepository
from .duration_store import DurationStore
from .reschedule_store import RescheduleStore
from .tracking_store import TrackingStore
from .scan_log import ScanLog

__all__ = [
    "CalendarRepository",
    "TaskRepository",
    "DurationStore",
    "RescheduleStore",
    "TrackingStore",
    "ScanLog",
]
