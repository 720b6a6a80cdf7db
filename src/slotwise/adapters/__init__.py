"""Adapters - I/O implementations of ports."""

from .json_snapshot import JsonCalendarSnapshot, JsonTaskSnapshot, SnapshotError
from .file_history import FileDurationStore
from .file_reschedules import FileRescheduleStore
from .file_tracking import FileTrackingStore
from .file_scans import FileScanLog

__all__ = [
    "JsonCalendarSnapshot",
    "JsonTaskSnapshot",
    "SnapshotError",
    "FileDurationStore",
    "FileRescheduleStore",
    "FileTrackingStore",
    "FileScanLog",
]
