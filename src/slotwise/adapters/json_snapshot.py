"""JSON snapshot adapters.

Calendar and task data is exported by an external collaborator into JSON
files; these adapters read them. Calendar file format:

    {"events": [{"id": "abc", "title": "Standup", "start": "2025-01-15T09:00:00",
                 "end": "2025-01-15T09:15:00", "all_day": false}]}

Task file format:

    {"tasks": [{"id": "t1", "title": "Write report", "priority": 1,
                "due_date": "2025-01-16", "list": "Work", "notes": "[duration:45m]"}]}

A bare JSON list is accepted for either file.
"""

import json
import logging
from datetime import date, datetime, time, timedelta
from pathlib import Path

from slotwise.core.calendar import BusyInterval, EnergyLevel
from slotwise.core.reconcile import ExternalEvent
from slotwise.core.tasks import TaskCandidate

logger = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Raised when a snapshot file is missing or unreadable."""

    pass


def _read_records(path: Path, key: str) -> list[dict]:
    if not path.exists():
        raise SnapshotError(f"Snapshot not found: {path}")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise SnapshotError(f"Expected a list of {key} in {path}")
    return [item for item in data if isinstance(item, dict)]


class JsonCalendarSnapshot:
    """
    Calendar snapshot read from a JSON file.

    Implements CalendarRepository protocol. All-day events are not busy time.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self, start_date: date, end_date: date) -> list[ExternalEvent]:
        """Events overlapping any part of the date range, including ones that started earlier."""
        range_start = datetime.combine(start_date, time.min)
        range_end = datetime.combine(end_date + timedelta(days=1), time.min)
        events = []
        for item in _read_records(self.path, "events"):
            if item.get("all_day"):
                continue
            try:
                event = ExternalEvent.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed event {item.get('id', '?')}: {e}")
                continue
            if event.end <= event.start:
                logger.warning(f"Skipping event {event.external_event_id} with no duration")
                continue
            if event.end > range_start and event.start < range_end:
                events.append(event)
        return sorted(events, key=lambda e: (e.start, e.end))

    def fetch_events(self, start_date: date, end_date: date) -> list[ExternalEvent]:
        return self._load(start_date, end_date)

    def fetch_busy(self, start_date: date, end_date: date) -> list[BusyInterval]:
        return [BusyInterval(e.start, e.end) for e in self._load(start_date, end_date)]


class JsonTaskSnapshot:
    """
    Task snapshot read from a JSON file.

    Implements TaskRepository protocol. Completed records are skipped.
    """

    def __init__(
        self,
        path: Path | str,
        list_energy_defaults: dict[str, EnergyLevel] | None = None,
    ):
        self.path = Path(path).expanduser()
        self.list_energy_defaults = list_energy_defaults or {}

    def fetch_open_tasks(self) -> list[TaskCandidate]:
        tasks = []
        for item in _read_records(self.path, "tasks"):
            if item.get("completed"):
                continue
            try:
                tasks.append(TaskCandidate.from_dict(item, self.list_energy_defaults))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed task {item.get('id', '?')}: {e}")
        return tasks

