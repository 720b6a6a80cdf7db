"""File-based tracked event registry adapter."""

import json
import logging
from pathlib import Path

from slotwise.core.lifecycle import ScheduledTask
from slotwise.core.reconcile import ConflictReconciler, TrackedEvent

logger = logging.getLogger(__name__)


class FileTrackingStore:
    """
    Tracked events and scheduled task states kept in a single JSON file.

    Implements TrackingStore protocol.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> ConflictReconciler:
        if not self.path.exists():
            return ConflictReconciler()

        data = json.loads(self.path.read_text())
        tracked = []
        for item in data.get("tracked", []):
            try:
                tracked.append(TrackedEvent.from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed tracked event: {e}")

        tasks = {}
        for item in data.get("tasks", []):
            try:
                task = ScheduledTask.from_dict(item)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed task record: {e}")
                continue
            tasks[task.task_id] = task

        return ConflictReconciler(tracked=tracked, tasks=tasks)

    def save(self, reconciler: ConflictReconciler) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "tracked": [r.to_dict() for r in reconciler.tracked],
            "tasks": [t.to_dict() for t in reconciler.tasks.values()],
        }
        self.path.write_text(json.dumps(data, indent=2))
