"""File-based reschedule history adapter."""

import json
import logging
from pathlib import Path

from slotwise.core.learning import RescheduleLearner

logger = logging.getLogger(__name__)


class FileRescheduleStore:
    """
    Reschedule events and time-of-day preferences in a single JSON file.

    Implements RescheduleStore protocol.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> RescheduleLearner:
        if not self.path.exists():
            return RescheduleLearner()
        try:
            return RescheduleLearner.from_dict(json.loads(self.path.read_text()))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Reschedule history at {self.path} is unreadable, starting fresh: {e}")
            return RescheduleLearner()

    def save(self, learner: RescheduleLearner) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(learner.to_dict(), indent=2))
