"""File-based duration history adapter."""

import json
import logging
from pathlib import Path

from slotwise.core.durations import DurationEstimator

logger = logging.getLogger(__name__)


class FileDurationStore:
    """
    Duration history kept in a single JSON file.

    Implements DurationStore protocol.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self, default_minutes: int = 30, min_samples: int = 3) -> DurationEstimator:
        if not self.path.exists():
            return DurationEstimator(default_minutes=default_minutes, min_samples=min_samples)
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            logger.warning(f"Duration history at {self.path} is unreadable, starting fresh: {e}")
            data = {}
        return DurationEstimator.from_dict(data, default_minutes=default_minutes, min_samples=min_samples)

    def save(self, estimator: DurationEstimator) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(estimator.to_dict(), indent=2))
