"""Duration history storage interface."""

from typing import Protocol

from slotwise.core.durations import DurationEstimator


class DurationStore(Protocol):
    """Interface for persisting learned duration history."""

    def load(self, default_minutes: int = 30, min_samples: int = 3) -> DurationEstimator:
        """Load history into a fresh estimator. Empty history if none saved."""
        ...

    def save(self, estimator: DurationEstimator) -> None:
        """Persist the estimator's history."""
        ...
