"""Reschedule history storage interface."""

from typing import Protocol

from slotwise.core.learning import RescheduleLearner


class RescheduleStore(Protocol):
    """Interface for persisting reschedule history."""

    def load(self) -> RescheduleLearner:
        """Load history into a learner. Empty history if none saved."""
        ...

    def save(self, learner: RescheduleLearner) -> None:
        ...
