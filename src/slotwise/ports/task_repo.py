"""Task repository interface."""

from typing import Protocol

from slotwise.core.tasks import TaskCandidate


class TaskRepository(Protocol):
    """Interface for fetching open tasks from any backend."""

    def fetch_open_tasks(self) -> list[TaskCandidate]:
        """Fetch all incomplete tasks."""
        ...
