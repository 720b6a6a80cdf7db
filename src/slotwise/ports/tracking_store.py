"""Tracked event storage interface."""

from typing import Protocol

from slotwise.core.reconcile import ConflictReconciler


class TrackingStore(Protocol):
    """Interface for persisting tracked events and scheduled task states."""

    def load(self) -> ConflictReconciler:
        """Load the registry. Empty if nothing saved yet."""
        ...

    def save(self, reconciler: ConflictReconciler) -> None:
        """Persist the registry."""
        ...
