"""Calendar repository interface."""

from datetime import date
from typing import Protocol

from slotwise.core.calendar import BusyInterval
from slotwise.core.reconcile import ExternalEvent


class CalendarRepository(Protocol):
    """Interface for reading calendar snapshots from any backend."""

    def fetch_busy(self, start_date: date, end_date: date) -> list[BusyInterval]:
        """Busy intervals between two dates (inclusive), ordered by start."""
        ...

    def fetch_events(self, start_date: date, end_date: date) -> list[ExternalEvent]:
        """Events currently on the calendar between two dates (inclusive)."""
        ...
