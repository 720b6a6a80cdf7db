"""Scan log interface."""

from datetime import date
from typing import Protocol


class ScanLog(Protocol):
    """Interface for recording which days have been scanned."""

    def read(self, target_date: date) -> list[dict]:
        ...

    def append(self, target_date: date, record: dict) -> None:
        ...

    def exists(self, target_date: date) -> bool:
        ...
