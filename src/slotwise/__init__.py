"""Slotwise - fits open tasks into the free time on a calendar."""

__version__ = "0.1.0"
