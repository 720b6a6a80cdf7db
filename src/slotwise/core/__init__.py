"""Functional core - pure scheduling and reconciliation logic with no I/O."""

from .calendar import BusyInterval, EnergyBlock, EnergyLevel, FreeSlot, find_free_slots, working_window
from .durations import DurationEstimate, DurationEstimator, DurationSource, parse_duration_hint
from .tasks import Priority, TaskCandidate, sort_by_priority
from .learning import RescheduleLearner, RescheduleReason, TaskAdvice
from .matching import MatchResult, MatchSettings, Residual, SlotPreference, Suggestion, match_tasks
from .weekly import DayCapacity, WeeklyPlan, capacity_from_slots, distribute_week
from .lifecycle import InvalidTransitionError, ScheduledTask, StateTransition, TaskState
from .reconcile import ConflictReconciler, ExternalEvent, ReconcileReport, TrackedEvent

__all__ = [
    # Slot finding
    "BusyInterval",
    "EnergyBlock",
    "EnergyLevel",
    "FreeSlot",
    "find_free_slots",
    "working_window",
    # Durations
    "DurationEstimate",
    "DurationEstimator",
    "DurationSource",
    "parse_duration_hint",
    # Tasks
    "Priority",
    "TaskCandidate",
    "sort_by_priority",
    # Reschedule learning
    "RescheduleLearner",
    "RescheduleReason",
    "TaskAdvice",
    # Matching
    "MatchResult",
    "MatchSettings",
    "Residual",
    "SlotPreference",
    "Suggestion",
    "match_tasks",
    # Weekly
    "DayCapacity",
    "WeeklyPlan",
    "capacity_from_slots",
    "distribute_week",
    # Lifecycle
    "InvalidTransitionError",
    "ScheduledTask",
    "StateTransition",
    "TaskState",
    # Reconciliation
    "ConflictReconciler",
    "ExternalEvent",
    "ReconcileReport",
    "TrackedEvent",
]
