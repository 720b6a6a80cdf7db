"""Learning from rescheduled blocks.

Every time a suggested block is rescheduled the user gives a reason. Reasons
recorded in the last 30 days for the same list and title keywords turn into
scheduling advice:

    too_long       -> longer duration estimate (x1.25 after 2, x1.5 after 3)
    bad_time       -> time-of-day preference shifts away from that period
    interrupted    -> extra buffer after the block, split long tasks in two
    not_important  -> task demoted within its priority bucket (after 3)

Completed blocks count as successes for their time of day.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from .durations import extract_keywords
from .tasks import TaskCandidate

LOOKBACK_DAYS = 30
MIN_PREFERENCE_SAMPLES = 3
SPLIT_THRESHOLD = timedelta(minutes=30)


class RescheduleReason(Enum):
    TOO_LONG = "too_long"
    BAD_TIME = "bad_time"
    INTERRUPTED = "interrupted"
    NOT_IMPORTANT = "not_important"


class TimePeriod(Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def for_hour(cls, hour: int) -> "TimePeriod":
        if hour < 12:
            return cls.MORNING
        if hour < 17:
            return cls.AFTERNOON
        return cls.EVENING


@dataclass(frozen=True)
class RescheduleEvent:
    """A suggested block the user moved, and why."""

    task_id: str
    title: str
    group_key: str
    reason: RescheduleReason
    scheduled_start: datetime
    scheduled_end: datetime
    occurred_at: datetime

    @property
    def keywords(self) -> str:
        return extract_keywords(self.title)

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "group_key": self.group_key,
            "reason": self.reason.value,
            "scheduled_start": self.scheduled_start.isoformat(),
            "scheduled_end": self.scheduled_end.isoformat(),
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RescheduleEvent":
        return cls(
            task_id=data["task_id"],
            title=data.get("title", ""),
            group_key=data["group_key"],
            reason=RescheduleReason(data["reason"]),
            scheduled_start=datetime.fromisoformat(data["scheduled_start"]),
            scheduled_end=datetime.fromisoformat(data["scheduled_end"]),
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
        )


@dataclass
class TimeOfDayPreference:
    """
    Running score per part of the day for one list (or list + keywords).

    A success adds a point to its period. A bad-time reschedule takes a point
    from its period and gives half a point to each of the other two.
    """

    group_key: str
    keywords: str | None = None
    scores: dict[TimePeriod, float] = field(default_factory=lambda: {p: 0.0 for p in TimePeriod})
    sample_count: int = 0

    def record_success(self, hour: int) -> None:
        self.scores[TimePeriod.for_hour(hour)] += 1
        self.sample_count += 1

    def record_failure(self, hour: int) -> None:
        failed = TimePeriod.for_hour(hour)
        for period in TimePeriod:
            self.scores[period] += -1 if period == failed else 0.5
        self.sample_count += 1

    def score(self, hour: int) -> float:
        return self.scores[TimePeriod.for_hour(hour)]

    def best_period(self) -> TimePeriod | None:
        if self.sample_count < MIN_PREFERENCE_SAMPLES:
            return None
        # Ties go to the earlier period
        return max(TimePeriod, key=lambda p: self.scores[p])

    def to_dict(self) -> dict:
        return {
            "group_key": self.group_key,
            "keywords": self.keywords,
            "scores": {p.value: s for p, s in self.scores.items()},
            "sample_count": self.sample_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimeOfDayPreference":
        scores = {p: 0.0 for p in TimePeriod}
        for name, value in data.get("scores", {}).items():
            scores[TimePeriod(name)] = float(value)
        return cls(
            group_key=data["group_key"],
            keywords=data.get("keywords"),
            scores=scores,
            sample_count=int(data.get("sample_count", 0)),
        )


@dataclass(frozen=True)
class TaskAdvice:
    """What reschedule history says about placing one task."""

    duration_factor: float = 1.0
    split: bool = False
    extra_buffer: timedelta = timedelta()
    demote: bool = False
    preference: TimeOfDayPreference | None = None

    def adjust_duration(self, duration: timedelta) -> timedelta:
        if self.duration_factor == 1.0:
            return duration
        minutes = round(duration.total_seconds() / 60 * self.duration_factor)
        return timedelta(minutes=minutes)

    def pieces(self, duration: timedelta, minimum: timedelta) -> list[timedelta]:
        """The task as one piece, or two halves when it keeps getting interrupted."""
        if not self.split or duration <= SPLIT_THRESHOLD:
            return [duration]
        first = timedelta(minutes=int(duration.total_seconds() / 60) // 2)
        second = duration - first
        if first < minimum:
            return [duration]
        return [first, second]

    def slot_score(self, start: datetime) -> float:
        """Higher is a better time of day for this task. 0 without enough history."""
        if self.preference is None:
            return 0.0
        return self.preference.score(start.hour)


@dataclass(frozen=True)
class SchedulingInsight:
    category: RescheduleReason
    title: str
    description: str


class RescheduleLearner:
    """Reschedule history plus the time-of-day preferences derived from it."""

    def __init__(
        self,
        events: list[RescheduleEvent] | None = None,
        preferences: list[TimeOfDayPreference] | None = None,
        lookback_days: int = LOOKBACK_DAYS,
    ):
        self.events = list(events or [])
        self.lookback = timedelta(days=lookback_days)
        self._preferences: dict[tuple[str, str | None], TimeOfDayPreference] = {}
        for pref in preferences or []:
            self._preferences[(pref.group_key, pref.keywords)] = pref

    @property
    def preferences(self) -> list[TimeOfDayPreference]:
        return list(self._preferences.values())

    def _preference(self, group_key: str, keywords: str | None) -> TimeOfDayPreference:
        key = (group_key, keywords)
        if key not in self._preferences:
            self._preferences[key] = TimeOfDayPreference(group_key, keywords)
        return self._preferences[key]

    def _touched_preferences(self, group_key: str, title: str) -> list[TimeOfDayPreference]:
        """The keyword preference (when the title has keywords) and the list preference."""
        keywords = extract_keywords(title)
        prefs = [self._preference(group_key, keywords)] if keywords else []
        prefs.append(self._preference(group_key, None))
        return prefs

    # ============== Recording ==============

    def record_reschedule(
        self,
        task_id: str,
        title: str,
        group_key: str,
        reason: RescheduleReason,
        scheduled_start: datetime,
        scheduled_end: datetime,
        occurred_at: datetime,
    ) -> RescheduleEvent:
        event = RescheduleEvent(
            task_id=task_id,
            title=title,
            group_key=group_key,
            reason=reason,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            occurred_at=occurred_at,
        )
        self.events.append(event)
        if reason == RescheduleReason.BAD_TIME:
            for pref in self._touched_preferences(group_key, title):
                pref.record_failure(scheduled_start.hour)
        return event

    def record_success(self, title: str, group_key: str, scheduled_start: datetime) -> None:
        for pref in self._touched_preferences(group_key, title):
            pref.record_success(scheduled_start.hour)

    # ============== Queries ==============

    def count(self, group_key: str, title: str, reason: RescheduleReason, as_of: datetime) -> int:
        """Recent reschedules of the same list with the same title or keywords."""
        keywords = extract_keywords(title)
        since = as_of - self.lookback
        return sum(
            1
            for e in self.events
            if e.group_key == group_key
            and e.reason == reason
            and since <= e.occurred_at <= as_of
            and (e.keywords == keywords or e.title == title)
        )

    def duration_factor(self, group_key: str, title: str, as_of: datetime) -> float:
        count = self.count(group_key, title, RescheduleReason.TOO_LONG, as_of)
        if count >= 3:
            return 1.5
        if count >= 2:
            return 1.25
        return 1.0

    def extra_buffer(self, group_key: str, title: str, as_of: datetime) -> timedelta:
        count = self.count(group_key, title, RescheduleReason.INTERRUPTED, as_of)
        if count >= 3:
            return timedelta(minutes=10)
        if count >= 2:
            return timedelta(minutes=5)
        return timedelta()

    def should_split(self, group_key: str, title: str, as_of: datetime) -> bool:
        return self.count(group_key, title, RescheduleReason.INTERRUPTED, as_of) >= 2

    def is_demoted(self, group_key: str, title: str, as_of: datetime) -> bool:
        return self.count(group_key, title, RescheduleReason.NOT_IMPORTANT, as_of) >= 3

    def time_preference(self, group_key: str, title: str) -> TimeOfDayPreference | None:
        """Keyword preference if it has enough samples, else the list preference."""
        keywords = extract_keywords(title)
        for key in ((group_key, keywords), (group_key, None)):
            pref = self._preferences.get(key)
            if pref is not None and pref.sample_count >= MIN_PREFERENCE_SAMPLES:
                return pref
        return None

    def advice(self, task: TaskCandidate, as_of: datetime) -> TaskAdvice:
        return TaskAdvice(
            duration_factor=self.duration_factor(task.group_key, task.title, as_of),
            split=self.should_split(task.group_key, task.title, as_of),
            extra_buffer=self.extra_buffer(task.group_key, task.title, as_of),
            demote=self.is_demoted(task.group_key, task.title, as_of),
            preference=self.time_preference(task.group_key, task.title),
        )

    def demoted_ids(self, tasks: list[TaskCandidate], as_of: datetime) -> set[str]:
        return {t.id for t in tasks if self.is_demoted(t.group_key, t.title, as_of)}

    def insights(self, as_of: datetime, group_key: str | None = None, limit: int = 3) -> list[SchedulingInsight]:
        """Plain-language summary of recent reschedule patterns."""
        since = as_of - self.lookback
        recent = [
            e for e in self.events
            if since <= e.occurred_at <= as_of and (group_key is None or e.group_key == group_key)
        ]
        by_reason: dict[RescheduleReason, list[RescheduleEvent]] = {}
        for event in recent:
            by_reason.setdefault(event.reason, []).append(event)

        insights = []
        too_long = by_reason.get(RescheduleReason.TOO_LONG, [])
        if len(too_long) >= 2:
            titles = {e.title for e in too_long}
            subject = f'"{next(iter(titles))}"' if len(titles) == 1 else f"{len(titles)} different tasks"
            insights.append(
                SchedulingInsight(
                    RescheduleReason.TOO_LONG,
                    "Duration underestimates",
                    f"{subject} marked too long {len(too_long)} times. Duration estimates have been increased.",
                )
            )

        bad_time = by_reason.get(RescheduleReason.BAD_TIME, [])
        if len(bad_time) >= 2:
            average_hour = sum(e.scheduled_start.hour for e in bad_time) // len(bad_time)
            period = TimePeriod.for_hour(average_hour).value
            insights.append(
                SchedulingInsight(
                    RescheduleReason.BAD_TIME,
                    "Timing patterns",
                    f"Tasks in the {period} are often a bad time. Scheduling is shifting to preferred times.",
                )
            )

        interrupted = by_reason.get(RescheduleReason.INTERRUPTED, [])
        long_ones = [e for e in interrupted if e.scheduled_end - e.scheduled_start > SPLIT_THRESHOLD]
        if len(interrupted) >= 2 and long_ones:
            insights.append(
                SchedulingInsight(
                    RescheduleReason.INTERRUPTED,
                    "Interruption prone",
                    "Longer tasks are frequently interrupted. They are now split into smaller blocks.",
                )
            )

        not_important = by_reason.get(RescheduleReason.NOT_IMPORTANT, [])
        if len(not_important) >= 3:
            insights.append(
                SchedulingInsight(
                    RescheduleReason.NOT_IMPORTANT,
                    "Low priority tasks",
                    f"{len(not_important)} tasks marked not important. These are being deprioritized.",
                )
            )

        return insights[:limit]

    # ============== Persistence ==============

    def to_dict(self) -> dict:
        return {
            "events": [e.to_dict() for e in self.events],
            "preferences": [p.to_dict() for p in self._preferences.values()],
        }

    @classmethod
    def from_dict(cls, data: dict, lookback_days: int = LOOKBACK_DAYS) -> "RescheduleLearner":
        return cls(
            events=[RescheduleEvent.from_dict(e) for e in data.get("events", [])],
            preferences=[TimeOfDayPreference.from_dict(p) for p in data.get("preferences", [])],
            lookback_days=lookback_days,
        )
