"""Learned task duration estimates.

History is bucketed per task list (the group key) and, for recurring tasks,
per list + title keywords. Each bucket keeps a bounded window of the most
recent actual durations and their mean.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from .tasks import TaskCandidate

logger = logging.getLogger(__name__)

WINDOW_SIZE = 20

# [duration:30m], [duration:1h], [duration:1h30m], [duration:90m]
_HINT_PATTERN = re.compile(r"\[duration:\s*(?:(\d+)h)?\s*(?:(\d+)m)?\s*\]", re.IGNORECASE)
_WORD_SPLIT = re.compile(r"[^0-9a-zA-Z]+")


class DurationSource(Enum):
    """Which estimation tier produced a duration."""

    HINT = "hint"
    KEYWORD_HISTORY = "keyword_history"
    LIST_HISTORY = "list_history"
    DEFAULT = "default"


def parse_duration_hint(notes: str | None) -> timedelta | None:
    """
    Parse an inline duration hint from task notes.

    Malformed or absent hints return None, never raise.
    """
    if not notes:
        return None
    match = _HINT_PATTERN.search(notes)
    if not match:
        return None
    hours, minutes = match.groups()
    total = int(hours or 0) * 60 + int(minutes or 0)
    if total <= 0:
        return None
    return timedelta(minutes=total)


def extract_keywords(title: str) -> str:
    """Significant title words (3+ chars), lowercased and sorted."""
    words = sorted(w.lower() for w in _WORD_SPLIT.split(title) if len(w) >= 3)
    return " ".join(words)


class DurationWindow:
    """Fixed-capacity ring buffer of durations (minutes)."""

    def __init__(self, capacity: int = WINDOW_SIZE):
        self.capacity = capacity
        self._buffer = [0.0] * capacity
        self._cursor = 0
        self._count = 0
        self._total = 0.0

    def __len__(self) -> int:
        return self._count

    def append(self, minutes: float) -> None:
        """Add a sample, evicting the oldest once full."""
        if self._count == self.capacity:
            self._total -= self._buffer[self._cursor]
        else:
            self._count += 1
        self._buffer[self._cursor] = minutes
        self._total += minutes
        self._cursor = (self._cursor + 1) % self.capacity

    @property
    def average(self) -> float:
        if not self._count:
            return 0.0
        return self._total / self._count

    def samples(self) -> list[float]:
        """Samples oldest first."""
        if self._count < self.capacity:
            return self._buffer[: self._count]
        return self._buffer[self._cursor :] + self._buffer[: self._cursor]

    @classmethod
    def from_samples(cls, samples: list[float], capacity: int = WINDOW_SIZE) -> "DurationWindow":
        window = cls(capacity)
        for sample in samples:
            window.append(float(sample))
        return window


@dataclass(frozen=True)
class DurationEstimate:
    """Immutable snapshot of one history bucket."""

    group_key: str
    keywords: str | None
    samples: tuple[float, ...]
    average: float
    last_updated: datetime

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def format(self) -> str:
        label = self.group_key if not self.keywords else f"{self.group_key} / {self.keywords}"
        return f"{label}: {self.average:.0f} min avg over {self.sample_count} sample(s)"


@dataclass
class _Bucket:
    window: DurationWindow = field(default_factory=DurationWindow)
    last_updated: datetime | None = None


BucketKey = tuple[str, str | None]


class DurationEstimator:
    """
    Estimates task durations from hints and completion history.

    Writes and reads of one bucket are serialised by a per-bucket lock;
    unrelated buckets never contend.
    """

    def __init__(
        self,
        default_minutes: int = 30,
        min_samples: int = 3,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.default_minutes = default_minutes
        self.min_samples = min_samples
        self._clock = clock
        self._buckets: dict[BucketKey, _Bucket] = {}
        self._locks: dict[BucketKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: BucketKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
                self._buckets[key] = _Bucket()
            return lock

    def _add_sample(self, key: BucketKey, minutes: float) -> None:
        with self._lock_for(key):
            bucket = self._buckets[key]
            bucket.window.append(minutes)
            bucket.last_updated = self._clock()

    def record_completion(self, group_key: str, actual_minutes: float, title: str = "") -> None:
        """Record the actual duration of a completed task."""
        if actual_minutes <= 0:
            logger.debug(f"Ignoring non-positive duration {actual_minutes} for {group_key}")
            return

        keywords = extract_keywords(title) if title else ""
        if keywords:
            self._add_sample((group_key, keywords), actual_minutes)
        self._add_sample((group_key, None), actual_minutes)
        logger.debug(f"Recorded {actual_minutes:.0f} min for {group_key!r} ({keywords or 'list'})")

    def snapshot(self, group_key: str, keywords: str | None = None) -> DurationEstimate | None:
        """Consistent copy of a bucket, or None if it has no history."""
        key = (group_key, keywords or None)
        if key not in self._locks:
            return None
        with self._lock_for(key):
            bucket = self._buckets[key]
            if not len(bucket.window) or bucket.last_updated is None:
                return None
            return DurationEstimate(
                group_key=group_key,
                keywords=keywords or None,
                samples=tuple(bucket.window.samples()),
                average=bucket.window.average,
                last_updated=bucket.last_updated,
            )

    def snapshots(self) -> list[DurationEstimate]:
        """All non-empty buckets, sorted by group then keywords."""
        with self._registry_lock:
            keys = sorted(self._locks, key=lambda k: (k[0], k[1] or ""))
        return [s for s in (self.snapshot(g, kw) for g, kw in keys) if s is not None]

    def _learned(self, group_key: str, keywords: str | None) -> float | None:
        estimate = self.snapshot(group_key, keywords)
        if estimate is None or estimate.sample_count < self.min_samples:
            return None
        return estimate.average

    def estimate(self, task: TaskCandidate) -> tuple[timedelta, DurationSource]:
        """Expected duration for a task and the tier that produced it."""
        hint = parse_duration_hint(task.notes)
        if hint:
            return hint, DurationSource.HINT

        keywords = extract_keywords(task.title)
        if keywords:
            average = self._learned(task.group_key, keywords)
            if average is not None:
                return timedelta(minutes=average), DurationSource.KEYWORD_HISTORY

        average = self._learned(task.group_key, None)
        if average is not None:
            return timedelta(minutes=average), DurationSource.LIST_HISTORY

        return timedelta(minutes=self.default_minutes), DurationSource.DEFAULT

    def to_dict(self) -> dict:
        """Serialise history for persistence."""
        return {
            "estimates": [
                {
                    "group_key": s.group_key,
                    "keywords": s.keywords,
                    "samples": list(s.samples),
                    "last_updated": s.last_updated.isoformat(),
                }
                for s in self.snapshots()
            ]
        }

    @classmethod
    def from_dict(
        cls,
        data: dict,
        default_minutes: int = 30,
        min_samples: int = 3,
    ) -> "DurationEstimator":
        """Rebuild an estimator from `to_dict` output, skipping malformed entries."""
        estimator = cls(default_minutes=default_minutes, min_samples=min_samples)
        for item in data.get("estimates", []):
            try:
                key = (item["group_key"], item.get("keywords") or None)
                samples = [float(s) for s in item.get("samples", [])][-WINDOW_SIZE:]
                updated = datetime.fromisoformat(item["last_updated"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed duration estimate: {e}")
                continue
            with estimator._lock_for(key):
                bucket = estimator._buckets[key]
                bucket.window = DurationWindow.from_samples(samples)
                bucket.last_updated = updated
        return estimator
