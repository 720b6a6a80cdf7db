"""Guards for work that may be triggered from several places at once."""

import fcntl
import logging
import os
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any

logger = logging.getLogger(__name__)


class ScanGate:
    """
    Lets one scan run at a time.

    A scan requested while another is in flight is coalesced into it: the
    call returns None immediately instead of queueing a duplicate. Given a
    lock file, the gate also holds an fcntl.flock on it so the service and
    manual CLI runs in other processes are serialised too.
    """

    def __init__(self, name: str = "scan", lock_file: Path | str | None = None):
        self.name = name
        self.lock_file = Path(lock_file).expanduser() if lock_file else None
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _lock_file(self) -> IO[str] | None:
        """Open and lock the lock file. None if another process holds it."""
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        lock_fd = open(self.lock_file, "a")
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_fd.close()
            return None
        lock_fd.truncate(0)
        lock_fd.write(f"{os.getpid()}\n")
        lock_fd.flush()
        return lock_fd

    def run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any | None:
        if not self._lock.acquire(blocking=False):
            logger.info(f"{self.name} already running, skipping")
            return None
        try:
            lock_fd = self._lock_file() if self.lock_file is not None else None
            if self.lock_file is not None and lock_fd is None:
                logger.info(f"{self.name} already running in another process, skipping")
                return None
            try:
                return fn(*args, **kwargs)
            finally:
                if lock_fd is not None:
                    fcntl.flock(lock_fd, fcntl.LOCK_UN)
                    lock_fd.close()
        finally:
            self._lock.release()


class Debouncer:
    """Rate limiter: ready() is True at most once per interval."""

    def __init__(self, min_interval_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval_seconds
        self._clock = clock
        self._last: float | None = None
        self._lock = threading.Lock()

    def ready(self) -> bool:
        with self._lock:
            now = self._clock()
            if self._last is not None and now - self._last < self.min_interval:
                return False
            self._last = now
            return True
