"""Time sources for the guard.

The cache only compares timestamps taken from the same clock, so a
monotonic source is used in production and a manually driven one in tests.
"""

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in seconds."""

    def now(self) -> float: ...


class MonotonicClock:
    """Clock backed by `time.monotonic()`; immune to wall-clock jumps."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Clock that only moves when told to.

    Safe to share between threads: concurrent readers always see a value
    that was set by `advance()` or `set()`.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        """
        Move the clock forward.

        Args:
            seconds: Amount to advance (must not be negative)

        Returns:
            The new current time
        """
        if seconds < 0:
            raise ValueError("a monotonic clock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            if value < self._now:
                raise ValueError("a monotonic clock cannot move backwards")
            self._now = value
