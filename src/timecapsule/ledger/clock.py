"""
Time sources for the ledger.

Both unlock-time validation and reveal gating read the same clock. Clocks
never go backwards: SystemClock clamps wall-clock regressions and
ManualClock refuses them.
"""

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """A non-decreasing source of the current time in whole seconds."""

    @abstractmethod
    def now(self) -> int:
        """Return the current time in seconds since the epoch."""
        ...


class SystemClock(Clock):
    """Wall clock, clamped so that a stepped-back system time is never observed."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            self._last = max(self._last, int(time.time()))
            return self._last


class ManualClock(Clock):
    """
    Clock driven explicitly by tests.

    Example:
        clock = ManualClock(1_700_000_000)
        clock.advance(60)
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be non-negative")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move the clock forward and return the new time."""
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        """Jump to an absolute time at or after the current one."""
        if timestamp < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = timestamp
