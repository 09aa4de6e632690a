"""Time sources for the rate limiter.

The limiter only needs a monotonically non-decreasing integer tick count, so
the clock is injected rather than read from ``time`` directly. Tests use
``FixedClock`` to drive time by hand.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Interface for tick sources."""

    @abstractmethod
    def now(self) -> int:
        """Return the current tick count.

        Returns:
            Integer tick value, non-decreasing across calls.
        """
        raise NotImplementedError


class FixedClock(Clock):
    """Clock returning a caller-controlled constant.

    Attributes:
        value: Tick returned by ``now()`` until changed.
    """

    def __init__(self, value: int = 0) -> None:
        self.value = value

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"FixedClock(value={self.value})"

    def now(self) -> int:
        return self.value

    def set(self, value: int) -> None:
        """Move the clock to an absolute tick."""
        self.value = value

    def advance(self, ticks: int = 1) -> None:
        """Move the clock forward by ``ticks``."""
        self.value += ticks


class WallClock(Clock):
    """Milliseconds elapsed since the Unix epoch.

    Readings never decrease: if the system clock steps backwards (NTP, manual
    change), the last reading is repeated until real time catches up.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def now(self) -> int:
        current = time.time_ns() // 1_000_000
        with self._lock:
            if current > self._last:
                self._last = current
            return self._last
