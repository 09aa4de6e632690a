"""In-memory sliding-log rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the ledger, from the clock read to the commit.
- The eviction window is ``limit * ticks``, so raising ``limit`` also
  stretches how long each admission counts.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Hashable, Iterator

from sliding_limiter.adapters.rate_limit.base import AbstractRateLimiter, Decision
from sliding_limiter.adapters.rate_limit.clock import Clock
from sliding_limiter.adapters.rate_limit.ledger import AdmissionLedger
from sliding_limiter.core.errors import RateLimiterAppError
from sliding_limiter.utils.hashing import hash_identifier

logger = logging.getLogger(__name__)


class SlidingLogRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping a log of admission ticks per key.

    Each key may hold at most ``limit`` admissions. An admission stops
    counting once ``timestamp + limit * ticks <= now``; only the oldest
    entries are checked because every queue is sorted oldest-first.

    If anything fails while the lock is held, the limiter is marked poisoned
    and every call raises ``RateLimiterAppError`` until ``reset()``.
    """

    def __init__(self, *, clock: Clock, limit: int, ticks: int) -> None:
        """Initialize the limiter.

        Args:
            clock: Tick source read once per decision.
            limit: Maximum admissions a key may hold in its window.
                Zero denies every request.
            ticks: Duration of one slot in clock units.

        Raises:
            ValueError: If limit or ticks are negative.
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if ticks < 0:
            raise ValueError("ticks must be >= 0")

        self._clock = clock
        self._limit = limit
        self._ticks = ticks
        self._ledger = AdmissionLedger()
        self._lock = threading.RLock()
        self._poisoned = False

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SlidingLogRateLimiter(limit={self._limit}, ticks={self._ticks}, "
            f"keys={len(self._ledger)}, poisoned={self._poisoned})"
        )

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def window(self) -> int:
        """Span of ticks during which an admission counts against capacity."""
        return self._limit * self._ticks

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def _poisoned_error(self) -> RateLimiterAppError:
        return RateLimiterAppError(code="threading_problem", message="threading problem")

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the lock, refusing entry when a previous holder failed."""
        with self._lock:
            if self._poisoned:
                raise self._poisoned_error()
            try:
                yield
            except Exception as exc:
                self._poisoned = True
                logger.error(
                    "rate_limit.lock_poisoned",
                    extra={
                        "error_type": type(exc).__name__,
                        "limit": self._limit,
                        "ticks": self._ticks,
                    },
                )
                raise self._poisoned_error() from exc
            except BaseException:
                self._poisoned = True
                raise

    def _evict_expired(self, queue: deque[int], now: int) -> int:
        """Pop stale entries from the front of ``queue``.

        Returns:
            Number of evicted entries.
        """
        window = self.window
        evicted = 0
        while queue and queue[0] + window <= now:
            queue.popleft()
            evicted += 1
        return evicted

    def try_add_request(self, key: Hashable) -> Decision:
        """Admit or reject one request for ``key``.

        The ledger is read as a working copy and only written back once the
        decision is made, so a failure mid-way leaves it untouched.

        Args:
            key: Client identity.

        Returns:
            Decision.ALLOW or Decision.DENY.

        Raises:
            RateLimiterAppError: If the limiter is poisoned.
        """
        with self._exclusive():
            now = self._clock.now()
            queue = self._ledger.get(key)
            evicted = self._evict_expired(queue, now)

            if len(queue) < self._limit:
                queue.append(now)
                self._ledger.put(key, queue)
                decision = Decision.ALLOW
            else:
                # a full queue had nothing to evict
                decision = Decision.DENY
            in_window = len(queue)

        logger.debug(
            "rate_limit.decision",
            extra={
                "key_hash": hash_identifier(key),
                "decision": decision.value,
                "tick": now,
                "in_window": in_window,
                "evicted": evicted,
            },
        )
        return decision

    def recorded(self, key: Hashable) -> list[int]:
        """Return the admission ticks currently stored for ``key``.

        Stored entries may include ones that a later call would evict.
        """
        with self._lock:
            return list(self._ledger.get(key))

    def reset(self) -> None:
        """Drop every recorded admission and clear the poisoned flag."""
        with self._lock:
            self._ledger.clear()
            self._poisoned = False
