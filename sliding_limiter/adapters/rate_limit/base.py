"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the decision engine can be replaced without touching the routes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Hashable


class Decision(str, Enum):
    """Outcome of a single admission check."""

    ALLOW = "allow"
    DENY = "deny"


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def try_add_request(self, key: Hashable) -> Decision:
        """Decide whether one more event for ``key`` may be admitted.

        Args:
            key: Client identity (e.g., peer IP address). Compared exactly,
                no normalization is applied.

        Returns:
            Decision.ALLOW when admitted (and recorded), Decision.DENY otherwise.

        Raises:
            RateLimiterAppError: If the limiter's shared state is poisoned.
        """
        raise NotImplementedError
