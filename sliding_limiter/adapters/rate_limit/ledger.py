"""Per-key storage of admitted-event timestamps.

The ledger holds no time logic. It maps a key to an oldest-first queue of
ticks and hands out working copies, so a caller can evict and append freely
and only commit the result with ``put``.
"""

from __future__ import annotations

from collections import deque
from typing import Hashable, Iterator


class AdmissionLedger:
    """Mapping of key to ordered admission timestamps.

    Keys whose queue becomes empty are dropped on ``put``; an absent key and
    an empty queue lead to the same admission decision.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, deque[int]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"AdmissionLedger(keys={len(self._entries)})"

    def get(self, key: Hashable) -> deque[int]:
        """Return a copy of the queue stored for ``key``.

        Args:
            key: Client identity.

        Returns:
            Oldest-first deque of ticks; empty when the key is unknown.
        """
        return deque(self._entries.get(key, ()))

    def put(self, key: Hashable, queue: deque[int]) -> None:
        """Store ``queue`` for ``key``, pruning the key when it is empty."""
        if queue:
            self._entries[key] = queue
        else:
            self._entries.pop(key, None)

    def keys(self) -> Iterator[Hashable]:
        return iter(list(self._entries))

    def clear(self) -> None:
        self._entries.clear()
