"""Opaque digests of client identities for log output."""

from __future__ import annotations

import hashlib
from typing import Hashable


def hash_identifier(value: Hashable) -> str:
    """Return a short, stable digest of a client identity."""

    return hashlib.sha256(str(value).encode()).hexdigest()[:16]
