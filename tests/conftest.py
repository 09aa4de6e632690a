"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports the settings module,
so tests never depend on a local .env file.
"""

import os

import pytest

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_RATE_LIMIT_REQUESTS", "2")
os.environ.setdefault("APP_RATE_LIMIT_TICKS", "60000")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from sliding_limiter.adapters.rate_limit.clock import FixedClock  # noqa: E402


@pytest.fixture
def clock() -> FixedClock:
    """Deterministic clock starting at tick 1."""
    return FixedClock(value=1)
