"""Unit tests for the in-memory sliding-log rate limiter."""

import os
import random
import subprocess
import sys
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from sliding_limiter.adapters.rate_limit.base import Decision
from sliding_limiter.adapters.rate_limit.clock import Clock, FixedClock
from sliding_limiter.adapters.rate_limit.in_memory import SlidingLogRateLimiter
from sliding_limiter.core.errors import RateLimiterAppError

ALLOW = Decision.ALLOW
DENY = Decision.DENY


class FlakyClock(Clock):
    """Clock that raises on demand to simulate a failing lock holder."""

    def __init__(self, value: int = 1) -> None:
        self.value = value
        self.fail = False

    def now(self) -> int:
        if self.fail:
            raise RuntimeError("clock exploded")
        return self.value


def test_requests_for_other_keys_are_independent(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)

    assert limiter.try_add_request("1.1.1.1") is ALLOW, "first request is allowed"
    assert limiter.try_add_request("1.1.1.1") is ALLOW, "second request is allowed"
    assert limiter.try_add_request("1.1.1.1") is DENY, "third request is denied"

    assert limiter.try_add_request("2.2.2.2") is ALLOW, "another address is allowed"
    assert limiter.recorded("1.1.1.1") == [1, 1]
    assert limiter.recorded("2.2.2.2") == [1]


def test_passage_of_time_frees_slots(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)
    key = "1.1.1.1"

    assert limiter.try_add_request(key) is ALLOW, "#1 allowed at tick 1"
    assert limiter.try_add_request(key) is ALLOW, "#2 allowed at tick 1"
    assert limiter.try_add_request(key) is DENY, "#3 denied at tick 1"

    clock.set(2)
    assert limiter.try_add_request(key) is DENY, "#4 denied at tick 2, slots still used"

    clock.set(3)
    assert limiter.try_add_request(key) is ALLOW, "#5 allowed at tick 3, both slots freed"
    assert limiter.recorded(key) == [3]

    clock.set(4)
    assert limiter.try_add_request(key) is ALLOW, "#6 allowed at tick 4, one slot free"
    assert limiter.try_add_request(key) is DENY, "#7 denied at tick 4, no slot free"

    clock.set(5)
    assert limiter.try_add_request(key) is ALLOW, "#8 allowed at tick 5, tick-3 entry expired"
    assert limiter.recorded(key) == [4, 5]


def test_single_slot_with_long_ticks(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=1, ticks=100)

    assert limiter.try_add_request("k") is ALLOW

    clock.set(100)
    assert limiter.try_add_request("k") is DENY

    clock.set(101)
    assert limiter.try_add_request("k") is ALLOW


def test_zero_limit_denies_everything(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=0, ticks=10)

    for tick in (1, 2, 1_000, 10**12):
        clock.set(tick)
        for key in ("1.1.1.1", "2.2.2.2", ""):
            assert limiter.try_add_request(key) is DENY

    assert limiter.recorded("1.1.1.1") == []


def test_new_key_is_always_allowed(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=1, ticks=1_000)

    for i in range(50):
        assert limiter.try_add_request(f"10.0.0.{i}") is ALLOW


def test_zero_ticks_expires_entries_in_the_same_tick(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=0)

    assert limiter.window == 0
    for _ in range(5):
        assert limiter.try_add_request("k") is ALLOW
    assert limiter.recorded("k") == [1]


def test_window_is_limit_times_ticks() -> None:
    limiter = SlidingLogRateLimiter(clock=FixedClock(), limit=3, ticks=7)

    assert limiter.limit == 3
    assert limiter.ticks == 7
    assert limiter.window == 21


def test_deny_leaves_stored_entries_unchanged(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)
    assert limiter.try_add_request("k") is ALLOW  # tick 1
    clock.set(2)
    assert limiter.try_add_request("k") is ALLOW  # tick 2
    assert limiter.try_add_request("k") is DENY

    clock.set(3)
    # tick-1 entry expires (1 + 2 <= 3), freeing one slot
    assert limiter.try_add_request("k") is ALLOW
    assert limiter.recorded("k") == [2, 3]
    assert limiter.try_add_request("k") is DENY
    assert limiter.recorded("k") == [2, 3]


def test_keys_are_compared_exactly(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=1, ticks=10)

    assert limiter.try_add_request("::1") is ALLOW
    assert limiter.try_add_request("0:0:0:0:0:0:0:1") is ALLOW
    assert limiter.try_add_request("::1") is DENY


def test_capacity_invariant_holds_for_random_traffic(clock: FixedClock) -> None:
    rng = random.Random(1234)
    limiter = SlidingLogRateLimiter(clock=clock, limit=3, ticks=2)
    keys = ["a", "b", "c"]

    for _ in range(2_000):
        clock.advance(rng.choice([0, 0, 0, 1, 2]))
        key = rng.choice(keys)
        limiter.try_add_request(key)
        stored = limiter.recorded(key)
        assert len(stored) <= limiter.limit
        assert stored == sorted(stored)


def test_expired_entries_are_never_counted_again(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)
    limiter.try_add_request("k")
    limiter.try_add_request("k")

    clock.set(3)
    limiter.try_add_request("k")

    for tick in range(3, 10):
        clock.set(tick)
        limiter.try_add_request("k")
        assert 1 not in limiter.recorded("k")


def test_same_inputs_give_same_decisions() -> None:
    rng = random.Random(99)
    script = [(rng.randint(0, 3), rng.choice(["x", "y"])) for _ in range(500)]

    def replay() -> list[Decision]:
        clock = FixedClock(value=0)
        limiter = SlidingLogRateLimiter(clock=clock, limit=4, ticks=3)
        decisions = []
        for step, key in script:
            clock.advance(step)
            decisions.append(limiter.try_add_request(key))
        return decisions

    first = replay()
    assert first == replay()
    assert ALLOW in first and DENY in first


def test_concurrent_callers_cannot_exceed_limit(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=5, ticks=1_000)
    workers = 32
    barrier = threading.Barrier(workers)
    results: list[Decision] = []
    results_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        decision = limiter.try_add_request("shared")
        with results_lock:
            results.append(decision)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(ALLOW) == 5
    assert results.count(DENY) == workers - 5
    assert len(limiter.recorded("shared")) == 5


def test_failure_inside_lock_poisons_limiter() -> None:
    clock = FlakyClock()
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)
    assert limiter.try_add_request("k") is ALLOW

    clock.fail = True
    with pytest.raises(RateLimiterAppError) as exc_info:
        limiter.try_add_request("k")

    assert exc_info.value.code == "threading_problem"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert limiter.poisoned is True

    # Later callers see the broken state even though the clock recovered
    clock.fail = False
    with pytest.raises(RateLimiterAppError):
        limiter.try_add_request("other")

    assert limiter.recorded("k") == [1]


def test_failed_call_leaves_ledger_untouched(clock: FixedClock) -> None:
    limiter = SlidingLogRateLimiter(clock=clock, limit=2, ticks=1)
    limiter.try_add_request("k")
    limiter.try_add_request("k")

    clock.set(3)
    with patch.object(limiter._ledger, "put", side_effect=RuntimeError("boom")):
        with pytest.raises(RateLimiterAppError):
            limiter.try_add_request("k")

    assert limiter.recorded("k") == [1, 1]


def test_reset_recovers_poisoned_limiter() -> None:
    clock = FlakyClock()
    limiter = SlidingLogRateLimiter(clock=clock, limit=1, ticks=10)
    limiter.try_add_request("k")

    clock.fail = True
    with pytest.raises(RateLimiterAppError):
        limiter.try_add_request("k")

    clock.fail = False
    limiter.reset()

    assert limiter.poisoned is False
    assert limiter.recorded("k") == []
    assert limiter.try_add_request("k") is ALLOW


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": -1, "ticks": 1},
        {"limit": 1, "ticks": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        SlidingLogRateLimiter(clock=FixedClock(), **kwargs)


def test_poisoned_error_does_not_expose_configuration() -> None:
    clock = FlakyClock()
    clock.fail = True
    limiter = SlidingLogRateLimiter(clock=clock, limit=7, ticks=300)

    with pytest.raises(RateLimiterAppError) as first:
        limiter.try_add_request("k")
    with pytest.raises(RateLimiterAppError) as second:
        limiter.try_add_request("k")

    assert first.value.details is None
    assert second.value.details is None


def test_decision_engine_imports_without_loading_settings() -> None:
    """The adapters must stay usable without building application settings."""
    code = (
        "import sys\n"
        "import sliding_limiter.adapters.rate_limit.in_memory\n"
        "print('sliding_limiter.core.config' in sys.modules)\n"
    )
    root = Path(__file__).resolve().parents[1]
    env = {**os.environ, "PYTHONPATH": os.pathsep.join(filter(None, [str(root), os.environ.get("PYTHONPATH")]))}

    result = subprocess.run(
        [sys.executable, "-c", code],
        capture_output=True,
        text=True,
        cwd=root,
        env=env,
        check=True,
    )

    assert result.stdout.strip() == "False"
