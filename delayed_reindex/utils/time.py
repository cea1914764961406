"""Time utilities (injectable clock, UTC now, elapsed formatting)."""
from __future__ import annotations
import time
from datetime import datetime, timezone, timedelta
from typing import Callable

# Returns epoch seconds (fractional). Anything with this shape can be injected.
Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


class FrozenClock:
    """Manually advanced clock for deterministic bucketing (tests, simulations)."""

    def __init__(self, now: float = 0.0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def set(self, now: float) -> None:
        self.now = float(now)

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def format_elapsed(start: datetime, end: datetime | None = None) -> str:
    end_ts = end or utc_now()
    delta: timedelta = end_ts - start
    ms = int(delta.total_seconds() * 1000)
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms/1000:.2f}s"
    return f"{delta.total_seconds()/60:.2f}m"

__all__ = ["Clock", "system_clock", "FrozenClock", "utc_now", "format_elapsed"]
