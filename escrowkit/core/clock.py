"""
escrowkit/core/clock.py

The ONLY source of time inside the engines.

Engines never sleep and never schedule. They read clock.now() at call
time for authorization expiry and recovery unlock checks. Tests drive a
ManualClock forward explicitly.
"""

import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current unix time in whole seconds."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"


def utc_timestamp() -> str:
    """
    Return current UTC time in ledger wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
