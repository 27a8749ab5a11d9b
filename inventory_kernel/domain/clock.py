"""
Injectable time source.

Ledger timestamps, webhook receipt times, job names and scheduler run
times all come from a Clock passed in at construction.  Nothing in the
kernel calls ``datetime.now()`` except SystemClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time; timezone-aware."""
        ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Returns the same instant on every call until ``advance()`` moves it.
    Defaults to 2024-01-01 12:00 UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now
