"""
Injectable time source.

Discovery, disposition, the run lock and the review services take a
``Clock`` instead of calling ``datetime.now()``, so the pending window
can be tested to the second.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Reference instant for tests: 2026-01-01 12:00 UTC.
DEFAULT_TEST_INSTANT = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)``
    columns; every stored timestamp is written in UTC, so a naive value
    is interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves through ``advance()`` and ``set_time()``; repeated
    ``now()`` calls return the same instant.
    """

    def __init__(self, start: datetime = DEFAULT_TEST_INSTANT):
        self._now = ensure_utc(start)

    def now(self) -> datetime:
        return self._now

    def set_time(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)

    def advance(self, seconds: float | timedelta = 1) -> datetime:
        """Move forward and return the new instant."""
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._now += step
        return self._now
