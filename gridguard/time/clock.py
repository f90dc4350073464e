"""
Time abstraction layer for GridGuard.

Provides an injectable clock that can be:
- Real-time (for live/paper trading)
- Simulated (for replays and tests)

Boundary detection (daily/weekly resets) only ever asks the clock for the
current time, so a BacktestClock makes every reset deterministic.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta

import pytz


class Clock(ABC):
    """Abstract clock interface"""

    @abstractmethod
    def now(self) -> datetime:
        """Get current time (always UTC, timezone-aware)"""
        pass

    def now_local(self, tz: str = "UTC") -> datetime:
        """Get current time in specified timezone"""
        return self.now().astimezone(pytz.timezone(tz))


class RealTimeClock(Clock):
    """Real-time clock for live/paper trading"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class BacktestClock(Clock):
    """Simulated clock for replays and tests"""

    def __init__(self, start_time: datetime):
        """
        Args:
            start_time: Initial simulation time (must be timezone-aware)
        """
        if start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware (UTC)")
        self._current_time = start_time.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def advance(self, delta: timedelta) -> datetime:
        """Advance simulated time by delta."""
        self._current_time += delta
        return self._current_time

    def set_time(self, new_time: datetime) -> None:
        """Set simulated time to specific value (must be timezone-aware)."""
        if new_time.tzinfo is None:
            raise ValueError("new_time must be timezone-aware (UTC)")
        self._current_time = new_time.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Canonical way to get the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure *dt* is timezone-aware and in UTC.

    - If naive (no tzinfo): attach UTC (assumes caller meant UTC).
    - If aware but not UTC: convert to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
