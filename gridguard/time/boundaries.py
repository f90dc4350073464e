"""
Daily and weekly boundary detection.

Boundaries are polled on every cycle: the caller stores the *next* boundary
and compares it with the current time. The check is a pure function of
(now, stored_boundary), so it is idempotent and unit-testable:

    check = check_boundary(now, next_reset, daily_boundary_fn("Europe/London"))
    if check.should_reset:
        ...
    next_reset = check.next_boundary

If several cycles are skipped across one or more boundaries, the next cycle
still reports exactly one reset and jumps straight to the first boundary
after `now`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytz

from .clock import ensure_utc


BoundaryFn = Callable[[datetime], datetime]


@dataclass(frozen=True)
class BoundaryCheck:
    """Result of one boundary poll."""
    should_reset: bool
    next_boundary: datetime


def next_daily_boundary(now: datetime, tz: str = "UTC", hour: int = 0) -> datetime:
    """
    First daily boundary strictly after *now*.

    The boundary is `hour:00` local exchange time; the result is UTC.
    """
    zone = pytz.timezone(tz)
    local_now = ensure_utc(now).astimezone(zone)
    candidate_date = local_now.date()
    while True:
        naive = datetime(candidate_date.year, candidate_date.month, candidate_date.day, hour)
        candidate = zone.localize(naive)
        if candidate > local_now:
            return ensure_utc(candidate)
        candidate_date += timedelta(days=1)


def next_weekly_boundary(
    now: datetime,
    tz: str = "UTC",
    weekday: int = 0,
    hour: int = 0,
) -> datetime:
    """
    First weekly boundary strictly after *now*.

    Args:
        weekday: 0 = Monday ... 6 = Sunday (local exchange time)
        hour: hour of day of the boundary
    """
    zone = pytz.timezone(tz)
    local_now = ensure_utc(now).astimezone(zone)
    days_ahead = (weekday - local_now.weekday()) % 7
    candidate_date = local_now.date() + timedelta(days=days_ahead)
    while True:
        naive = datetime(candidate_date.year, candidate_date.month, candidate_date.day, hour)
        candidate = zone.localize(naive)
        if candidate > local_now:
            return ensure_utc(candidate)
        candidate_date += timedelta(days=7)


def daily_boundary_fn(tz: str = "UTC", hour: int = 0) -> BoundaryFn:
    return lambda now: next_daily_boundary(now, tz, hour)


def weekly_boundary_fn(tz: str = "UTC", weekday: int = 0, hour: int = 0) -> BoundaryFn:
    return lambda now: next_weekly_boundary(now, tz, weekday, hour)


def check_boundary(
    now: datetime,
    stored_boundary: Optional[datetime],
    next_fn: BoundaryFn,
) -> BoundaryCheck:
    """
    Pure boundary poll: (now, stored_boundary) -> (should_reset, next_boundary).

    A missing stored boundary (first cycle) never resets; it only schedules.
    """
    now = ensure_utc(now)
    if stored_boundary is None:
        return BoundaryCheck(False, next_fn(now))
    if now >= stored_boundary:
        return BoundaryCheck(True, next_fn(now))
    return BoundaryCheck(False, stored_boundary)
