"""
Scheduled weekly administrative reset.

Polled once per cycle. The first poll only arms the schedule; every later
crossing of the weekly boundary fires exactly once, however many cycles
were skipped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from gridguard.config.schema import ScheduleConfig
from gridguard.time.boundaries import check_boundary, weekly_boundary_fn


class WeeklyResetSchedule:

    def __init__(self, config: ScheduleConfig, exchange_timezone: str = "UTC"):
        self.enabled = config.weekly_reset_enabled
        self.clears_hard_stop = config.weekly_reset_clears_hard_stop
        self._next_fn = weekly_boundary_fn(exchange_timezone, config.weekly_reset_weekday, config.weekly_reset_hour)
        self.next_reset: Optional[datetime] = None
        self.last_reset: Optional[datetime] = None

    def due(self, now: datetime) -> bool:
        if not self.enabled:
            return False
        check = check_boundary(now, self.next_reset, self._next_fn)
        self.next_reset = check.next_boundary
        if check.should_reset:
            self.last_reset = now
        return check.should_reset
