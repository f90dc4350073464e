"""Time abstraction layer"""

from .clock import Clock, RealTimeClock, BacktestClock, utc_now, ensure_utc
from .boundaries import (
    BoundaryCheck,
    check_boundary,
    next_daily_boundary,
    next_weekly_boundary,
    daily_boundary_fn,
    weekly_boundary_fn,
)

__all__ = [
    'Clock',
    'RealTimeClock',
    'BacktestClock',
    'utc_now',
    'ensure_utc',
    'BoundaryCheck',
    'check_boundary',
    'next_daily_boundary',
    'next_weekly_boundary',
    'daily_boundary_fn',
    'weekly_boundary_fn',
]
