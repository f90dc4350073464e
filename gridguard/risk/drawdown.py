"""
Drawdown tracking: raw equity/balance samples -> normalized percentages.

ARCHITECTURE:
- Monotonic high-water mark (only an explicit reset lowers it)
- Three drawdown views: from HWM, from starting balance, from day start
- Daily boundary polled every update via check_boundary(); exactly one
  reset per crossing, even when cycles are skipped
- Equity history kept in a fixed-capacity ring buffer

DRAWDOWN CALCULATION:
    dd = max(0, (reference - equity) / reference * 100), clamped to 100

USAGE:
    tracker = DrawdownTracker(starting_balance=Decimal("10000"))
    snap = tracker.update(equity, balance, clock.now())
    if snap.day_rolled:
        ...  # the daily boundary was crossed on this update
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from gridguard.config.schema import DrawdownBasis, DrawdownConfig
from gridguard.state.ring_buffer import RingBuffer
from gridguard.time.boundaries import BoundaryFn, check_boundary, daily_boundary_fn
from gridguard.logging import get_logger, LogStream

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def drawdown_percent(reference: Decimal, equity: Decimal) -> Decimal:
    """Percentage decline of *equity* from *reference*, clamped to [0, 100]."""
    if reference <= 0:
        return ZERO
    dd = (reference - equity) / reference * HUNDRED
    if dd < 0:
        return ZERO
    if dd > HUNDRED:
        return HUNDRED
    return dd


@dataclass(frozen=True)
class DrawdownSnapshot:
    """Drawdown state after one update."""
    current_equity: Decimal
    current_balance: Decimal
    starting_balance: Decimal
    high_water_mark: Decimal
    daily_start_equity: Decimal
    dd_from_balance: Decimal
    dd_from_hwm: Decimal
    dd_daily: Decimal
    max_dd_reached: Decimal
    last_update: datetime
    next_daily_reset: Optional[datetime]
    day_rolled: bool = False

    def drawdown(self, basis: DrawdownBasis = DrawdownBasis.HIGH_WATER_MARK) -> Decimal:
        if basis is DrawdownBasis.BALANCE:
            return self.dd_from_balance
        return self.dd_from_hwm

    @property
    def daily_pl(self) -> Decimal:
        return self.current_equity - self.daily_start_equity

    def to_dict(self) -> dict:
        return {
            "equity": str(self.current_equity),
            "balance": str(self.current_balance),
            "hwm": str(self.high_water_mark),
            "daily_start_equity": str(self.daily_start_equity),
            "dd_from_hwm": str(self.dd_from_hwm),
            "dd_from_balance": str(self.dd_from_balance),
            "dd_daily": str(self.dd_daily),
            "max_dd_reached": str(self.max_dd_reached),
            "day_rolled": self.day_rolled,
        }


class DrawdownTracker:
    """
    Converts equity samples into drawdown percentages.

    RESPONSIBILITIES:
    - Track the high-water mark
    - Compute dd from HWM, starting balance and day-start equity
    - Reset day-start equity at the daily boundary
    - Remember the deepest drawdown since the last HWM reset
    """

    def __init__(
        self,
        starting_balance: Optional[Decimal] = None,
        exchange_timezone: str = "UTC",
        daily_reset_hour: int = 0,
        history_size: int = 512,
        boundary_fn: Optional[BoundaryFn] = None,
    ):
        self.logger = get_logger(LogStream.RISK)

        self._starting_balance = starting_balance
        self._boundary_fn = boundary_fn or daily_boundary_fn(exchange_timezone, daily_reset_hour)
        self._history: RingBuffer = RingBuffer(history_size)

        self._equity: Optional[Decimal] = None
        self._balance: Optional[Decimal] = None
        self._hwm: Optional[Decimal] = None
        self._daily_start_equity: Optional[Decimal] = None
        self._max_dd = ZERO
        self._next_daily_reset: Optional[datetime] = None
        self._last: Optional[DrawdownSnapshot] = None

    @classmethod
    def from_config(cls, config: DrawdownConfig) -> "DrawdownTracker":
        return cls(
            starting_balance=config.starting_balance,
            exchange_timezone=config.exchange_timezone,
            daily_reset_hour=config.daily_reset_hour,
            history_size=config.history_size,
        )

    # ========================================================================
    # UPDATES
    # ========================================================================

    def update(self, equity: Decimal, balance: Decimal, now: datetime) -> DrawdownSnapshot:
        """Feed one equity/balance sample; returns the new snapshot."""
        if self._equity is None:
            self._initialize(equity, balance)

        self._equity = equity
        self._balance = balance
        self._history.push((now, equity))

        if equity > self._hwm:
            self._hwm = equity

        check = check_boundary(now, self._next_daily_reset, self._boundary_fn)
        day_rolled = check.should_reset
        if day_rolled:
            self.logger.info("Daily boundary crossed - resetting day-start equity", extra={
                "previous_day_start": str(self._daily_start_equity),
                "new_day_start": str(equity),
                "boundary": self._next_daily_reset.isoformat(),
            })
            self._daily_start_equity = equity
        self._next_daily_reset = check.next_boundary

        dd_hwm = drawdown_percent(self._hwm, equity)
        if dd_hwm > self._max_dd:
            self._max_dd = dd_hwm

        self._last = DrawdownSnapshot(
            current_equity=equity,
            current_balance=balance,
            starting_balance=self._starting_balance,
            high_water_mark=self._hwm,
            daily_start_equity=self._daily_start_equity,
            dd_from_balance=drawdown_percent(self._starting_balance, equity),
            dd_from_hwm=dd_hwm,
            dd_daily=ZERO if day_rolled else drawdown_percent(self._daily_start_equity, equity),
            max_dd_reached=self._max_dd,
            last_update=now,
            next_daily_reset=self._next_daily_reset,
            day_rolled=day_rolled,
        )
        return self._last

    def _initialize(self, equity: Decimal, balance: Decimal) -> None:
        if self._starting_balance is None:
            self._starting_balance = balance
        if self._hwm is None:
            self._hwm = equity
        if self._daily_start_equity is None:
            self._daily_start_equity = equity
        self.logger.info("DrawdownTracker initialized", extra={
            "starting_balance": str(self._starting_balance),
            "high_water_mark": str(self._hwm),
        })

    # ========================================================================
    # ADMINISTRATIVE OPERATIONS
    # ========================================================================

    def reset_high_water_mark(self) -> None:
        """Set HWM to current equity and clear the max drawdown reached."""
        if self._equity is None:
            return
        self.logger.warning("High-water mark reset", extra={
            "old_hwm": str(self._hwm),
            "new_hwm": str(self._equity),
            "max_dd_cleared": str(self._max_dd),
        })
        self._hwm = self._equity
        self._max_dd = ZERO

    def restore(self, high_water_mark: Decimal) -> None:
        """Seed the HWM from persisted state (never lowers it)."""
        if self._hwm is None or high_water_mark > self._hwm:
            self._hwm = high_water_mark

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def last_snapshot(self) -> Optional[DrawdownSnapshot]:
        return self._last

    @property
    def high_water_mark(self) -> Optional[Decimal]:
        return self._hwm

    @property
    def max_dd_reached(self) -> Decimal:
        return self._max_dd

    def equity_history(self) -> List[Decimal]:
        return [equity for _, equity in self._history]
