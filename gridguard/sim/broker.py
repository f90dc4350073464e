"""
Simulated broker for replays and tests.

ARCHITECTURE:
- Bar-driven: advance() steps to the next OHLC bar and moves the clock
- Implements MarketDataProvider, AccountTelemetry, PositionLedger and
  OrderGateway over one in-memory book
- Stops/targets and pending limits are checked against each bar's range
- Floating profit = price difference x volume x contract_size
- Realized profit per closed ticket is kept for get_closed_profit()

Quote model: bid = bar close, ask = bid + spread_points * point.

USAGE:
    bars = load_bars_csv(Path("data/XAUUSD_1H.csv"))
    broker = SimulatedBroker(bars, instrument, starting_balance=Decimal("10000"))
    while broker.advance():
        orchestrator.run_cycle()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from gridguard.execution.gateway import ExecutionErrorCode, OrderRequest, OrderResult
from gridguard.market.instrument import InstrumentSpec
from gridguard.market.volatility import compute_atr
from gridguard.state.models import Bar, Direction, PendingOrderInfo, PositionInfo, PositionKind, Quote
from gridguard.time.clock import BacktestClock, ensure_utc
from gridguard.logging import get_logger, LogStream

ZERO = Decimal("0")
BAR_COLUMNS = ("timestamp", "open", "high", "low", "close")


def load_bars_csv(path: Path) -> pd.DataFrame:
    """Load OHLC bars from CSV (columns: timestamp, open, high, low, close)."""
    df = pd.read_csv(path)
    missing = [c for c in BAR_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("timestamp").reset_index(drop=True)
    return df


@dataclass
class SimulatedPosition:
    ticket: int
    direction: Direction
    volume: Decimal
    open_price: Decimal
    kind: PositionKind
    opened_at: datetime
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None


@dataclass
class SimulatedPendingOrder:
    ticket: int
    direction: Direction
    volume: Decimal
    price: Decimal
    kind: PositionKind


class SimulatedBroker:
    """In-memory broker over a bar DataFrame."""

    def __init__(
        self,
        bars: pd.DataFrame,
        instrument: InstrumentSpec,
        starting_balance: Decimal = Decimal("10000"),
        spread_points: Decimal = Decimal("20"),
        atr_period: int = 14,
    ):
        if bars.empty:
            raise ValueError("bars must not be empty")
        self.bars = bars.reset_index(drop=True)
        self.instrument = instrument
        self.spread = instrument.points_to_price(spread_points)
        self.atr_period = atr_period

        self.balance = starting_balance
        self.positions: Dict[int, SimulatedPosition] = {}
        self.pending: Dict[int, SimulatedPendingOrder] = {}
        self.closed_profit: Dict[int, Decimal] = {}
        self._next_ticket = 1
        self._index = -1
        self._failures: List[ExecutionErrorCode] = []

        self.clock = BacktestClock(self._bar_time(0))
        self.logger = get_logger(LogStream.DATA)
        self.logger.info("SimulatedBroker initialized", extra={
            "bars": len(self.bars),
            "starting_balance": str(starting_balance),
            "symbol": instrument.symbol,
        })

    # ========================================================================
    # BAR FEED
    # ========================================================================

    def advance(self) -> bool:
        """Step to the next bar. Returns False when the feed is exhausted."""
        if self._index + 1 >= len(self.bars):
            return False
        self._index += 1
        bar = self.current_bar
        self.clock.set_time(bar.timestamp)
        self._fill_pending(bar)
        self._check_stops(bar)
        return True

    @property
    def current_bar(self) -> Bar:
        return self._bar(self._index)

    def _bar(self, i: int) -> Bar:
        row = self.bars.iloc[i]
        return Bar(
            timestamp=self._bar_time(i),
            open=Decimal(str(row["open"])),
            high=Decimal(str(row["high"])),
            low=Decimal(str(row["low"])),
            close=Decimal(str(row["close"])),
        )

    def _bar_time(self, i: int) -> datetime:
        return ensure_utc(pd.Timestamp(self.bars.iloc[i]["timestamp"]).to_pydatetime())

    def _fill_pending(self, bar: Bar) -> None:
        for order in list(self.pending.values()):
            touched = bar.low <= order.price if order.direction is Direction.BUY else bar.high >= order.price
            if touched:
                del self.pending[order.ticket]
                self.positions[order.ticket] = SimulatedPosition(
                    ticket=order.ticket,
                    direction=order.direction,
                    volume=order.volume,
                    open_price=order.price,
                    kind=order.kind,
                    opened_at=bar.timestamp,
                )

    def _check_stops(self, bar: Bar) -> None:
        for pos in list(self.positions.values()):
            exit_price = None
            if pos.direction is Direction.BUY:
                if pos.stop_loss is not None and bar.low <= pos.stop_loss:
                    exit_price = pos.stop_loss
                elif pos.take_profit is not None and bar.high >= pos.take_profit:
                    exit_price = pos.take_profit
            else:
                if pos.stop_loss is not None and bar.high + self.spread >= pos.stop_loss:
                    exit_price = pos.stop_loss
                elif pos.take_profit is not None and bar.low + self.spread <= pos.take_profit:
                    exit_price = pos.take_profit
            if exit_price is not None:
                self._realize(pos, pos.volume, exit_price)

    # ========================================================================
    # MARKET DATA
    # ========================================================================

    def get_quote(self) -> Optional[Quote]:
        if self._index < 0:
            return None
        bid = self.current_bar.close
        return Quote(bid=bid, ask=bid + self.spread)

    def get_atr(self) -> Optional[Decimal]:
        if self._index < 0:
            return None
        window = self.bars.iloc[max(0, self._index - self.atr_period): self._index + 1]
        return compute_atr(window, self.atr_period)

    def get_previous_bar(self) -> Optional[Bar]:
        if self._index < 1:
            return None
        return self._bar(self._index - 1)

    # ========================================================================
    # ACCOUNT / LEDGER
    # ========================================================================

    def _floating(self, pos: SimulatedPosition, volume: Optional[Decimal] = None) -> Decimal:
        quote = self.get_quote()
        if quote is None:
            return ZERO
        volume = pos.volume if volume is None else volume
        if pos.direction is Direction.BUY:
            diff = quote.bid - pos.open_price
        else:
            diff = pos.open_price - quote.ask
        return diff * volume * self.instrument.contract_size

    def get_balance(self) -> Decimal:
        return self.balance

    def get_equity(self) -> Decimal:
        return self.balance + sum((self._floating(p) for p in self.positions.values()), ZERO)

    def get_positions(self) -> List[PositionInfo]:
        return [
            PositionInfo(
                ticket=p.ticket,
                direction=p.direction,
                volume=p.volume,
                open_price=p.open_price,
                profit=self._floating(p),
                kind=p.kind,
                opened_at=p.opened_at,
            )
            for p in self.positions.values()
        ]

    def get_pending_orders(self) -> List[PendingOrderInfo]:
        return [
            PendingOrderInfo(o.ticket, o.direction, o.volume, o.price, o.kind)
            for o in self.pending.values()
        ]

    def get_closed_profit(self, ticket: int) -> Optional[Decimal]:
        return self.closed_profit.get(ticket)

    # ========================================================================
    # ORDER GATEWAY
    # ========================================================================

    def fail_next(self, code: ExecutionErrorCode, count: int = 1) -> None:
        """Make the next *count* gateway calls fail with *code*."""
        self._failures.extend([code] * count)

    def _injected_failure(self) -> Optional[OrderResult]:
        if self._failures:
            return OrderResult.fail(self._failures.pop(0), "injected failure")
        return None

    def _ticket(self) -> int:
        ticket = self._next_ticket
        self._next_ticket += 1
        return ticket

    def place_market(self, request: OrderRequest) -> OrderResult:
        failure = self._injected_failure()
        if failure:
            return failure
        quote = self.get_quote()
        if quote is None:
            return OrderResult.fail(ExecutionErrorCode.MARKET_CLOSED, "no bar loaded")
        price = quote.ask if request.direction is Direction.BUY else quote.bid
        ticket = self._ticket()
        self.positions[ticket] = SimulatedPosition(
            ticket=ticket,
            direction=request.direction,
            volume=request.volume,
            open_price=price,
            kind=request.kind,
            opened_at=self.clock.now(),
            stop_loss=request.stop_loss,
            take_profit=request.take_profit,
        )
        return OrderResult.ok(ticket)

    def place_limit(self, request: OrderRequest) -> OrderResult:
        failure = self._injected_failure()
        if failure:
            return failure
        if request.price is None:
            return OrderResult.fail(ExecutionErrorCode.REJECTED, "limit order without price")
        ticket = self._ticket()
        self.pending[ticket] = SimulatedPendingOrder(
            ticket, request.direction, request.volume, request.price, request.kind
        )
        return OrderResult.ok(ticket)

    def close_position(self, ticket: int, volume: Optional[Decimal] = None) -> OrderResult:
        failure = self._injected_failure()
        if failure:
            return failure
        pos = self.positions.get(ticket)
        if pos is None:
            return OrderResult.fail(ExecutionErrorCode.POSITION_NOT_FOUND, f"ticket {ticket}")
        volume = pos.volume if volume is None else min(volume, pos.volume)
        quote = self.get_quote()
        exit_price = quote.bid if pos.direction is Direction.BUY else quote.ask
        self._realize(pos, volume, exit_price)
        return OrderResult.ok(ticket)

    def cancel_order(self, ticket: int) -> OrderResult:
        failure = self._injected_failure()
        if failure:
            return failure
        if self.pending.pop(ticket, None) is None:
            return OrderResult.fail(ExecutionErrorCode.POSITION_NOT_FOUND, f"order {ticket}")
        return OrderResult.ok(ticket)

    def _realize(self, pos: SimulatedPosition, volume: Decimal, exit_price: Decimal) -> None:
        if pos.direction is Direction.BUY:
            diff = exit_price - pos.open_price
        else:
            diff = pos.open_price - exit_price
        profit = diff * volume * self.instrument.contract_size
        self.balance += profit
        self.closed_profit[pos.ticket] = self.closed_profit.get(pos.ticket, ZERO) + profit
        pos.volume -= volume
        if pos.volume <= 0:
            del self.positions[pos.ticket]
