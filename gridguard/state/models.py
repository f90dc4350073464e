"""
Immutable snapshots shared by every component of one evaluation cycle.

All external reads (equity, positions, quotes, volatility) are taken once at
the start of a cycle into a CycleSnapshot, so every layer of the cascade
observes the same view of the account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


# ============================================================================
# ENUMS
# ============================================================================

class Direction(Enum):
    """Trade direction."""
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class PositionKind(Enum):
    """What opened a position. Carried in the order comment/tag."""
    GRID = "GRID"
    HEDGE = "HEDGE"
    SCALP = "SCALP"


# ============================================================================
# MARKET / ACCOUNT DATA
# ============================================================================

@dataclass(frozen=True)
class Quote:
    bid: Decimal
    ask: Decimal

    @property
    def mid(self) -> Decimal:
        return (self.bid + self.ask) / 2


@dataclass(frozen=True)
class Bar:
    """One OHLC bar."""
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal


@dataclass(frozen=True)
class PositionInfo:
    """One open position owned by this strategy on this instrument."""
    ticket: int
    direction: Direction
    volume: Decimal
    open_price: Decimal
    profit: Decimal
    kind: PositionKind = PositionKind.GRID
    opened_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "ticket": self.ticket,
            "direction": self.direction.value,
            "volume": str(self.volume),
            "open_price": str(self.open_price),
            "profit": str(self.profit),
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class PendingOrderInfo:
    """One pending (limit/stop) order owned by this strategy."""
    ticket: int
    direction: Direction
    volume: Decimal
    price: Decimal
    kind: PositionKind = PositionKind.GRID


# ============================================================================
# EXPOSURE
# ============================================================================

@dataclass(frozen=True)
class ExposureSnapshot:
    """
    Net exposure of the strategy on one instrument.

    Computed fresh from the position list of the current cycle; never cached
    across cycles.
    """
    buy_lots: Decimal
    sell_lots: Decimal
    position_count: int

    @property
    def net_lots(self) -> Decimal:
        return self.buy_lots - self.sell_lots

    @classmethod
    def from_positions(cls, positions: List[PositionInfo]) -> "ExposureSnapshot":
        buy = sum((p.volume for p in positions if p.direction is Direction.BUY), Decimal("0"))
        sell = sum((p.volume for p in positions if p.direction is Direction.SELL), Decimal("0"))
        return cls(buy_lots=buy, sell_lots=sell, position_count=len(positions))

    def to_dict(self) -> Dict:
        return {
            "buy_lots": str(self.buy_lots),
            "sell_lots": str(self.sell_lots),
            "net_lots": str(self.net_lots),
            "position_count": self.position_count,
        }


# ============================================================================
# CYCLE SNAPSHOT
# ============================================================================

@dataclass(frozen=True)
class CycleSnapshot:
    """One consistent read of every external collaborator."""
    now: datetime
    equity: Decimal
    balance: Decimal
    quote: Optional[Quote]
    atr: Optional[Decimal]
    positions: Tuple[PositionInfo, ...] = field(default_factory=tuple)
    pending_orders: Tuple[PendingOrderInfo, ...] = field(default_factory=tuple)
    previous_bar: Optional[Bar] = None

    def positions_of(self, *kinds: PositionKind) -> List[PositionInfo]:
        return [p for p in self.positions if p.kind in kinds]

    @property
    def grid_positions(self) -> List[PositionInfo]:
        return self.positions_of(PositionKind.GRID)

    def find_position(self, ticket: int) -> Optional[PositionInfo]:
        for p in self.positions:
            if p.ticket == ticket:
                return p
        return None
