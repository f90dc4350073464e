"""
Grid book - fixed-capacity level arrays, one per direction.

LEVEL LIFECYCLE:
    EMPTY   -> PENDING   order placed
    PENDING -> ACTIVE    order filled
    PENDING -> EMPTY     order cancelled
    ACTIVE  -> CLOSED    position closed
    any     -> EMPTY     full reset

Any other transition raises GridLevelError.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from gridguard.grid.spacing import GridSpacingEngine, SpacingResult
from gridguard.state.models import Direction
from gridguard.logging import get_logger, LogStream


class LevelStatus(Enum):
    EMPTY = "EMPTY"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


VALID_LEVEL_TRANSITIONS: FrozenSet[Tuple[LevelStatus, LevelStatus]] = frozenset({
    (LevelStatus.EMPTY, LevelStatus.PENDING),
    (LevelStatus.PENDING, LevelStatus.ACTIVE),
    (LevelStatus.PENDING, LevelStatus.EMPTY),
    (LevelStatus.ACTIVE, LevelStatus.CLOSED),
})


class GridLevelError(Exception):
    """Invalid grid level transition."""
    pass


@dataclass
class GridLevel:
    index: int
    price: Decimal
    lot_size: Decimal
    direction: Direction
    status: LevelStatus = LevelStatus.EMPTY
    ticket: Optional[int] = None

    def _transition(self, to_status: LevelStatus) -> None:
        if (self.status, to_status) not in VALID_LEVEL_TRANSITIONS:
            raise GridLevelError(
                f"{self.direction.value} level {self.index}: "
                f"invalid transition {self.status.value} -> {to_status.value}"
            )
        self.status = to_status

    def mark_pending(self, ticket: int) -> None:
        self._transition(LevelStatus.PENDING)
        self.ticket = ticket

    def mark_active(self, ticket: Optional[int] = None) -> None:
        self._transition(LevelStatus.ACTIVE)
        if ticket is not None:
            self.ticket = ticket

    def cancel(self) -> None:
        self._transition(LevelStatus.EMPTY)
        self.ticket = None

    def close(self) -> None:
        self._transition(LevelStatus.CLOSED)

    def reset(self) -> None:
        self.status = LevelStatus.EMPTY
        self.ticket = None

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "direction": self.direction.value,
            "price": str(self.price),
            "lot_size": str(self.lot_size),
            "status": self.status.value,
            "ticket": self.ticket,
        }


class GridBook:
    """
    Buy and sell level arrays around a base price.

    Level indices run 1..levels_per_side; level i sits i spacings away from
    the base price (below for BUY, above for SELL).
    """

    def __init__(self, levels_per_side: int, spacing_engine: GridSpacingEngine):
        if levels_per_side < 1:
            raise ValueError(f"levels_per_side must be >= 1, got {levels_per_side}")
        self.levels_per_side = levels_per_side
        self.spacing_engine = spacing_engine
        self.base_price: Optional[Decimal] = None
        self._levels: Dict[Direction, List[GridLevel]] = {Direction.BUY: [], Direction.SELL: []}
        self.logger = get_logger(LogStream.GRID)

    def build(self, base_price: Decimal, spacing: SpacingResult, base_lot: Decimal) -> None:
        """Lay out fresh EMPTY levels for both directions."""
        self.base_price = base_price
        for direction in (Direction.BUY, Direction.SELL):
            self._levels[direction] = [
                GridLevel(
                    index=i,
                    price=self.spacing_engine.level_price(base_price, i, direction, spacing),
                    lot_size=self.spacing_engine.level_lot(i - 1, base_lot),
                    direction=direction,
                )
                for i in range(1, self.levels_per_side + 1)
            ]
        self.logger.info("Grid built", extra={
            "base_price": str(base_price),
            "spacing_points": str(spacing.points),
            "spacing_source": spacing.source.value,
            "levels_per_side": self.levels_per_side,
            "base_lot": str(base_lot),
        })

    @property
    def is_built(self) -> bool:
        return self.base_price is not None

    def levels(self, direction: Direction) -> List[GridLevel]:
        return list(self._levels[direction])

    def level(self, direction: Direction, index: int) -> GridLevel:
        return self._levels[direction][index - 1]

    def find_by_ticket(self, ticket: int) -> Optional[GridLevel]:
        for levels in self._levels.values():
            for level in levels:
                if level.ticket == ticket:
                    return level
        return None

    def open_slots(self, direction: Direction) -> List[GridLevel]:
        return [lvl for lvl in self._levels[direction] if lvl.status is LevelStatus.EMPTY]

    def count(self, status: LevelStatus) -> int:
        return sum(1 for levels in self._levels.values() for lvl in levels if lvl.status is status)

    def sync(self, open_tickets: Set[int], pending_tickets: Set[int]) -> None:
        """
        Reconcile level statuses with the broker view of this cycle.

        PENDING whose ticket became a position -> ACTIVE
        PENDING whose ticket vanished          -> EMPTY
        ACTIVE whose ticket vanished           -> CLOSED
        """
        for levels in self._levels.values():
            for lvl in levels:
                if lvl.status is LevelStatus.PENDING:
                    if lvl.ticket in open_tickets:
                        lvl.mark_active()
                    elif lvl.ticket not in pending_tickets:
                        lvl.cancel()
                elif lvl.status is LevelStatus.ACTIVE and lvl.ticket not in open_tickets:
                    lvl.close()

    def reset(self) -> None:
        for levels in self._levels.values():
            for lvl in levels:
                lvl.reset()
        self.base_price = None
        self.logger.info("Grid reset")

    def to_dict(self) -> Dict:
        return {
            "base_price": str(self.base_price) if self.base_price is not None else None,
            "buy": [lvl.to_dict() for lvl in self._levels[Direction.BUY]],
            "sell": [lvl.to_dict() for lvl in self._levels[Direction.SELL]],
        }
