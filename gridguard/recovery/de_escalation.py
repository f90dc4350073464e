"""
De-escalation - digs the account out of a hedge lock.

While hedge-locked the engine runs small, fixed-stop "scalp" trades. Their
realized profit accumulates in a RecoveryBucket, and the bucket pays for
closing the worst losing grid position one small increment at a time. When
no grid positions remain, the hedge is closed and the lock released.

PER CYCLE:
    1. Tracked scalp gone -> read its realized profit; profit >= 0 is
       deposited, a loss is ignored (the bucket only ratchets up)
    2. No grid positions left -> close hedge (and any scalp), unlock,
       reset bucket. Done.
    3. No scalp open and cooldown elapsed -> open one scalp in the direction
       of the previous bar (close >= open -> BUY)
    4. Worst grid position (most negative floating profit):
           increment = min(close_increment, volume)
           cost      = max(0, -profit) * increment / volume
       bucket >= cost -> partial close; the bucket is debited only after the
       close succeeds

INVARIANTS:
- bucket.accumulated >= 0 at all times
- a partial close never exceeds min(close_increment, position volume)
- a failed close leaves the bucket untouched
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from gridguard.config.schema import DeEscalationConfig
from gridguard.execution.executor import OrderExecutor
from gridguard.execution.gateway import PositionLedger
from gridguard.risk.protections.base import ReasonCode
from gridguard.risk.protections.hedge_lock import HedgeSoftLock
from gridguard.state.models import CycleSnapshot, Direction, PositionInfo, PositionKind
from gridguard.logging import get_logger, LogStream

ZERO = Decimal("0")


class RecoveryBucket:
    """Realized scalp profit available to pay for partial closes."""

    def __init__(self):
        self._accumulated = ZERO
        self.total_deposited = ZERO
        self.total_spent = ZERO

    @property
    def accumulated(self) -> Decimal:
        return self._accumulated

    def deposit(self, amount: Decimal) -> bool:
        """Add realized profit. Losses and zero are ignored."""
        if amount <= 0:
            return False
        self._accumulated += amount
        self.total_deposited += amount
        return True

    def can_afford(self, cost: Decimal) -> bool:
        return self._accumulated >= cost

    def spend(self, cost: Decimal) -> None:
        if cost < 0:
            raise ValueError(f"cost must be >= 0, got {cost}")
        if cost > self._accumulated:
            raise ValueError(f"cost {cost} exceeds bucket {self._accumulated}")
        self._accumulated -= cost
        self.total_spent += cost

    def reset(self) -> None:
        self._accumulated = ZERO
        self.total_deposited = ZERO
        self.total_spent = ZERO

    def to_dict(self) -> Dict[str, str]:
        return {
            "accumulated": str(self._accumulated),
            "total_deposited": str(self.total_deposited),
            "total_spent": str(self.total_spent),
        }


def partial_close_cost(position: PositionInfo, close_increment: Decimal) -> tuple:
    """Returns (increment, cost) for closing part of *position*."""
    increment = min(close_increment, position.volume)
    loss = max(ZERO, -position.profit)
    cost = loss * increment / position.volume if position.volume > 0 else ZERO
    return increment, cost


@dataclass(frozen=True)
class DeEscalationResult:
    """What the engine did on one cycle."""
    reason: ReasonCode
    completed: bool = False
    bucket: Decimal = ZERO
    scalp_ticket: Optional[int] = None
    scalp_opened: bool = False
    scalp_profit: Optional[Decimal] = None
    closed_ticket: Optional[int] = None
    closed_volume: Optional[Decimal] = None
    close_cost: Optional[Decimal] = None
    remaining_grid_positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "completed": self.completed,
            "bucket": str(self.bucket),
            "scalp_ticket": self.scalp_ticket,
            "scalp_opened": self.scalp_opened,
            "scalp_profit": str(self.scalp_profit) if self.scalp_profit is not None else None,
            "closed_ticket": self.closed_ticket,
            "closed_volume": str(self.closed_volume) if self.closed_volume is not None else None,
            "close_cost": str(self.close_cost) if self.close_cost is not None else None,
            "remaining_grid_positions": self.remaining_grid_positions,
        }


class DeEscalationEngine:
    """
    Recovery sub-system driven by the orchestrator while hedge-locked.

    USAGE:
        engine = DeEscalationEngine(config.de_escalation, executor, ledger, hedge_lock)
        result = engine.step(snapshot)
        if result.completed:
            ...  # lock released, move to RECOVERY
    """

    def __init__(
        self,
        config: DeEscalationConfig,
        executor: OrderExecutor,
        ledger: PositionLedger,
        hedge_lock: HedgeSoftLock,
    ):
        self.config = config
        self.executor = executor
        self.ledger = ledger
        self.hedge_lock = hedge_lock
        self.bucket = RecoveryBucket()
        self.scalp_ticket: Optional[int] = None
        self.last_scalp_closed_at: Optional[datetime] = None
        self.logger = get_logger(LogStream.RECOVERY)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def step(self, snapshot: CycleSnapshot) -> DeEscalationResult:
        scalp_profit = self._detect_scalp_close(snapshot)
        grid = snapshot.grid_positions

        if not grid:
            return self._complete(snapshot, scalp_profit)

        scalp_opened = False
        if self.scalp_ticket is None and self._cooldown_elapsed(snapshot.now):
            scalp_opened = self._open_scalp(snapshot)

        closed_ticket = closed_volume = cost = None
        worst = min(grid, key=lambda p: p.profit)
        increment, needed = partial_close_cost(worst, self.config.close_increment)
        if self.bucket.can_afford(needed):
            result = self.executor.close_position(worst.ticket, increment)
            if result.success:
                self.bucket.spend(needed)
                closed_ticket, closed_volume, cost = worst.ticket, increment, needed
                self.logger.info("Partial close paid from recovery bucket", extra={
                    "ticket": worst.ticket,
                    "volume": str(increment),
                    "position_volume": str(worst.volume),
                    "position_profit": str(worst.profit),
                    "cost": str(needed),
                    **self.bucket.to_dict(),
                })
            else:
                self.logger.warning("Partial close failed - bucket unchanged", extra={
                    "ticket": worst.ticket,
                    "volume": str(increment),
                    "error_code": result.error_code.value if result.error_code else None,
                })

        return DeEscalationResult(
            reason=ReasonCode.DE_ESCALATION_ACTIVE,
            bucket=self.bucket.accumulated,
            scalp_ticket=self.scalp_ticket,
            scalp_opened=scalp_opened,
            scalp_profit=scalp_profit,
            closed_ticket=closed_ticket,
            closed_volume=closed_volume,
            close_cost=cost,
            remaining_grid_positions=len(grid),
        )

    # ========================================================================
    # SCALPS
    # ========================================================================

    def _detect_scalp_close(self, snapshot: CycleSnapshot) -> Optional[Decimal]:
        if self.scalp_ticket is None:
            # Adopt a scalp left open by a previous run
            open_scalps = snapshot.positions_of(PositionKind.SCALP)
            if open_scalps:
                self.scalp_ticket = open_scalps[0].ticket
            return None

        if snapshot.find_position(self.scalp_ticket) is not None:
            return None

        ticket = self.scalp_ticket
        self.scalp_ticket = None
        self.last_scalp_closed_at = snapshot.now

        profit = self.ledger.get_closed_profit(ticket)
        if profit is None:
            self.logger.warning("Closed scalp profit unavailable - nothing deposited", extra={"ticket": ticket})
            return None

        if self.bucket.deposit(profit):
            self.logger.info("Scalp profit deposited", extra={
                "ticket": ticket,
                "profit": str(profit),
                **self.bucket.to_dict(),
            })
        else:
            self.logger.info("Scalp closed at a loss - ignored", extra={
                "ticket": ticket,
                "profit": str(profit),
            })
        return profit

    def _cooldown_elapsed(self, now: datetime) -> bool:
        if self.last_scalp_closed_at is None:
            return True
        return now - self.last_scalp_closed_at >= timedelta(seconds=self.config.cooldown_seconds)

    def _open_scalp(self, snapshot: CycleSnapshot) -> bool:
        bar = snapshot.previous_bar
        if bar is None or snapshot.quote is None:
            self.logger.debug("No previous bar or quote - scalp skipped")
            return False

        direction = Direction.BUY if bar.close >= bar.open else Direction.SELL
        instrument = self.executor.instrument
        tp = instrument.points_to_price(self.config.scalp_tp_points)
        sl = instrument.points_to_price(self.config.scalp_sl_points)
        if direction is Direction.BUY:
            entry = snapshot.quote.ask
            take_profit, stop_loss = entry + tp, entry - sl
        else:
            entry = snapshot.quote.bid
            take_profit, stop_loss = entry - tp, entry + sl

        result = self.executor.place_market(
            direction,
            self.config.scalp_lot,
            PositionKind.SCALP,
            stop_loss=instrument.round_price(stop_loss),
            take_profit=instrument.round_price(take_profit),
            comment="scalp",
        )
        if not result.success:
            self.logger.warning("Scalp order failed - retry next eligible cycle", extra={
                "direction": direction.value,
                "error_code": result.error_code.value if result.error_code else None,
                "broker_message": result.message,
            })
            return False

        self.scalp_ticket = result.ticket
        self.logger.info("Scalp opened", extra={
            "ticket": result.ticket,
            "direction": direction.value,
            "volume": str(self.config.scalp_lot),
            "entry": str(entry),
        })
        return True

    # ========================================================================
    # COMPLETION
    # ========================================================================

    def _complete(self, snapshot: CycleSnapshot, scalp_profit: Optional[Decimal]) -> DeEscalationResult:
        leftovers = snapshot.positions_of(PositionKind.HEDGE, PositionKind.SCALP)
        failed = []
        for position in leftovers:
            result = self.executor.close_position(position.ticket)
            if not result.success:
                failed.append(position.ticket)

        if failed:
            self.logger.error("Hedge close failed - lock kept, retrying next cycle", extra={
                "failed_tickets": failed,
            })
            return DeEscalationResult(
                reason=ReasonCode.DE_ESCALATION_ACTIVE,
                bucket=self.bucket.accumulated,
                scalp_ticket=self.scalp_ticket,
                scalp_profit=scalp_profit,
            )

        self.logger.info("De-escalation complete - releasing hedge lock", extra={
            "closed": [p.ticket for p in leftovers],
            **self.bucket.to_dict(),
        })
        self.hedge_lock.unlock()
        self.reset()
        return DeEscalationResult(
            reason=ReasonCode.DE_ESCALATION_COMPLETE,
            completed=True,
            scalp_profit=scalp_profit,
        )

    def reset(self) -> None:
        self.bucket.reset()
        self.scalp_ticket = None
        self.last_scalp_closed_at = None

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "scalp_ticket": self.scalp_ticket,
            "last_scalp_closed_at": self.last_scalp_closed_at.isoformat() if self.last_scalp_closed_at else None,
            **self.bucket.to_dict(),
        }
