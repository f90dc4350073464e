"""
HedgeSoftLock - exposure-freezing breaker.

When drawdown reaches the hedge trigger, one opposing market order sized at
|net lots| drives net exposure to ~zero, and the layer locks. A locked layer
blocks every cycle until unlock() (issued when de-escalation completes).

FAIL-CLOSED:
A hedge order that fails does NOT set the lock. The cascade falls through to
EmergencyStop instead of pretending the account is protected.

RE-ARM:
After unlock() the layer stays disarmed until drawdown has been below the
trigger at least once. Drawdown is still near the trigger when de-escalation
finishes, so an armed layer would lock again on the flat book every cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from gridguard.config.schema import HedgeLockConfig
from gridguard.execution.executor import OrderExecutor
from gridguard.state.models import Direction, ExposureSnapshot, PositionInfo, PositionKind
from gridguard.logging import get_logger, LogStream
from .base import LayerDecision, LayerName, ReasonCode


@dataclass
class HedgeLockState:
    is_locked: bool = False
    hedge_order_id: Optional[int] = None
    locked_equity: Optional[Decimal] = None
    locked_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "is_locked": self.is_locked,
            "hedge_order_id": self.hedge_order_id,
            "locked_equity": str(self.locked_equity) if self.locked_equity is not None else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
        }


class HedgeSoftLock:
    """Optional hedge-and-freeze layer."""

    layer = LayerName.HEDGE_LOCK

    def __init__(
        self,
        trigger_threshold: Decimal,
        net_epsilon: Decimal = Decimal("0.001"),
        enabled: bool = True,
    ):
        self.trigger_threshold = trigger_threshold
        self.net_epsilon = net_epsilon
        self.enabled = enabled
        self._state = HedgeLockState()
        self.failed_attempts = 0
        self.armed = True
        self.logger = get_logger(LogStream.RISK)

    @classmethod
    def from_config(cls, config: HedgeLockConfig) -> "HedgeSoftLock":
        return cls(config.trigger_percent, config.net_epsilon, config.enabled)

    @property
    def is_locked(self) -> bool:
        return self._state.is_locked

    @property
    def state(self) -> HedgeLockState:
        """Read-only copy of the lock state."""
        return replace(self._state)

    def check(
        self,
        dd: Decimal,
        positions: Sequence[PositionInfo],
        executor: OrderExecutor,
        equity: Decimal,
        now: Optional[datetime] = None,
    ) -> LayerDecision:
        if self._state.is_locked:
            return LayerDecision.block(
                self.layer,
                ReasonCode.HEDGE_ACTIVE,
                hedge_order_id=self._state.hedge_order_id,
            )

        if not self.armed:
            if dd >= self.trigger_threshold:
                return LayerDecision.allow(self.layer, ReasonCode.HEDGE_REARM_PENDING, dd=str(dd))
            self.armed = True
            self.logger.info("Hedge lock re-armed", extra={"dd": str(dd)})

        if not self.enabled or dd < self.trigger_threshold:
            return LayerDecision.allow(self.layer)

        exposure = ExposureSnapshot.from_positions(list(positions))
        net = exposure.net_lots
        hedge_volume = executor.instrument.floor_to_step(abs(net))

        if abs(net) < self.net_epsilon or hedge_volume <= 0:
            self._lock(None, equity, now)
            self.logger.warning("Hedge lock engaged on flat exposure (no order)", extra={
                "dd": str(dd),
                **exposure.to_dict(),
            })
            return LayerDecision.block(
                self.layer,
                ReasonCode.HEDGE_LOCKED_FLAT,
                newly_triggered=True,
                exposure=exposure.to_dict(),
            )

        direction = Direction.SELL if net > 0 else Direction.BUY
        result = executor.place_market(direction, hedge_volume, PositionKind.HEDGE, comment="hedge")

        if not result.success:
            self.failed_attempts += 1
            self.logger.critical("HEDGE ORDER FAILED - lock NOT set, falling through", extra={
                "dd": str(dd),
                "direction": direction.value,
                "volume": str(hedge_volume),
                "error_code": result.error_code.value if result.error_code else None,
                "broker_message": result.message,
                "failed_attempts": self.failed_attempts,
            })
            return LayerDecision.allow(
                self.layer,
                ReasonCode.HEDGE_FAILED,
                direction=direction.value,
                volume=str(hedge_volume),
            )

        self._lock(result.ticket, equity, now)
        self.logger.warning("Hedge lock engaged", extra={
            "dd": str(dd),
            "direction": direction.value,
            "volume": str(hedge_volume),
            "hedge_ticket": result.ticket,
            **exposure.to_dict(),
        })
        return LayerDecision.block(
            self.layer,
            ReasonCode.HEDGE_LOCKED,
            newly_triggered=True,
            direction=direction.value,
            volume=str(hedge_volume),
            hedge_order_id=result.ticket,
        )

    def _lock(self, ticket: Optional[int], equity: Decimal, now: Optional[datetime]) -> None:
        self._state = HedgeLockState(
            is_locked=True,
            hedge_order_id=ticket,
            locked_equity=equity,
            locked_at=now,
        )

    def unlock(self) -> None:
        if not self._state.is_locked:
            return
        self.logger.info("Hedge lock released", extra={
            "reason": ReasonCode.HEDGE_UNLOCKED.value,
            **self._state.to_dict(),
        })
        self._state = HedgeLockState()
        self.armed = False

    def get_status(self) -> dict:
        return {
            "name": self.layer.value,
            "enabled": self.enabled,
            "trigger_threshold": str(self.trigger_threshold),
            "failed_attempts": self.failed_attempts,
            "armed": self.armed,
            **self._state.to_dict(),
        }
