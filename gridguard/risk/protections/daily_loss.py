"""
DailyLossLimit - session breaker.

    daily_pl_percent = (equity - daily_start_equity) / daily_start_equity * 100

Triggers when daily_pl_percent <= -limit_percent and then stays triggered
for the rest of the day, even if equity recovers. The next daily boundary
clears it automatically: either the tracker reports day_rolled, or the cycle
time has passed the boundary recorded at trigger time (cooldown_end). The
second form covers boundaries crossed while a higher layer short-circuited
the cascade.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from gridguard.config.schema import DailyLossConfig
from gridguard.risk.drawdown import DrawdownSnapshot, HUNDRED
from .base import BreakerLayer, BreakerStatus, LayerDecision, LayerName, ReasonCode, StatusKind


def daily_pl_percent(equity: Decimal, daily_start_equity: Decimal) -> Decimal:
    if daily_start_equity <= 0:
        return Decimal("0")
    return (equity - daily_start_equity) / daily_start_equity * HUNDRED


class DailyLossLimit(BreakerLayer):
    """Sticky-until-day-boundary loss breaker. Thresholds are loss percentages."""

    layer = LayerName.DAILY_LOSS

    def __init__(self, limit_percent: Decimal, warning_ratio: Decimal = Decimal("0.8"), enabled: bool = True):
        super().__init__(limit_percent, limit_percent * warning_ratio, enabled)
        self.last_pl_percent = Decimal("0")

    @classmethod
    def from_config(cls, config: DailyLossConfig) -> "DailyLossLimit":
        return cls(config.limit_percent, config.warning_ratio, config.enabled)

    @property
    def limit_percent(self) -> Decimal:
        return self.trigger_threshold

    @property
    def is_triggered(self) -> bool:
        return self.status.kind is StatusKind.TRIGGERED

    def check(self, snapshot: DrawdownSnapshot) -> LayerDecision:
        if snapshot.day_rolled or self._boundary_passed(snapshot.last_update):
            self.reset_day()

        if not self.enabled:
            return LayerDecision.allow(self.layer)

        pl = daily_pl_percent(snapshot.current_equity, snapshot.daily_start_equity)
        self.last_pl_percent = pl

        if self.is_triggered:
            return LayerDecision.block(self.layer, ReasonCode.DAILY_LOSS_ACTIVE, daily_pl_percent=str(pl))

        if pl <= -self.trigger_threshold:
            self._record_trigger(snapshot.last_update)
            self.cooldown_end = snapshot.next_daily_reset
            self.logger.error("Daily loss limit hit - trading paused until next day", extra={
                "daily_pl_percent": str(pl),
                "limit_percent": str(self.trigger_threshold),
                "daily_start_equity": str(snapshot.daily_start_equity),
                "equity": str(snapshot.current_equity),
                "clears_at": self.cooldown_end.isoformat() if self.cooldown_end else None,
            })
            return LayerDecision.block(
                self.layer,
                ReasonCode.DAILY_LOSS_TRIGGERED,
                newly_triggered=True,
                daily_pl_percent=str(pl),
            )

        if pl <= -self.warning_threshold:
            if self.status.kind is not StatusKind.WARNING:
                self.logger.warning("Daily loss approaching limit", extra={
                    "daily_pl_percent": str(pl),
                    "limit_percent": str(self.trigger_threshold),
                })
                self._set_status(BreakerStatus.warning(snapshot.last_update))
            return LayerDecision.allow(self.layer, ReasonCode.DAILY_LOSS_WARNING, daily_pl_percent=str(pl))

        self._set_status(BreakerStatus.inactive())
        return LayerDecision.allow(self.layer)

    def _boundary_passed(self, now: Optional[datetime]) -> bool:
        return (
            self.is_triggered
            and self.cooldown_end is not None
            and now is not None
            and now >= self.cooldown_end
        )

    def reset_day(self, now: Optional[datetime] = None) -> None:
        if self.is_triggered:
            self.logger.info("Daily loss limit cleared at day boundary", extra={
                "reason": ReasonCode.DAILY_LOSS_CLEARED.value,
            })
        self._set_status(BreakerStatus.inactive())
        self.cooldown_end = None
        self.last_pl_percent = Decimal("0")
