"""
HardStop - terminal breaker.

Once drawdown reaches the trigger threshold the breaker locks and every
subsequent check blocks, whatever the drawdown does afterwards. The cycle
that trips the lock reports newly_triggered=True exactly once; the caller
liquidates all positions and pending orders on that cycle only.

Recovery is manual only:
    hard_stop.manual_reset(confirmed=True)

administrative_reset() exists solely for the scheduled weekly reset and is
reachable only when schedule.weekly_reset_clears_hard_stop is enabled.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from gridguard.config.schema import HardStopConfig
from .base import BreakerLayer, BreakerStatus, LayerDecision, LayerName, ReasonCode, StatusKind


class HardStop(BreakerLayer):
    """Latched drawdown breaker."""

    layer = LayerName.HARD_STOP

    def __init__(
        self,
        trigger_threshold: Decimal,
        warning_threshold: Optional[Decimal] = None,
        enabled: bool = True,
    ):
        if warning_threshold is None:
            warning_threshold = trigger_threshold * Decimal("0.9")
        super().__init__(trigger_threshold, warning_threshold, enabled)
        self._locked = False

    @classmethod
    def from_config(cls, config: HardStopConfig) -> "HardStop":
        return cls(config.trigger_percent, config.effective_warning, config.enabled)

    @property
    def is_locked(self) -> bool:
        return self._locked

    def check(self, dd: Decimal, now: Optional[datetime] = None) -> LayerDecision:
        if self._locked:
            return LayerDecision.block(self.layer, ReasonCode.HARD_STOP_LATCHED, dd=str(dd))

        if not self.enabled:
            return LayerDecision.allow(self.layer)

        if dd >= self.trigger_threshold:
            self._locked = True
            self._record_trigger(now)
            self.logger.critical("HARD STOP TRIGGERED - trading locked until manual reset", extra={
                "dd": str(dd),
                "trigger": str(self.trigger_threshold),
                "trigger_count": self.trigger_count,
            })
            return LayerDecision.block(
                self.layer,
                ReasonCode.HARD_STOP_TRIGGERED,
                newly_triggered=True,
                dd=str(dd),
            )

        if dd >= self.warning_threshold:
            if self.status.kind is not StatusKind.WARNING:
                self.logger.warning("HardStop warning", extra={
                    "dd": str(dd),
                    "warning": str(self.warning_threshold),
                    "trigger": str(self.trigger_threshold),
                })
                self._set_status(BreakerStatus.warning(now))
            return LayerDecision.allow(self.layer, ReasonCode.HARD_STOP_WARNING, dd=str(dd))

        self._set_status(BreakerStatus.inactive())
        return LayerDecision.allow(self.layer)

    def manual_reset(self, confirmed: bool) -> bool:
        """Clear the lock. Does nothing unless *confirmed* is exactly True."""
        if confirmed is not True:
            self.logger.warning("HardStop manual reset refused: not confirmed")
            return False
        self._clear(ReasonCode.HARD_STOP_MANUAL_RESET, "operator confirmed manual reset")
        return True

    def administrative_reset(self, reason: str) -> None:
        """Scheduled override of the manual-only recovery. Logged as CRITICAL."""
        self.logger.critical("HardStop cleared by administrative reset", extra={
            "reason": reason,
            "was_locked": self._locked,
        })
        self._clear(ReasonCode.HARD_STOP_ADMIN_RESET, reason)

    def restore_lock(self, now: Optional[datetime] = None) -> None:
        """Re-apply a lock recorded in persisted state after a restart."""
        if not self._locked:
            self._locked = True
            self._set_status(BreakerStatus.triggered(now))
            self.logger.critical("HardStop lock restored from persisted state")

    def _clear(self, reason: ReasonCode, detail: str) -> None:
        was_locked = self._locked
        self._locked = False
        self._set_status(BreakerStatus.inactive())
        self.logger.warning("HardStop reset", extra={
            "reason": reason.value,
            "detail": detail,
            "was_locked": was_locked,
        })
