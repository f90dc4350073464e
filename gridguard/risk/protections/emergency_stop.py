"""
EmergencyStop - non-latching, hysteretic size/entry breaker.

STATE RULES (warning=W, trigger=T, hysteresis band below h*W, h=0.5):

    any state, dd >= T               -> TRIGGERED  / STOP_NEW
    INACTIVE,  W <= dd < T           -> WARNING    / REDUCE_SIZE
    TRIGGERED, W <= dd < T           -> TRIGGERED  / STOP_NEW
    TRIGGERED, h*W <= dd < W         -> COOLDOWN   / REDUCE_SIZE
    WARNING|COOLDOWN, h*W <= dd < T  -> unchanged  / REDUCE_SIZE
    any non-INACTIVE, dd < h*W       -> INACTIVE   / NONE

Example (W=8, T=10): triggered at 11, the layer keeps acting for every dd in
(4, 10] and clears only once dd < 4.

STOP_NEW blocks new entries only; existing positions are still managed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from gridguard.config.schema import EmergencyStopConfig
from .base import (
    BreakerLayer,
    BreakerStatus,
    EmergencyAction,
    LayerDecision,
    LayerName,
    ReasonCode,
    StatusKind,
)


class EmergencyStop(BreakerLayer):
    """Hysteretic drawdown breaker."""

    layer = LayerName.EMERGENCY_STOP

    def __init__(
        self,
        trigger_threshold: Decimal,
        warning_threshold: Decimal,
        hysteresis_ratio: Decimal = Decimal("0.5"),
        reduce_size_factor: Decimal = Decimal("0.5"),
        enabled: bool = True,
    ):
        super().__init__(trigger_threshold, warning_threshold, enabled)
        self.hysteresis_ratio = hysteresis_ratio
        self.reduce_size_factor = reduce_size_factor
        self.last_action = EmergencyAction.NONE

    @classmethod
    def from_config(cls, config: EmergencyStopConfig) -> "EmergencyStop":
        return cls(
            config.trigger_percent,
            config.warning_percent,
            config.hysteresis_ratio,
            config.reduce_size_factor,
            config.enabled,
        )

    @property
    def clear_threshold(self) -> Decimal:
        return self.warning_threshold * self.hysteresis_ratio

    def check(self, dd: Decimal, now: Optional[datetime] = None) -> LayerDecision:
        if not self.enabled:
            return self._decide(EmergencyAction.NONE, ReasonCode.NONE, dd)

        kind = self.status.kind

        if dd >= self.trigger_threshold:
            if kind is not StatusKind.TRIGGERED:
                self._record_trigger(now)
                self.logger.error("EmergencyStop triggered - new entries stopped", extra={
                    "dd": str(dd),
                    "trigger": str(self.trigger_threshold),
                    "trigger_count": self.trigger_count,
                })
                return self._decide(EmergencyAction.STOP_NEW, ReasonCode.EMERGENCY_STOP_NEW, dd, newly=True)
            return self._decide(EmergencyAction.STOP_NEW, ReasonCode.EMERGENCY_STOP_NEW, dd)

        if kind is StatusKind.INACTIVE:
            if dd >= self.warning_threshold:
                self._set_status(BreakerStatus.warning(now))
                self.logger.warning("EmergencyStop warning - reducing size", extra={
                    "dd": str(dd),
                    "warning": str(self.warning_threshold),
                    "reduce_size_factor": str(self.reduce_size_factor),
                })
                return self._decide(EmergencyAction.REDUCE_SIZE, ReasonCode.EMERGENCY_REDUCE_SIZE, dd)
            return self._decide(EmergencyAction.NONE, ReasonCode.NONE, dd)

        if dd < self.clear_threshold:
            self._set_status(BreakerStatus.inactive())
            self.cooldown_end = None
            self.logger.info("EmergencyStop cleared", extra={
                "dd": str(dd),
                "clear_threshold": str(self.clear_threshold),
            })
            return self._decide(EmergencyAction.NONE, ReasonCode.EMERGENCY_CLEARED, dd)

        if kind is StatusKind.TRIGGERED:
            if dd >= self.warning_threshold:
                return self._decide(EmergencyAction.STOP_NEW, ReasonCode.EMERGENCY_STOP_NEW, dd)
            self._set_status(BreakerStatus.cooldown())
            self.logger.info("EmergencyStop cooling down - entries resumed at reduced size", extra={
                "dd": str(dd),
                "clear_threshold": str(self.clear_threshold),
            })
            return self._decide(EmergencyAction.REDUCE_SIZE, ReasonCode.EMERGENCY_COOLDOWN, dd)

        reason = ReasonCode.EMERGENCY_COOLDOWN if kind is StatusKind.COOLDOWN else ReasonCode.EMERGENCY_REDUCE_SIZE
        return self._decide(EmergencyAction.REDUCE_SIZE, reason, dd)

    def _decide(self, action: EmergencyAction, reason: ReasonCode, dd: Decimal, newly: bool = False) -> LayerDecision:
        self.last_action = action
        return LayerDecision(
            layer=self.layer,
            blocked=action is EmergencyAction.STOP_NEW,
            reason=reason,
            newly_triggered=newly,
            action=action,
            metadata={"dd": str(dd)},
        )

    def size_factor(self, action: EmergencyAction) -> Decimal:
        """Extra lot factor applied on top of the adaptive multiplier."""
        if action is EmergencyAction.REDUCE_SIZE:
            return self.reduce_size_factor
        return Decimal("1")
