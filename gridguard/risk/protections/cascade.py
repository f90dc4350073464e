"""
Protection cascade - fixed-priority evaluation of the four breaker layers.

ORDER (not configurable):
    1. HardStop        latched, terminal
    2. DailyLossLimit  sticky until the next daily boundary
    3. HedgeSoftLock   optional, hedge-and-freeze
    4. EmergencyStop   hysteretic, reduce size / stop new entries

Evaluation short-circuits on the first layer that blocks. Lower layers are
not consulted on that cycle.

USAGE:
    cascade = ProtectionCascade(hard_stop, daily_loss, hedge_lock, emergency_stop)
    result = cascade.evaluate(snapshot, dd, positions, executor, now)
    if result.close_all_required:
        executor.close_all(...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from gridguard.config.schema import EngineConfig
from gridguard.execution.executor import OrderExecutor
from gridguard.execution.gateway import AlertEvent, AlertSeverity, AlertSink, safe_send
from gridguard.risk.drawdown import DrawdownSnapshot
from gridguard.state.models import PositionInfo
from gridguard.logging import get_logger, LogStream
from .base import EmergencyAction, LayerDecision, LayerName, ReasonCode
from .daily_loss import DailyLossLimit
from .emergency_stop import EmergencyStop
from .hard_stop import HardStop
from .hedge_lock import HedgeSoftLock


@dataclass(frozen=True)
class CascadeResult:
    """Outcome of one cascade evaluation."""
    blocked: bool
    blocking_layer: Optional[LayerName] = None
    reason: ReasonCode = ReasonCode.NONE
    emergency_action: EmergencyAction = EmergencyAction.NONE
    close_all_required: bool = False
    size_factor: Decimal = Decimal("1")
    decisions: Tuple[LayerDecision, ...] = field(default_factory=tuple)

    def decision_for(self, layer: LayerName) -> Optional[LayerDecision]:
        for decision in self.decisions:
            if decision.layer is layer:
                return decision
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blocked": self.blocked,
            "blocking_layer": self.blocking_layer.value if self.blocking_layer else None,
            "reason": self.reason.value,
            "emergency_action": self.emergency_action.value,
            "close_all_required": self.close_all_required,
            "size_factor": str(self.size_factor),
            "layers": {d.layer.value: d.reason.value for d in self.decisions},
        }


class ProtectionCascade:
    """Runs the breaker layers in priority order."""

    def __init__(
        self,
        hard_stop: HardStop,
        daily_loss: DailyLossLimit,
        hedge_lock: HedgeSoftLock,
        emergency_stop: EmergencyStop,
        alert_sink: Optional[AlertSink] = None,
    ):
        self.hard_stop = hard_stop
        self.daily_loss = daily_loss
        self.hedge_lock = hedge_lock
        self.emergency_stop = emergency_stop
        self.alert_sink = alert_sink
        self.logger = get_logger(LogStream.RISK)

    @classmethod
    def from_config(cls, config: EngineConfig, alert_sink: Optional[AlertSink] = None) -> "ProtectionCascade":
        return cls(
            HardStop.from_config(config.hard_stop),
            DailyLossLimit.from_config(config.daily_loss),
            HedgeSoftLock.from_config(config.hedge_lock),
            EmergencyStop.from_config(config.emergency_stop),
            alert_sink=alert_sink,
        )

    def evaluate(
        self,
        snapshot: DrawdownSnapshot,
        dd: Decimal,
        positions: Sequence[PositionInfo],
        executor: OrderExecutor,
        now: Optional[datetime] = None,
    ) -> CascadeResult:
        """
        Evaluate all layers for one cycle.

        Args:
            snapshot: Drawdown snapshot of this cycle (daily loss reads it)
            dd: Drawdown percentage on the configured basis
            positions: Open positions, used to size the hedge
            executor: Used by the hedge layer to submit its order
            now: Cycle timestamp
        """
        now = now or snapshot.last_update
        decisions = []

        decision = self.hard_stop.check(dd, now)
        decisions.append(decision)
        if decision.blocked:
            if decision.newly_triggered:
                self._alert("HardStop triggered", AlertSeverity.CRITICAL, now, dd=str(dd))
            return self._blocked(decision, decisions, close_all=decision.newly_triggered)

        decision = self.daily_loss.check(snapshot)
        decisions.append(decision)
        if decision.blocked:
            if decision.newly_triggered:
                self._alert("Daily loss limit hit", AlertSeverity.WARNING, now, **decision.metadata)
            return self._blocked(decision, decisions)

        decision = self.hedge_lock.check(dd, positions, executor, snapshot.current_equity, now)
        decisions.append(decision)
        if decision.reason is ReasonCode.HEDGE_FAILED:
            self._alert("Hedge order failed", AlertSeverity.CRITICAL, now, **decision.metadata)
        if decision.blocked:
            if decision.newly_triggered:
                self._alert("Hedge lock engaged", AlertSeverity.WARNING, now, **decision.metadata)
            return self._blocked(decision, decisions)

        decision = self.emergency_stop.check(dd, now)
        decisions.append(decision)
        if decision.newly_triggered:
            self._alert("EmergencyStop triggered", AlertSeverity.WARNING, now, dd=str(dd))
        if decision.blocked:
            return self._blocked(decision, decisions)

        return CascadeResult(
            blocked=False,
            reason=decision.reason if decision.action is EmergencyAction.REDUCE_SIZE else ReasonCode.TRADING_ALLOWED,
            emergency_action=decision.action,
            size_factor=self.emergency_stop.size_factor(decision.action),
            decisions=tuple(decisions),
        )

    def _blocked(self, decision: LayerDecision, decisions, close_all: bool = False) -> CascadeResult:
        result = CascadeResult(
            blocked=True,
            blocking_layer=decision.layer,
            reason=decision.reason,
            emergency_action=decision.action,
            close_all_required=close_all,
            size_factor=Decimal("0"),
            decisions=tuple(decisions),
        )
        if decision.newly_triggered:
            self.logger.warning("Cascade blocked", extra=result.to_dict())
        else:
            self.logger.debug("Cascade blocked", extra=result.to_dict())
        return result

    def _alert(self, title: str, severity: AlertSeverity, now: datetime, **details) -> None:
        safe_send(self.alert_sink, AlertEvent(title=title, severity=severity, timestamp=now, details=details))

    def get_status(self) -> Dict[str, Any]:
        return {
            "hard_stop": self.hard_stop.get_status(),
            "daily_loss": self.daily_loss.get_status(),
            "hedge_lock": self.hedge_lock.get_status(),
            "emergency_stop": self.emergency_stop.get_status(),
        }
