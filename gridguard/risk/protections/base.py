from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from gridguard.config.loader import ConfigurationError
from gridguard.logging import get_logger, LogStream

logger = get_logger(LogStream.RISK)


class LayerName(str, Enum):
    """Cascade layers, in evaluation order."""
    HARD_STOP = "HardStop"
    DAILY_LOSS = "DailyLossLimit"
    HEDGE_LOCK = "HedgeSoftLock"
    EMERGENCY_STOP = "EmergencyStop"


class ReasonCode(str, Enum):
    """Structured reason attached to every layer decision and state change."""
    NONE = "NONE"
    HARD_STOP_TRIGGERED = "HARD_STOP_TRIGGERED"
    HARD_STOP_LATCHED = "HARD_STOP_LATCHED"
    HARD_STOP_WARNING = "HARD_STOP_WARNING"
    HARD_STOP_MANUAL_RESET = "HARD_STOP_MANUAL_RESET"
    HARD_STOP_ADMIN_RESET = "HARD_STOP_ADMIN_RESET"
    DAILY_LOSS_TRIGGERED = "DAILY_LOSS_TRIGGERED"
    DAILY_LOSS_ACTIVE = "DAILY_LOSS_ACTIVE"
    DAILY_LOSS_WARNING = "DAILY_LOSS_WARNING"
    DAILY_LOSS_CLEARED = "DAILY_LOSS_CLEARED"
    HEDGE_LOCKED = "HEDGE_LOCKED"
    HEDGE_LOCKED_FLAT = "HEDGE_LOCKED_FLAT"
    HEDGE_ACTIVE = "HEDGE_ACTIVE"
    HEDGE_FAILED = "HEDGE_FAILED"
    HEDGE_UNLOCKED = "HEDGE_UNLOCKED"
    HEDGE_REARM_PENDING = "HEDGE_REARM_PENDING"
    EMERGENCY_STOP_NEW = "EMERGENCY_STOP_NEW"
    EMERGENCY_REDUCE_SIZE = "EMERGENCY_REDUCE_SIZE"
    EMERGENCY_COOLDOWN = "EMERGENCY_COOLDOWN"
    EMERGENCY_CLEARED = "EMERGENCY_CLEARED"
    DE_ESCALATION_ACTIVE = "DE_ESCALATION_ACTIVE"
    DE_ESCALATION_COMPLETE = "DE_ESCALATION_COMPLETE"
    WEEKLY_RESET = "WEEKLY_RESET"
    CYCLE_FAILURES = "CYCLE_FAILURES"
    OPERATOR = "OPERATOR"
    STARTUP = "STARTUP"
    TRADING_ALLOWED = "TRADING_ALLOWED"
    NO_POSITIONS = "NO_POSITIONS"


class EmergencyAction(str, Enum):
    """EmergencyStop output."""
    NONE = "NONE"
    REDUCE_SIZE = "REDUCE_SIZE"
    STOP_NEW = "STOP_NEW"


# ============================================================================
# BREAKER STATUS (tagged union)
# ============================================================================

class StatusKind(str, Enum):
    INACTIVE = "INACTIVE"
    WARNING = "WARNING"
    TRIGGERED = "TRIGGERED"
    COOLDOWN = "COOLDOWN"


@dataclass(frozen=True)
class BreakerStatus:
    """
    Inactive | Warning(since) | Triggered(since) | Cooldown(until)

    `until` may be None for a cooldown that ends on a metric condition
    rather than a time (EmergencyStop hysteresis band).
    """
    kind: StatusKind
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @classmethod
    def inactive(cls) -> "BreakerStatus":
        return cls(StatusKind.INACTIVE)

    @classmethod
    def warning(cls, since: Optional[datetime]) -> "BreakerStatus":
        return cls(StatusKind.WARNING, since=since)

    @classmethod
    def triggered(cls, since: Optional[datetime]) -> "BreakerStatus":
        return cls(StatusKind.TRIGGERED, since=since)

    @classmethod
    def cooldown(cls, until: Optional[datetime] = None) -> "BreakerStatus":
        return cls(StatusKind.COOLDOWN, until=until)

    @property
    def is_active(self) -> bool:
        return self.kind is not StatusKind.INACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "since": self.since.isoformat() if self.since else None,
            "until": self.until.isoformat() if self.until else None,
        }


@dataclass(frozen=True)
class LayerDecision:
    """Return value of one layer check.

    blocked=True means this layer vetoes new exposure this cycle.
    """
    layer: LayerName
    blocked: bool
    reason: ReasonCode = ReasonCode.NONE
    newly_triggered: bool = False
    action: EmergencyAction = EmergencyAction.NONE
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, layer: LayerName, reason: ReasonCode = ReasonCode.NONE, **metadata) -> "LayerDecision":
        return cls(layer=layer, blocked=False, reason=reason, metadata=metadata)

    @classmethod
    def block(cls, layer: LayerName, reason: ReasonCode, newly_triggered: bool = False, **metadata) -> "LayerDecision":
        return cls(layer=layer, blocked=True, reason=reason, newly_triggered=newly_triggered, metadata=metadata)


# ============================================================================
# BREAKER LAYER BASE
# ============================================================================

class BreakerLayer:
    """
    Common state for threshold breakers (HardStop, DailyLossLimit, EmergencyStop).

    Thresholds are validated at construction: a breaker with
    warning >= trigger raises ConfigurationError.
    """

    layer: LayerName

    def __init__(self, trigger_threshold: Decimal, warning_threshold: Decimal, enabled: bool = True):
        if trigger_threshold <= 0:
            raise ConfigurationError(f"{self.layer.value}: trigger threshold must be > 0, got {trigger_threshold}")
        if warning_threshold >= trigger_threshold:
            raise ConfigurationError(
                f"{self.layer.value}: warning threshold ({warning_threshold}) must be "
                f"< trigger threshold ({trigger_threshold})"
            )
        self.trigger_threshold = trigger_threshold
        self.warning_threshold = warning_threshold
        self.enabled = enabled
        self.status = BreakerStatus.inactive()
        self.trigger_time: Optional[datetime] = None
        self.trigger_count = 0
        self.cooldown_end: Optional[datetime] = None
        self.logger = logger
        logger.info(f"{self.layer.value} initialized", extra={
            "trigger": str(trigger_threshold),
            "warning": str(warning_threshold),
            "enabled": enabled,
        })

    @property
    def name(self) -> str:
        return self.layer.value

    def _set_status(self, status: BreakerStatus) -> None:
        if status.kind is not self.status.kind:
            self.logger.info(f"{self.name} status {self.status.kind.value} -> {status.kind.value}")
        self.status = status

    def _record_trigger(self, now: Optional[datetime]) -> None:
        self.trigger_time = now
        self.trigger_count += 1
        self._set_status(BreakerStatus.triggered(now))

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "status": self.status.to_dict(),
            "trigger_threshold": str(self.trigger_threshold),
            "warning_threshold": str(self.warning_threshold),
            "trigger_count": self.trigger_count,
            "trigger_time": self.trigger_time.isoformat() if self.trigger_time else None,
            "cooldown_end": self.cooldown_end.isoformat() if self.cooldown_end else None,
        }

    def restore_trigger_count(self, count: int) -> None:
        """Carry a persisted trigger count across restarts (never lowers it)."""
        self.trigger_count = max(self.trigger_count, count)
