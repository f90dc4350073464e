"""
Protection cascade: HardStop -> DailyLossLimit -> HedgeSoftLock -> EmergencyStop.
"""

from .base import (
    BreakerLayer,
    BreakerStatus,
    EmergencyAction,
    LayerDecision,
    LayerName,
    ReasonCode,
    StatusKind,
)
from .hard_stop import HardStop
from .daily_loss import DailyLossLimit, daily_pl_percent
from .hedge_lock import HedgeSoftLock, HedgeLockState
from .emergency_stop import EmergencyStop
from .cascade import CascadeResult, ProtectionCascade

__all__ = [
    "BreakerLayer",
    "BreakerStatus",
    "EmergencyAction",
    "LayerDecision",
    "LayerName",
    "ReasonCode",
    "StatusKind",
    "HardStop",
    "DailyLossLimit",
    "daily_pl_percent",
    "HedgeSoftLock",
    "HedgeLockState",
    "EmergencyStop",
    "CascadeResult",
    "ProtectionCascade",
]
