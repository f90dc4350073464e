"""
Risk: drawdown tracking, protection cascade, adaptive sizing.
"""

from .drawdown import DrawdownSnapshot, DrawdownTracker, drawdown_percent
from .sizing import AdaptiveSizingEngine
from .protections import (
    CascadeResult,
    DailyLossLimit,
    EmergencyAction,
    EmergencyStop,
    HardStop,
    HedgeLockState,
    HedgeSoftLock,
    LayerDecision,
    LayerName,
    ProtectionCascade,
    ReasonCode,
)

__all__ = [
    "DrawdownSnapshot",
    "DrawdownTracker",
    "drawdown_percent",
    "AdaptiveSizingEngine",
    "CascadeResult",
    "DailyLossLimit",
    "EmergencyAction",
    "EmergencyStop",
    "HardStop",
    "HedgeLockState",
    "HedgeSoftLock",
    "LayerDecision",
    "LayerName",
    "ProtectionCascade",
    "ReasonCode",
]
