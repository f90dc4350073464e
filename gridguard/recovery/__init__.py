"""
Recovery: de-escalation out of a hedge lock, and state persistence.
"""

from .de_escalation import DeEscalationEngine, DeEscalationResult, RecoveryBucket, partial_close_cost
from .persistence import PersistedState, StatePersistence, STATE_VERSION, calculate_checksum

__all__ = [
    "DeEscalationEngine",
    "DeEscalationResult",
    "RecoveryBucket",
    "partial_close_cost",
    "PersistedState",
    "StatePersistence",
    "STATE_VERSION",
    "calculate_checksum",
]
