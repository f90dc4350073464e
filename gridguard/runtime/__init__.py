"""
Runtime: system state machine, engine context and the cycle orchestrator.
"""

from .state_machine import ENTRY_STATES, StateTransition, SystemState, SystemStateMachine
from .circuit_breaker import ConsecutiveFailureBreaker
from .schedule import WeeklyResetSchedule
from .context import EngineContext, build_context
from .orchestrator import CycleDecision, StateOrchestrator

__all__ = [
    "ENTRY_STATES",
    "StateTransition",
    "SystemState",
    "SystemStateMachine",
    "ConsecutiveFailureBreaker",
    "WeeklyResetSchedule",
    "EngineContext",
    "build_context",
    "CycleDecision",
    "StateOrchestrator",
]
