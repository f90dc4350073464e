"""
System state machine.

SystemState is mutated through exactly one operation, set_state(), which
records the transition time and reason. A no-op transition (same state) is
ignored silently.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from gridguard.risk.protections.base import ReasonCode
from gridguard.state.ring_buffer import RingBuffer
from gridguard.time.clock import Clock
from gridguard.logging import get_logger, LogStream


class SystemState(str, Enum):
    INITIALIZING = "INITIALIZING"
    IDLE = "IDLE"
    TRADING = "TRADING"
    PAUSED = "PAUSED"
    EMERGENCY = "EMERGENCY"
    LOCKED = "LOCKED"
    DE_ESCALATING = "DE_ESCALATING"
    RECOVERY = "RECOVERY"
    STOPPED = "STOPPED"
    ERROR = "ERROR"


# States in which new grid entries are permitted
ENTRY_STATES = frozenset({SystemState.IDLE, SystemState.TRADING})


@dataclass(frozen=True)
class StateTransition:
    from_state: SystemState
    to_state: SystemState
    reason: ReasonCode
    timestamp: datetime

    def to_dict(self) -> Dict:
        return {
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "reason": self.reason.value,
            "timestamp": self.timestamp.isoformat(),
        }


class SystemStateMachine:
    """Owns SystemState; keeps a bounded transition history."""

    def __init__(self, clock: Clock, history_size: int = 128):
        self.clock = clock
        self._state = SystemState.INITIALIZING
        self._changed_at: datetime = clock.now()
        self._history: RingBuffer = RingBuffer(history_size)
        self.logger = get_logger(LogStream.STATE)

    @property
    def state(self) -> SystemState:
        return self._state

    @property
    def changed_at(self) -> datetime:
        return self._changed_at

    def set_state(self, new_state: SystemState, reason: ReasonCode, now: Optional[datetime] = None) -> bool:
        """Returns True if the state changed."""
        if new_state is self._state:
            return False

        now = now or self.clock.now()
        transition = StateTransition(self._state, new_state, reason, now)
        self._history.push(transition)
        self._state = new_state
        self._changed_at = now

        level = self.logger.warning if new_state in (SystemState.EMERGENCY, SystemState.ERROR) else self.logger.info
        level(f"State {transition.from_state.value} -> {new_state.value}", extra=transition.to_dict())
        return True

    def history(self) -> List[StateTransition]:
        return self._history.to_list()
