"""
Consecutive-failure breaker for the evaluation cycle.

INVARIANT:
    After max_failures consecutive cycles that raised, the breaker trips and
    the orchestrator moves to ERROR. Only an explicit reset() clears a trip;
    a later successful cycle does not.
"""

from __future__ import annotations

from typing import Optional

from gridguard.logging import get_logger, LogStream


class ConsecutiveFailureBreaker:
    """Trips after *max_failures* consecutive failed cycles."""

    def __init__(self, max_failures: int = 5) -> None:
        if max_failures < 1:
            raise ValueError(f"max_failures must be >= 1, got {max_failures}")
        self.max_failures: int = max_failures
        self._count: int = 0
        self._tripped: bool = False
        self.last_error: Optional[str] = None
        self.logger = get_logger(LogStream.SYSTEM)

    @property
    def failure_count(self) -> int:
        return self._count

    @property
    def is_tripped(self) -> bool:
        return self._tripped

    def record_failure(self, error: BaseException) -> bool:
        """Count one failed cycle. Returns True if this failure tripped the breaker."""
        self._count += 1
        self.last_error = f"{type(error).__name__}: {error}"
        if not self._tripped and self._count >= self.max_failures:
            self._tripped = True
            self.logger.critical("Cycle failure breaker tripped", extra={
                "consecutive_failures": self._count,
                "last_error": self.last_error,
            })
            return True
        return False

    def record_success(self) -> None:
        self._count = 0

    def reset(self) -> None:
        self._count = 0
        self._tripped = False
        self.last_error = None
