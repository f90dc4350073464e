"""
Generic retry policy for OrderGateway operations.

One policy object, one error classifier, reused by every operation:

- Transient failures (requote, timeout, connection drop, price-off) are
  retried up to max_attempts with exponential backoff.
- Permanent rejections return immediately.
- ConnectionError / TimeoutError raised by an adapter are treated as
  transient; once exhausted they are converted into a failed OrderResult so
  callers never assume the requested state change happened.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, Optional

from gridguard.execution.gateway import (
    ExecutionErrorCode,
    OrderResult,
    TRANSIENT_ERRORS,
)
from gridguard.logging import get_logger, LogStream

ErrorClassifier = Callable[[ExecutionErrorCode], bool]


def default_classifier(code: ExecutionErrorCode) -> bool:
    """True when *code* is worth retrying."""
    return code in TRANSIENT_ERRORS


class RetryPolicy:
    """Bounded retry with backoff."""

    _RETRYABLE_EXCEPTIONS = (ConnectionError, TimeoutError)

    def __init__(
        self,
        max_attempts: int = 3,
        delay_seconds: float = 0.5,
        backoff_multiplier: float = 2.0,
        classifier: ErrorClassifier = default_classifier,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.backoff_multiplier = backoff_multiplier
        self.classifier = classifier
        self._sleep = sleep
        self.logger = get_logger(LogStream.ORDERS)

    def run(self, operation: Callable[[], OrderResult], name: str = "operation") -> OrderResult:
        """Execute *operation* under the policy; always returns an OrderResult."""
        delay = self.delay_seconds
        result: Optional[OrderResult] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = operation()
            except self._RETRYABLE_EXCEPTIONS as e:
                code = (
                    ExecutionErrorCode.TIMEOUT
                    if isinstance(e, TimeoutError)
                    else ExecutionErrorCode.CONNECTION
                )
                result = OrderResult.fail(code, str(e))

            result = replace(result, attempts=attempt)

            if result.success:
                return result

            if not self.classifier(result.error_code):
                self.logger.error(
                    f"{name} rejected (permanent)",
                    extra={"error_code": result.error_code.value, "broker_message": result.message, "attempt": attempt},
                )
                return result

            if attempt < self.max_attempts:
                self.logger.warning(
                    f"{name} failed, retrying (attempt {attempt}/{self.max_attempts})",
                    extra={"error_code": result.error_code.value, "broker_message": result.message},
                )
                if delay > 0:
                    self._sleep(delay)
                delay *= self.backoff_multiplier

        self.logger.error(
            f"{name} failed after {self.max_attempts} attempts",
            extra={"error_code": result.error_code.value, "broker_message": result.message},
        )
        return result
