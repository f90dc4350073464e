"""
Order execution: collaborator protocols, retry policy and the executor.
"""

from .gateway import (
    AccountTelemetry,
    AlertEvent,
    AlertSeverity,
    AlertSink,
    ExecutionErrorCode,
    LoggingAlertSink,
    MarketDataProvider,
    OrderGateway,
    OrderRequest,
    OrderResult,
    PositionLedger,
    TRANSIENT_ERRORS,
    safe_send,
)
from .retry import RetryPolicy, default_classifier
from .executor import OrderExecutor, CloseAllReport

__all__ = [
    "AccountTelemetry",
    "AlertEvent",
    "AlertSeverity",
    "AlertSink",
    "ExecutionErrorCode",
    "LoggingAlertSink",
    "MarketDataProvider",
    "OrderGateway",
    "OrderRequest",
    "OrderResult",
    "PositionLedger",
    "TRANSIENT_ERRORS",
    "safe_send",
    "RetryPolicy",
    "default_classifier",
    "OrderExecutor",
    "CloseAllReport",
]
