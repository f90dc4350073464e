"""
Logging infrastructure for GridGuard.

Features:
- Named log streams (system, risk, orders, grid, recovery, state, data, alerts)
- JSON structured file logs, colored console logs
- Correlation ID per evaluation cycle
"""

from .logger import (
    get_logger,
    setup_logging,
    LogContext,
    log_performance,
    set_correlation_id,
    get_correlation_id,
    LogStream,
)

from .formatters import (
    JSONFormatter,
    ConsoleFormatter,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "log_performance",
    "set_correlation_id",
    "get_correlation_id",
    "LogStream",
    "JSONFormatter",
    "ConsoleFormatter",
]
