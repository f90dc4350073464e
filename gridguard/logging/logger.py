"""
Core logging module with named streams and per-cycle correlation IDs.

Architecture:
- Multiple log streams (system, risk, orders, grid, recovery, state, data, alerts)
- JSON formatting for files, human-readable console formatting
- Correlation ID propagation so every line of one evaluation cycle can be
  grouped together
- Rotating file handlers per stream
"""

import logging
import logging.handlers
import time
import functools
import uuid
from pathlib import Path
from typing import Optional
from contextvars import ContextVar

_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

LOGGER_PREFIX = "gridguard"


# ============================================================================
# LOG STREAM DEFINITIONS
# ============================================================================

class LogStream:
    """Log stream identifiers."""
    SYSTEM = "system"           # Startup, config, shutdown
    RISK = "risk"               # Breaker decisions, drawdown
    ORDERS = "orders"           # Order gateway calls and retries
    GRID = "grid"               # Spacing, levels, sizing
    RECOVERY = "recovery"       # De-escalation, persistence
    STATE = "state"             # System state transitions
    DATA = "data"               # Market data quality, volatility reads
    ALERTS = "alerts"           # Alert sink output

    ALL = (SYSTEM, RISK, ORDERS, GRID, RECOVERY, STATE, DATA, ALERTS)


# ============================================================================
# CORRELATION ID MANAGEMENT
# ============================================================================

def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID for current context.

    Args:
        correlation_id: Optional correlation ID. If None, generates new UUID.

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    """Get correlation ID for current context."""
    return _correlation_id.get()


class LogContext:
    """
    Context manager for scoped correlation ID.

    Usage:
        with LogContext("cycle-42"):
            logger.info("Evaluating cascade")  # Includes correlation_id
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self.previous_id = None

    def __enter__(self):
        self.previous_id = get_correlation_id()
        return set_correlation_id(self.correlation_id)

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_id:
            set_correlation_id(self.previous_id)
        else:
            _correlation_id.set(None)


_original_factory = logging.getLogRecordFactory()


def _correlation_id_factory(*args, **kwargs):
    record = _original_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


logging.setLogRecordFactory(_correlation_id_factory)


# ============================================================================
# LOGGER SETUP
# ============================================================================

_loggers_initialized = False


def setup_logging(
    log_dir: Path = Path("logs"),
    log_level: str = "INFO",
    console_level: str = "INFO",
    json_logs: bool = True,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
    file_logging: bool = True,
) -> None:
    """
    Initialize logging infrastructure.

    Creates one rotating file per stream (logs/<stream>/<stream>.log) plus a
    console handler on the root logger.

    Args:
        log_dir: Base directory for logs
        log_level: File logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        console_level: Console logging level
        json_logs: If True, use JSON formatting for files
        max_bytes: Max bytes per log file before rotation
        backup_count: Number of backup files to keep
        file_logging: Disable to log to the console only (replays, CLI)
    """
    global _loggers_initialized

    if _loggers_initialized:
        return

    from .formatters import JSONFormatter, ConsoleFormatter

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, console_level.upper()))
    console_handler.setFormatter(ConsoleFormatter())
    root.addHandler(console_handler)

    file_level = getattr(logging, log_level.upper())

    if file_logging:
        for stream in LogStream.ALL:
            stream_dir = Path(log_dir) / stream
            stream_dir.mkdir(parents=True, exist_ok=True)

            handler = logging.handlers.RotatingFileHandler(
                stream_dir / f"{stream}.log",
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            handler.setLevel(file_level)
            if json_logs:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(correlation_id)s - %(message)s'
                ))

            logger = get_logger(stream)
            logger.addHandler(handler)
            logger.setLevel(file_level)
            logger.propagate = True

    _loggers_initialized = True

    get_logger(LogStream.SYSTEM).info(
        "Logging system initialized",
        extra={
            "log_dir": str(log_dir),
            "log_level": log_level,
            "json_logs": json_logs,
            "file_logging": file_logging,
        }
    )


def get_logger(stream: str) -> logging.Logger:
    """
    Get logger for specific stream.

    Example:
        logger = get_logger(LogStream.RISK)
        logger.warning("HardStop warning", extra={"dd": "9.1"})
    """
    return logging.getLogger(f"{LOGGER_PREFIX}.{stream}")


# ============================================================================
# PERFORMANCE LOGGING DECORATOR
# ============================================================================

def log_performance(stream: str = LogStream.SYSTEM):
    """
    Decorator to log function execution time at DEBUG level.

    Usage:
        @log_performance(LogStream.STATE)
        def run_cycle(self):
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(stream)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__name__} failed",
                    extra={
                        "function": func.__name__,
                        "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True
                )
                raise
            logger.debug(
                f"{func.__name__} completed",
                extra={
                    "function": func.__name__,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                }
            )
            return result
        return wrapper
    return decorator
