"""
Configuration system with Pydantic validation.

Single source of truth for all configuration parameters.
"""

from .schema import (
    EngineConfig,
    InstrumentConfig,
    DrawdownConfig,
    HardStopConfig,
    DailyLossConfig,
    HedgeLockConfig,
    EmergencyStopConfig,
    SizingConfig,
    GridConfig,
    DeEscalationConfig,
    ExecutionConfig,
    ScheduleConfig,
    PersistenceConfig,
    LoggingConfig,
    DrawdownBasis,
    RunMode,
    LogLevel,
)

from .loader import (
    ConfigLoader,
    ConfigurationError,
    load_config,
    validate_config,
)

__all__ = [
    "EngineConfig",
    "InstrumentConfig",
    "DrawdownConfig",
    "HardStopConfig",
    "DailyLossConfig",
    "HedgeLockConfig",
    "EmergencyStopConfig",
    "SizingConfig",
    "GridConfig",
    "DeEscalationConfig",
    "ExecutionConfig",
    "ScheduleConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "DrawdownBasis",
    "RunMode",
    "LogLevel",
    "ConfigLoader",
    "ConfigurationError",
    "load_config",
    "validate_config",
]
