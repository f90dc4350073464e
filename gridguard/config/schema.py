"""
Configuration schema using Pydantic for validation.

Single source of truth for every breaker, engine and runtime parameter.
Validates on load, fails fast on invalid config: the protection cascade must
never run with thresholds in the wrong order.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator, ConfigDict
from typing import Optional, Dict, Any
from decimal import Decimal
from pathlib import Path
from enum import Enum


# ============================================================================
# ENUMS
# ============================================================================

class RunMode(str, Enum):
    """Where the engine is running."""
    LIVE = "live"
    PAPER = "paper"
    BACKTEST = "backtest"


class DrawdownBasis(str, Enum):
    """Reference point for the drawdown fed into the cascade."""
    HIGH_WATER_MARK = "high_water_mark"
    BALANCE = "balance"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# INSTRUMENT
# ============================================================================

class InstrumentConfig(BaseModel):
    """Broker-side contract rules for the single traded instrument."""

    symbol: str = Field(default="XAUUSD", min_length=1)
    strategy_id: int = Field(default=20240901, ge=0, description="Magic number / strategy tag")
    point: Decimal = Field(default=Decimal("0.01"), gt=0, description="Price value of one point")
    lot_step: Decimal = Field(default=Decimal("0.01"), gt=0)
    min_lot: Decimal = Field(default=Decimal("0.01"), gt=0)
    max_lot: Decimal = Field(default=Decimal("100"), gt=0)
    contract_size: Decimal = Field(default=Decimal("100"), gt=0)

    @model_validator(mode="after")
    def validate_lot_limits(self):
        if self.min_lot > self.max_lot:
            raise ValueError(f"min_lot ({self.min_lot}) must be <= max_lot ({self.max_lot})")
        return self


# ============================================================================
# DRAWDOWN / BREAKERS
# ============================================================================

class DrawdownConfig(BaseModel):
    """Drawdown tracker settings."""

    starting_balance: Optional[Decimal] = Field(
        default=None,
        gt=0,
        description="Reference balance; defaults to the first balance sample"
    )
    basis: DrawdownBasis = Field(default=DrawdownBasis.HIGH_WATER_MARK)
    history_size: int = Field(default=512, ge=1, le=100_000)
    exchange_timezone: str = Field(default="UTC")
    daily_reset_hour: int = Field(default=0, ge=0, le=23)


class HardStopConfig(BaseModel):
    """Terminal breaker. Latched; manual recovery only."""

    enabled: bool = True
    trigger_percent: Decimal = Field(default=Decimal("30"), gt=0, le=100)
    warning_percent: Optional[Decimal] = Field(
        default=None,
        gt=0,
        le=100,
        description="Defaults to 0.9 x trigger_percent"
    )

    @property
    def effective_warning(self) -> Decimal:
        if self.warning_percent is None:
            return self.trigger_percent * Decimal("0.9")
        return self.warning_percent

    @model_validator(mode="after")
    def validate_order(self):
        if self.effective_warning >= self.trigger_percent:
            raise ValueError(
                f"hard_stop.warning_percent ({self.effective_warning}) must be "
                f"< trigger_percent ({self.trigger_percent})"
            )
        return self


class DailyLossConfig(BaseModel):
    """Session breaker, sticky until the next daily boundary."""

    enabled: bool = True
    limit_percent: Decimal = Field(default=Decimal("5"), gt=0, le=100)
    warning_ratio: Decimal = Field(default=Decimal("0.8"), gt=0, lt=1)


class HedgeLockConfig(BaseModel):
    """Exposure-freezing breaker."""

    enabled: bool = True
    trigger_percent: Decimal = Field(default=Decimal("20"), gt=0, le=100)
    net_epsilon: Decimal = Field(default=Decimal("0.001"), gt=0)


class EmergencyStopConfig(BaseModel):
    """Non-latching, hysteretic size/entry breaker."""

    enabled: bool = True
    trigger_percent: Decimal = Field(default=Decimal("15"), gt=0, le=100)
    warning_percent: Decimal = Field(default=Decimal("10"), gt=0, le=100)
    hysteresis_ratio: Decimal = Field(default=Decimal("0.5"), gt=0, lt=1)
    reduce_size_factor: Decimal = Field(default=Decimal("0.5"), gt=0, le=1)

    @model_validator(mode="after")
    def validate_order(self):
        if self.warning_percent >= self.trigger_percent:
            raise ValueError(
                f"emergency_stop.warning_percent ({self.warning_percent}) must be "
                f"< trigger_percent ({self.trigger_percent})"
            )
        return self


# ============================================================================
# SIZING / GRID
# ============================================================================

class SizingConfig(BaseModel):
    """Drawdown-adaptive lot sizing."""

    base_lot: Decimal = Field(default=Decimal("0.01"), gt=0)
    reduction_start: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    reduction_full: Decimal = Field(default=Decimal("15"), gt=0, le=100)
    min_multiplier: Decimal = Field(default=Decimal("0.25"), gt=0, le=1)
    recovery_boost: Decimal = Field(default=Decimal("1.0"), gt=0, le=3)

    @model_validator(mode="after")
    def validate_band(self):
        if self.reduction_start >= self.reduction_full:
            raise ValueError(
                f"sizing.reduction_start ({self.reduction_start}) must be "
                f"< reduction_full ({self.reduction_full})"
            )
        return self


class GridConfig(BaseModel):
    """Grid spacing and level construction."""

    dynamic_spacing: bool = True
    fixed_spacing_points: Decimal = Field(default=Decimal("300"), gt=0)
    atr_period: int = Field(default=14, ge=1, le=500)
    atr_timeframe: str = Field(default="1H")
    atr_multiplier: Decimal = Field(default=Decimal("1.5"), gt=0)
    min_dynamic_spacing: Decimal = Field(default=Decimal("100"), gt=0)
    max_dynamic_spacing: Decimal = Field(default=Decimal("2000"), gt=0)
    levels_per_side: int = Field(default=5, ge=1, le=100)
    level_multiplier: Decimal = Field(default=Decimal("1.0"), ge=1, le=3)
    degraded_log_interval_seconds: int = Field(default=300, ge=0)

    @model_validator(mode="after")
    def validate_spacing_band(self):
        if self.min_dynamic_spacing >= self.max_dynamic_spacing:
            raise ValueError(
                f"grid.min_dynamic_spacing ({self.min_dynamic_spacing}) must be "
                f"< max_dynamic_spacing ({self.max_dynamic_spacing})"
            )
        return self


class DeEscalationConfig(BaseModel):
    """Recovery scalping while hedge-locked."""

    enabled: bool = True
    scalp_lot: Decimal = Field(default=Decimal("0.01"), gt=0)
    scalp_tp_points: Decimal = Field(default=Decimal("150"), gt=0)
    scalp_sl_points: Decimal = Field(default=Decimal("450"), gt=0)
    cooldown_seconds: int = Field(default=60, ge=0)
    close_increment: Decimal = Field(default=Decimal("0.01"), gt=0)

    @model_validator(mode="after")
    def validate_stops(self):
        if self.scalp_sl_points <= self.scalp_tp_points:
            raise ValueError(
                f"de_escalation.scalp_sl_points ({self.scalp_sl_points}) must be "
                f"wider than scalp_tp_points ({self.scalp_tp_points})"
            )
        return self


# ============================================================================
# EXECUTION / SCHEDULE / PERSISTENCE / LOGGING
# ============================================================================

class ExecutionConfig(BaseModel):
    """Order gateway retry policy."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=0.5, ge=0, le=30)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, le=10)
    max_consecutive_cycle_failures: int = Field(default=5, ge=1, le=100)


class ScheduleConfig(BaseModel):
    """Administrative scheduled resets."""

    weekly_reset_enabled: bool = False
    weekly_reset_weekday: int = Field(default=0, ge=0, le=6, description="0 = Monday")
    weekly_reset_hour: int = Field(default=0, ge=0, le=23)
    weekly_reset_clears_hard_stop: bool = Field(
        default=False,
        description="Administrative override of the manual-only HardStop recovery"
    )


class PersistenceConfig(BaseModel):
    """Optional state persistence."""

    enabled: bool = False
    state_dir: Path = Field(default=Path("state"))
    max_age_hours: int = Field(default=24, ge=1, le=24 * 30)
    save_interval_cycles: int = Field(default=60, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    log_dir: Path = Field(default=Path("logs"))
    log_level: LogLevel = Field(default=LogLevel.INFO)
    console_level: LogLevel = Field(default=LogLevel.INFO)
    json_logs: bool = Field(default=True)
    file_logging: bool = Field(default=True)
    max_bytes: int = Field(ge=1_000_000, le=100_000_000, default=10_000_000)
    backup_count: int = Field(ge=1, le=20, default=5)


# ============================================================================
# MASTER CONFIGURATION
# ============================================================================

class EngineConfig(BaseModel):
    """
    Master configuration schema.

    Cross-layer RULES:
    - Every breaker: warning < trigger
    - HardStop is the terminal layer: its trigger must exceed the
      EmergencyStop and HedgeSoftLock triggers
    - Sizing reduction band must be ordered
    - The scheduled HardStop override is never allowed in LIVE mode
    """

    mode: RunMode = RunMode.PAPER
    instrument: InstrumentConfig = Field(default_factory=InstrumentConfig)
    drawdown: DrawdownConfig = Field(default_factory=DrawdownConfig)
    hard_stop: HardStopConfig = Field(default_factory=HardStopConfig)
    daily_loss: DailyLossConfig = Field(default_factory=DailyLossConfig)
    hedge_lock: HedgeLockConfig = Field(default_factory=HedgeLockConfig)
    emergency_stop: EmergencyStopConfig = Field(default_factory=EmergencyStopConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    de_escalation: DeEscalationConfig = Field(default_factory=DeEscalationConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(validate_assignment=True)

    @model_validator(mode="after")
    def validate_cascade_order(self):
        hard_trigger = self.hard_stop.trigger_percent
        if self.hard_stop.enabled:
            if self.emergency_stop.enabled and self.emergency_stop.trigger_percent >= hard_trigger:
                raise ValueError(
                    f"emergency_stop.trigger_percent ({self.emergency_stop.trigger_percent}) "
                    f"must be < hard_stop.trigger_percent ({hard_trigger})"
                )
            if self.hedge_lock.enabled and self.hedge_lock.trigger_percent >= hard_trigger:
                raise ValueError(
                    f"hedge_lock.trigger_percent ({self.hedge_lock.trigger_percent}) "
                    f"must be < hard_stop.trigger_percent ({hard_trigger})"
                )
        if self.mode is RunMode.LIVE and self.schedule.weekly_reset_clears_hard_stop:
            raise ValueError(
                "schedule.weekly_reset_clears_hard_stop is not allowed in LIVE mode; "
                "HardStop recovery is manual-only"
            )
        if self.sizing.base_lot > self.instrument.max_lot:
            raise ValueError(
                f"sizing.base_lot ({self.sizing.base_lot}) exceeds instrument.max_lot "
                f"({self.instrument.max_lot})"
            )
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """Load config from YAML file."""
        import yaml
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Load config from dictionary."""
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save config to YAML file."""
        import yaml
        data = self.model_dump(mode="json")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
