"""
Engine context - every component instance, wired once.

There are no module-level singletons: build_context() constructs the whole
object graph from an EngineConfig and the four external collaborators, in
dependency order:

    instrument -> executor -> drawdown tracker -> cascade layers ->
    sizing / spacing / grid book -> de-escalation -> state machine,
    failure breaker, weekly schedule, persistence
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from gridguard.config.schema import EngineConfig
from gridguard.execution.executor import OrderExecutor
from gridguard.execution.gateway import (
    AccountTelemetry,
    AlertSink,
    LoggingAlertSink,
    MarketDataProvider,
    OrderGateway,
    PositionLedger,
)
from gridguard.execution.retry import RetryPolicy
from gridguard.grid.levels import GridBook
from gridguard.grid.spacing import GridSpacingEngine
from gridguard.market.instrument import InstrumentSpec
from gridguard.recovery.de_escalation import DeEscalationEngine
from gridguard.recovery.persistence import StatePersistence
from gridguard.risk.drawdown import DrawdownTracker
from gridguard.risk.protections.cascade import ProtectionCascade
from gridguard.risk.sizing import AdaptiveSizingEngine
from gridguard.runtime.circuit_breaker import ConsecutiveFailureBreaker
from gridguard.runtime.schedule import WeeklyResetSchedule
from gridguard.runtime.state_machine import SystemStateMachine
from gridguard.time.clock import Clock, RealTimeClock
from gridguard.logging import get_logger, LogStream


@dataclass
class EngineContext:
    config: EngineConfig
    clock: Clock
    instrument: InstrumentSpec
    market: MarketDataProvider
    account: AccountTelemetry
    ledger: PositionLedger
    gateway: OrderGateway
    alert_sink: AlertSink
    executor: OrderExecutor
    tracker: DrawdownTracker
    cascade: ProtectionCascade
    sizing: AdaptiveSizingEngine
    spacing: GridSpacingEngine
    grid_book: GridBook
    de_escalation: DeEscalationEngine
    state_machine: SystemStateMachine
    failure_breaker: ConsecutiveFailureBreaker
    schedule: WeeklyResetSchedule
    persistence: Optional[StatePersistence] = None


def build_context(
    config: EngineConfig,
    market: MarketDataProvider,
    account: AccountTelemetry,
    ledger: PositionLedger,
    gateway: OrderGateway,
    clock: Optional[Clock] = None,
    alert_sink: Optional[AlertSink] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> EngineContext:
    """
    Build the engine object graph.

    Raises:
        ConfigurationError: if a breaker rejects its thresholds
    """
    logger = get_logger(LogStream.SYSTEM)
    clock = clock or RealTimeClock()
    alert_sink = alert_sink or LoggingAlertSink()

    instrument = InstrumentSpec.from_config(config.instrument)
    retry_policy = RetryPolicy(
        max_attempts=config.execution.max_attempts,
        delay_seconds=config.execution.retry_delay_seconds,
        backoff_multiplier=config.execution.retry_backoff_multiplier,
        sleep=sleep,
    )
    executor = OrderExecutor(gateway, retry_policy, instrument)

    cascade = ProtectionCascade.from_config(config, alert_sink=alert_sink)
    spacing = GridSpacingEngine(config.grid, instrument)

    persistence = None
    if config.persistence.enabled:
        persistence = StatePersistence(config.persistence.state_dir, config.persistence.max_age_hours)

    context = EngineContext(
        config=config,
        clock=clock,
        instrument=instrument,
        market=market,
        account=account,
        ledger=ledger,
        gateway=gateway,
        alert_sink=alert_sink,
        executor=executor,
        tracker=DrawdownTracker.from_config(config.drawdown),
        cascade=cascade,
        sizing=AdaptiveSizingEngine(config.sizing, instrument),
        spacing=spacing,
        grid_book=GridBook(config.grid.levels_per_side, spacing),
        de_escalation=DeEscalationEngine(config.de_escalation, executor, ledger, cascade.hedge_lock),
        state_machine=SystemStateMachine(clock),
        failure_breaker=ConsecutiveFailureBreaker(config.execution.max_consecutive_cycle_failures),
        schedule=WeeklyResetSchedule(config.schedule, config.drawdown.exchange_timezone),
        persistence=persistence,
    )

    logger.info("Engine context built", extra={
        "mode": config.mode.value,
        "symbol": instrument.symbol,
        "drawdown_basis": config.drawdown.basis.value,
        "hedge_lock_enabled": config.hedge_lock.enabled,
        "de_escalation_enabled": config.de_escalation.enabled,
        "persistence_enabled": persistence is not None,
    })
    return context
