"""
State orchestrator - one evaluation cycle, end to end.

CYCLE:
    1. Read one CycleSnapshot (every external read happens here)
    2. Weekly administrative reset, when scheduled
    3. DrawdownTracker.update
    4. ProtectionCascade.evaluate; a fresh HardStop trip closes everything once
    5. Hedge-locked -> DeEscalationEngine
    6. Unblocked -> AdaptiveSizingEngine + GridSpacingEngine
    7. SystemState = highest-priority active condition:
           EMERGENCY > LOCKED / DE_ESCALATING > PAUSED > TRADING / IDLE
    8. Persist on interval and on state change

An exception inside a cycle is logged and counted; after
execution.max_consecutive_cycle_failures in a row the state becomes ERROR
and every cycle returns a blocking decision until reset_error().

USAGE:
    orchestrator = StateOrchestrator(build_context(config, market, account, ledger, gateway))
    orchestrator.start()
    while running:
        decision = orchestrator.run_cycle()
        if decision.allow_new_entries:
            ...  # trading logic places grid orders at decision.lot_size / decision.spacing
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from gridguard.execution.gateway import AlertEvent, AlertSeverity, safe_send
from gridguard.grid.spacing import SpacingResult
from gridguard.recovery.de_escalation import DeEscalationResult
from gridguard.recovery.persistence import PersistedState
from gridguard.risk.drawdown import DrawdownSnapshot
from gridguard.risk.protections.base import LayerName, ReasonCode
from gridguard.risk.protections.cascade import CascadeResult
from gridguard.runtime.context import EngineContext
from gridguard.runtime.state_machine import ENTRY_STATES, SystemState
from gridguard.state.models import CycleSnapshot
from gridguard.logging import get_logger, log_performance, LogContext, LogStream

ZERO = Decimal("0")


@dataclass(frozen=True)
class CycleDecision:
    """Per-cycle output handed to trading logic."""
    state: SystemState
    allow_new_entries: bool
    manage_existing: bool
    lot_multiplier: Decimal = ZERO
    lot_size: Decimal = ZERO
    spacing: Optional[SpacingResult] = None
    cascade: Optional[CascadeResult] = None
    de_escalation: Optional[DeEscalationResult] = None
    drawdown: Optional[DrawdownSnapshot] = None
    reason: ReasonCode = ReasonCode.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "allow_new_entries": self.allow_new_entries,
            "manage_existing": self.manage_existing,
            "lot_multiplier": str(self.lot_multiplier),
            "lot_size": str(self.lot_size),
            "spacing": self.spacing.to_dict() if self.spacing else None,
            "cascade": self.cascade.to_dict() if self.cascade else None,
            "de_escalation": self.de_escalation.to_dict() if self.de_escalation else None,
            "drawdown": self.drawdown.to_dict() if self.drawdown else None,
            "reason": self.reason.value,
        }


class StateOrchestrator:
    """Composes every component into one synchronous evaluation cycle."""

    def __init__(self, context: EngineContext):
        self.ctx = context
        self.config = context.config
        self.cycle_count = 0
        self.last_reset_time: Optional[datetime] = None
        self.logger = get_logger(LogStream.SYSTEM)

    @property
    def state(self) -> SystemState:
        return self.ctx.state_machine.state

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def start(self) -> SystemState:
        """Restore persisted state (if any) and leave INITIALIZING."""
        now = self.ctx.clock.now()
        restored = self.ctx.persistence.load(now) if self.ctx.persistence else None

        if restored is not None:
            self.ctx.tracker.restore(restored.high_water_mark)
            self.ctx.cascade.hard_stop.restore_trigger_count(restored.hard_stop_trigger_count)
            self.ctx.cascade.emergency_stop.restore_trigger_count(restored.emergency_trigger_count)
            self.last_reset_time = restored.last_reset_time
            if restored.hard_stop_locked:
                self.ctx.cascade.hard_stop.restore_lock(now)

        if self.ctx.cascade.hard_stop.is_locked:
            self.ctx.state_machine.set_state(SystemState.EMERGENCY, ReasonCode.HARD_STOP_LATCHED, now)
        else:
            self.ctx.state_machine.set_state(SystemState.IDLE, ReasonCode.STARTUP, now)

        self.logger.info("Orchestrator started", extra={
            "state": self.state.value,
            "restored": restored is not None,
        })
        return self.state

    def stop(self) -> None:
        self.ctx.state_machine.set_state(SystemState.STOPPED, ReasonCode.OPERATOR)
        self._persist(force=True)

    def resume(self) -> None:
        if self.state is SystemState.STOPPED:
            self.ctx.state_machine.set_state(SystemState.IDLE, ReasonCode.OPERATOR)

    def reset_error(self) -> None:
        """Operator acknowledgement of an ERROR state."""
        self.ctx.failure_breaker.reset()
        if self.state is SystemState.ERROR:
            self.ctx.state_machine.set_state(SystemState.IDLE, ReasonCode.OPERATOR)

    def manual_reset_hard_stop(self, confirmed: bool) -> bool:
        if not self.ctx.cascade.hard_stop.manual_reset(confirmed):
            return False
        if self.state is SystemState.EMERGENCY:
            self.ctx.state_machine.set_state(SystemState.IDLE, ReasonCode.HARD_STOP_MANUAL_RESET)
        self._persist(force=True)
        return True

    # ========================================================================
    # CYCLE
    # ========================================================================

    def run_cycle(self) -> CycleDecision:
        self.cycle_count += 1
        with LogContext(f"cycle-{self.cycle_count}"):
            if self.state is SystemState.STOPPED:
                return self._halted(ReasonCode.OPERATOR)
            if self.ctx.failure_breaker.is_tripped:
                return self._halted(ReasonCode.CYCLE_FAILURES)

            try:
                decision = self._run_cycle()
            except Exception as e:
                self.logger.error("Evaluation cycle failed", extra={
                    "error": str(e),
                    "cycle": self.cycle_count,
                    "consecutive_failures": self.ctx.failure_breaker.failure_count + 1,
                }, exc_info=True)
                if self.ctx.failure_breaker.record_failure(e):
                    self.ctx.state_machine.set_state(SystemState.ERROR, ReasonCode.CYCLE_FAILURES)
                    safe_send(self.ctx.alert_sink, AlertEvent(
                        title="Engine halted after repeated cycle failures",
                        severity=AlertSeverity.CRITICAL,
                        timestamp=self.ctx.clock.now(),
                        details={"last_error": self.ctx.failure_breaker.last_error},
                    ))
                    return self._halted(ReasonCode.CYCLE_FAILURES)
                return self._halted(ReasonCode.CYCLE_FAILURES, manage_existing=True)

            self.ctx.failure_breaker.record_success()
            return decision

    @log_performance(LogStream.SYSTEM)
    def _run_cycle(self) -> CycleDecision:
        snapshot = self.take_snapshot()
        now = snapshot.now

        if self.ctx.schedule.due(now):
            self._weekly_reset(now)

        dd_snap = self.ctx.tracker.update(snapshot.equity, snapshot.balance, now)
        dd = dd_snap.drawdown(self.config.drawdown.basis)

        cascade = self.ctx.cascade.evaluate(dd_snap, dd, snapshot.positions, self.ctx.executor, now)

        if cascade.close_all_required:
            self._liquidate(snapshot)

        self._sync_grid(snapshot)

        de_result = None
        hedge_locked = self.ctx.cascade.hedge_lock.is_locked
        if cascade.blocking_layer is LayerName.HARD_STOP:
            new_state, reason = SystemState.EMERGENCY, cascade.reason
        elif hedge_locked and self.ctx.de_escalation.enabled:
            de_result = self.ctx.de_escalation.step(snapshot)
            if de_result.completed:
                self.ctx.grid_book.reset()
                new_state, reason = SystemState.RECOVERY, ReasonCode.DE_ESCALATION_COMPLETE
            else:
                new_state, reason = SystemState.DE_ESCALATING, ReasonCode.DE_ESCALATION_ACTIVE
        elif hedge_locked:
            new_state, reason = SystemState.LOCKED, ReasonCode.HEDGE_ACTIVE
        elif cascade.blocked:
            new_state, reason = SystemState.PAUSED, cascade.reason
        elif snapshot.grid_positions:
            new_state, reason = SystemState.TRADING, cascade.reason
        else:
            new_state, reason = SystemState.IDLE, ReasonCode.NO_POSITIONS

        multiplier = lot_size = ZERO
        spacing = None
        allow_new = not cascade.blocked and new_state in ENTRY_STATES
        if allow_new:
            multiplier = self.ctx.sizing.multiplier(dd)
            lot_size = self.ctx.sizing.lot_for_multiplier(multiplier, cascade.size_factor)
            spacing = self.ctx.spacing.spacing(snapshot.atr, now)
            if not self.ctx.grid_book.is_built and snapshot.quote is not None:
                self.ctx.grid_book.build(snapshot.quote.mid, spacing, lot_size)

        changed = self.ctx.state_machine.set_state(new_state, reason, now)
        self._persist(force=changed, snapshot=dd_snap)

        decision = CycleDecision(
            state=self.state,
            allow_new_entries=allow_new,
            manage_existing=self.state is not SystemState.EMERGENCY,
            lot_multiplier=multiplier,
            lot_size=lot_size,
            spacing=spacing,
            cascade=cascade,
            de_escalation=de_result,
            drawdown=dd_snap,
            reason=reason,
        )
        self.logger.debug("Cycle complete", extra=decision.to_dict())
        return decision

    def take_snapshot(self) -> CycleSnapshot:
        """One consistent read of every collaborator."""
        return CycleSnapshot(
            now=self.ctx.clock.now(),
            equity=self.ctx.account.get_equity(),
            balance=self.ctx.account.get_balance(),
            quote=self.ctx.market.get_quote(),
            atr=self.ctx.market.get_atr(),
            positions=tuple(self.ctx.ledger.get_positions()),
            pending_orders=tuple(self.ctx.ledger.get_pending_orders()),
            previous_bar=self.ctx.market.get_previous_bar(),
        )

    # ========================================================================
    # STEPS
    # ========================================================================

    def _weekly_reset(self, now: datetime) -> None:
        self.logger.warning("Weekly administrative reset", extra={
            "reason": ReasonCode.WEEKLY_RESET.value,
            "clears_hard_stop": self.ctx.schedule.clears_hard_stop,
        })
        self.ctx.tracker.reset_high_water_mark()
        if self.ctx.schedule.clears_hard_stop and self.ctx.cascade.hard_stop.is_locked:
            self.ctx.cascade.hard_stop.administrative_reset(ReasonCode.WEEKLY_RESET.value)
        self.last_reset_time = now

    def _liquidate(self, snapshot: CycleSnapshot) -> None:
        report = self.ctx.executor.close_all(snapshot.positions, snapshot.pending_orders)
        self.ctx.cascade.hedge_lock.unlock()
        self.ctx.de_escalation.reset()
        self.ctx.grid_book.reset()
        if not report.complete:
            safe_send(self.ctx.alert_sink, AlertEvent(
                title="Liquidation incomplete after HardStop",
                severity=AlertSeverity.CRITICAL,
                timestamp=snapshot.now,
                details=report.to_dict(),
            ))

    def _sync_grid(self, snapshot: CycleSnapshot) -> None:
        if not self.ctx.grid_book.is_built:
            return
        self.ctx.grid_book.sync(
            {p.ticket for p in snapshot.grid_positions},
            {o.ticket for o in snapshot.pending_orders},
        )

    def _halted(self, reason: ReasonCode, manage_existing: bool = False) -> CycleDecision:
        return CycleDecision(
            state=self.state,
            allow_new_entries=False,
            manage_existing=manage_existing,
            reason=reason,
        )

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _persist(self, force: bool = False, snapshot: Optional[DrawdownSnapshot] = None) -> None:
        persistence = self.ctx.persistence
        if persistence is None:
            return
        snapshot = snapshot or self.ctx.tracker.last_snapshot
        if snapshot is None:
            return
        if not force and self.cycle_count % self.config.persistence.save_interval_cycles != 0:
            return
        persistence.save(self.build_persisted_state(snapshot))

    def build_persisted_state(self, snapshot: DrawdownSnapshot) -> PersistedState:
        cascade = self.ctx.cascade
        return PersistedState(
            timestamp=snapshot.last_update,
            equity=snapshot.current_equity,
            high_water_mark=snapshot.high_water_mark,
            daily_pl=snapshot.daily_pl,
            emergency_trigger_count=cascade.emergency_stop.trigger_count,
            hard_stop_trigger_count=cascade.hard_stop.trigger_count,
            last_reset_time=self.last_reset_time,
            hard_stop_locked=cascade.hard_stop.is_locked,
        )

    def get_status(self) -> Dict[str, Any]:
        last = self.ctx.tracker.last_snapshot
        return {
            "state": self.state.value,
            "state_since": self.ctx.state_machine.changed_at.isoformat(),
            "cycle_count": self.cycle_count,
            "consecutive_failures": self.ctx.failure_breaker.failure_count,
            "drawdown": last.to_dict() if last else None,
            "protections": self.ctx.cascade.get_status(),
            "de_escalation": self.ctx.de_escalation.get_status(),
            "sizing_recovery_mode": self.ctx.sizing.in_recovery_mode,
            "grid": self.ctx.grid_book.to_dict(),
        }
