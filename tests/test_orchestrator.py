"""
Integration tests for the state orchestrator.

Drives full evaluation cycles against the scriptable FakeBroker.

COVERAGE:
- IDLE / TRADING entry decisions with sizing and spacing
- HardStop: liquidation once, EMERGENCY until manual reset
- DailyLossLimit -> PAUSED (existing positions still managed), cleared after a HardStop spanning days
- Hedge lock -> DE_ESCALATING -> RECOVERY -> IDLE, without relocking at the locked equity
- Consecutive cycle failures -> ERROR
- Persistence of the HardStop lock across restarts
- Weekly administrative reset
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from gridguard.config.schema import EngineConfig
from gridguard.risk.protections import LayerName, ReasonCode
from gridguard.runtime import StateOrchestrator, SystemState, build_context
from gridguard.state.models import Direction, PendingOrderInfo, PositionKind
from gridguard.time.clock import BacktestClock
from tests.conftest import T0, make_position
from tests.fixtures.fake_broker import FakeBroker


class RecordingSink:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)


class Harness:
    """Orchestrator wired to one FakeBroker and a BacktestClock."""

    def __init__(self, config: EngineConfig = None, start=T0):
        self.config = config or EngineConfig()
        self.broker = FakeBroker()
        self.clock = BacktestClock(start)
        self.sink = RecordingSink()
        self.ctx = build_context(
            self.config,
            market=self.broker,
            account=self.broker,
            ledger=self.broker,
            gateway=self.broker,
            clock=self.clock,
            alert_sink=self.sink,
            sleep=lambda s: None,
        )
        self.orchestrator = StateOrchestrator(self.ctx)

    def cycle(self, equity=None, minutes=1):
        if equity is not None:
            self.broker.equity = Decimal(str(equity))
        self.clock.advance(timedelta(minutes=minutes))
        return self.orchestrator.run_cycle()


@pytest.fixture
def harness():
    h = Harness()
    h.orchestrator.start()
    return h


class TestEntryDecisions:

    def test_start_idle(self, harness):
        assert harness.orchestrator.state is SystemState.IDLE

    def test_idle_allows_entries(self, harness):
        decision = harness.cycle()

        assert decision.state is SystemState.IDLE
        assert decision.allow_new_entries is True
        assert decision.manage_existing is True
        assert decision.lot_multiplier == Decimal("1")
        assert decision.lot_size == Decimal("0.01")
        assert decision.spacing.points == Decimal("750")
        assert harness.ctx.grid_book.is_built
        assert harness.ctx.grid_book.base_price == Decimal("2000.10")

    def test_grid_positions_mean_trading(self, harness):
        harness.broker.positions = [make_position(1, Direction.BUY, "0.01")]
        decision = harness.cycle()

        assert decision.state is SystemState.TRADING
        assert decision.allow_new_entries is True

    def test_emergency_reduce_size_still_trades(self):
        h = Harness(EngineConfig(daily_loss={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        decision = h.cycle(equity="8800")  # 12% dd

        assert decision.allow_new_entries is True
        assert decision.cascade.size_factor == Decimal("0.5")

    def test_degraded_atr_does_not_block(self, harness):
        harness.broker.atr = None
        decision = harness.cycle()

        assert decision.allow_new_entries is True
        assert decision.spacing.degraded is True


class TestHardStopFlow:

    def test_liquidates_once_and_latches(self, harness):
        harness.cycle(equity="10000")
        harness.broker.positions = [make_position(1, Direction.BUY, "0.05", profit="-3000")]
        harness.broker.pending_orders = [PendingOrderInfo(9, Direction.BUY, Decimal("0.01"), Decimal("1990"))]

        decision = harness.cycle(equity="6900")

        assert decision.state is SystemState.EMERGENCY
        assert decision.allow_new_entries is False
        assert decision.manage_existing is False
        assert decision.cascade.close_all_required is True
        assert harness.broker.calls("cancel_order") == [9]
        assert harness.broker.calls("close_position") == [(1, None)]

        # Equity recovers; still latched, no second liquidation
        harness.broker.positions = []
        harness.broker.pending_orders = []
        again = harness.cycle(equity="10000")
        assert again.state is SystemState.EMERGENCY
        assert again.cascade.reason is ReasonCode.HARD_STOP_LATCHED
        assert len(harness.broker.calls("close_position")) == 1

    def test_manual_reset(self, harness):
        harness.cycle(equity="10000")
        harness.cycle(equity="6900")

        assert harness.orchestrator.manual_reset_hard_stop(False) is False
        assert harness.orchestrator.state is SystemState.EMERGENCY

        assert harness.orchestrator.manual_reset_hard_stop(True) is True
        assert harness.orchestrator.state is SystemState.IDLE

    def test_critical_alert_sent(self, harness):
        harness.cycle(equity="10000")
        harness.cycle(equity="6900")
        assert "HardStop triggered" in [e.title for e in harness.sink.events]


class TestPausedFlow:

    def test_daily_loss_pauses(self, harness):
        harness.cycle(equity="10000")
        harness.broker.positions = [make_position(1, Direction.BUY, "0.05")]
        decision = harness.cycle(equity="9400")

        assert decision.state is SystemState.PAUSED
        assert decision.cascade.blocking_layer is LayerName.DAILY_LOSS
        assert decision.allow_new_entries is False
        assert decision.manage_existing is True
        assert decision.lot_size == Decimal("0")

    def test_daily_loss_clears_after_days_under_hard_stop(self):
        h = Harness(EngineConfig(hedge_lock={"enabled": False}, emergency_stop={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        assert h.cycle(equity="9400").cascade.blocking_layer is LayerName.DAILY_LOSS

        assert h.cycle(equity="6900").state is SystemState.EMERGENCY
        # Day boundaries pass while the HardStop short-circuits the cascade
        h.cycle(equity="6900", minutes=24 * 60)
        h.cycle(equity="6900", minutes=24 * 60)

        assert h.orchestrator.manual_reset_hard_stop(True) is True
        decision = h.cycle(equity="7100")

        assert decision.drawdown.daily_start_equity == Decimal("6900")
        assert h.ctx.cascade.daily_loss.is_triggered is False
        assert decision.cascade.blocked is False
        assert decision.state is SystemState.IDLE
        assert decision.allow_new_entries is True

    def test_emergency_stop_new_pauses(self):
        h = Harness(EngineConfig(daily_loss={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        decision = h.cycle(equity="8400")  # 16% dd

        assert decision.state is SystemState.PAUSED
        assert decision.cascade.blocking_layer is LayerName.EMERGENCY_STOP
        assert decision.allow_new_entries is False
        assert decision.manage_existing is True


class TestHedgeFlow:

    @pytest.fixture
    def hedged(self):
        h = Harness(EngineConfig(daily_loss={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        return h

    def test_hedge_then_de_escalate(self, hedged):
        grid = make_position(1, Direction.BUY, "0.05", profit="-2100")
        hedged.broker.positions = [grid]

        decision = hedged.cycle(equity="7900")

        assert decision.state is SystemState.DE_ESCALATING
        assert decision.cascade.blocking_layer is LayerName.HEDGE_LOCK
        assert decision.allow_new_entries is False
        hedge_order = hedged.broker.calls("place_market")[0]
        assert hedge_order.direction is Direction.SELL
        assert hedge_order.volume == Decimal("0.05")

        # Grid closed out; only the hedge remains
        hedge = make_position(1000, Direction.SELL, "0.05", kind=PositionKind.HEDGE)
        hedged.broker.positions = [hedge]
        done = hedged.cycle(equity="9900")

        assert done.state is SystemState.RECOVERY
        assert done.de_escalation.completed is True
        assert hedged.ctx.cascade.hedge_lock.is_locked is False
        assert (1000, None) in hedged.broker.calls("close_position")

        hedged.broker.positions = []
        after = hedged.cycle(equity="9900")
        assert after.state is SystemState.IDLE
        assert after.allow_new_entries is True

    def _complete_at_locked_equity(self, h):
        h.broker.positions = [make_position(1, Direction.BUY, "0.05", profit="-2100")]
        assert h.cycle(equity="7900").state is SystemState.DE_ESCALATING

        # Grid paid down but equity unchanged: drawdown still above the hedge trigger
        h.broker.positions = [make_position(1000, Direction.SELL, "0.05", kind=PositionKind.HEDGE)]
        assert h.cycle(equity="7900").state is SystemState.RECOVERY
        h.broker.positions = []

    def test_recovery_at_locked_equity_does_not_relock(self, hedged):
        self._complete_at_locked_equity(hedged)

        for _ in range(3):
            decision = hedged.cycle(equity="7900")
            assert decision.state is SystemState.PAUSED
            assert decision.cascade.blocking_layer is LayerName.EMERGENCY_STOP
            assert decision.manage_existing is True
            assert hedged.ctx.cascade.hedge_lock.is_locked is False

        titles = [e.title for e in hedged.sink.events]
        assert titles.count("Hedge lock engaged") == 1
        assert len(hedged.broker.calls("place_market")) == 1

        resumed = hedged.cycle(equity="9700")
        assert resumed.state is SystemState.IDLE
        assert resumed.allow_new_entries is True
        assert hedged.ctx.cascade.hedge_lock.armed is True

    def test_recovery_returns_to_idle_without_emergency_layer(self):
        h = Harness(EngineConfig(daily_loss={"enabled": False}, emergency_stop={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        self._complete_at_locked_equity(h)

        decision = h.cycle(equity="7900")
        assert decision.state is SystemState.IDLE
        assert decision.allow_new_entries is True
        assert decision.cascade.decision_for(LayerName.HEDGE_LOCK).reason is ReasonCode.HEDGE_REARM_PENDING

    def test_hedge_lock_without_de_escalation(self):
        h = Harness(EngineConfig(daily_loss={"enabled": False}, de_escalation={"enabled": False}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        h.broker.positions = [make_position(1, Direction.BUY, "0.05")]

        assert h.cycle(equity="7900").state is SystemState.LOCKED


class TestFailureHandling:

    def test_repeated_failures_move_to_error(self, harness):
        harness.broker.raise_on_read = RuntimeError("feed down")
        for _ in range(4):
            decision = harness.cycle()
            assert decision.allow_new_entries is False
            assert decision.manage_existing is True
            assert harness.orchestrator.state is SystemState.IDLE

        decision = harness.cycle()
        assert decision.state is SystemState.ERROR
        assert decision.manage_existing is False
        assert "Engine halted after repeated cycle failures" in [e.title for e in harness.sink.events]

        # Feed back, still halted until acknowledged
        harness.broker.raise_on_read = None
        assert harness.cycle().reason is ReasonCode.CYCLE_FAILURES

        harness.orchestrator.reset_error()
        assert harness.cycle().allow_new_entries is True

    def test_stop_and_resume(self, harness):
        harness.orchestrator.stop()
        decision = harness.cycle()
        assert decision.state is SystemState.STOPPED
        assert decision.allow_new_entries is False

        harness.orchestrator.resume()
        assert harness.cycle().state is SystemState.IDLE


class TestPersistenceAcrossRestart:

    def test_hard_stop_lock_survives_restart(self, tmp_path):
        config = EngineConfig(persistence={"enabled": True, "state_dir": str(tmp_path)})
        first = Harness(config)
        first.orchestrator.start()
        first.cycle(equity="10000")
        first.cycle(equity="6900")
        assert first.orchestrator.state is SystemState.EMERGENCY

        second = Harness(config, start=first.clock.now() + timedelta(hours=1))
        assert second.orchestrator.start() is SystemState.EMERGENCY
        assert second.ctx.cascade.hard_stop.is_locked is True
        assert second.ctx.cascade.hard_stop.trigger_count == 1
        assert second.ctx.tracker.high_water_mark == Decimal("10000")

    def test_stale_state_ignored(self, tmp_path):
        config = EngineConfig(persistence={"enabled": True, "state_dir": str(tmp_path)})
        first = Harness(config)
        first.orchestrator.start()
        first.cycle(equity="10000")
        first.cycle(equity="6900")

        second = Harness(config, start=first.clock.now() + timedelta(hours=30))
        assert second.orchestrator.start() is SystemState.IDLE


class TestWeeklyReset:

    def test_resets_high_water_mark(self):
        h = Harness(EngineConfig(schedule={"weekly_reset_enabled": True}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        h.cycle(equity="11000")
        h.cycle(equity="10500")

        h.clock.set_time(datetime(2024, 1, 8, 0, 30, tzinfo=timezone.utc))
        decision = h.orchestrator.run_cycle()

        assert decision.drawdown.high_water_mark == Decimal("10500")
        assert decision.drawdown.dd_from_hwm == Decimal("0")
        assert h.orchestrator.last_reset_time == datetime(2024, 1, 8, 0, 30, tzinfo=timezone.utc)

    def test_clears_hard_stop_only_when_configured(self):
        h = Harness(EngineConfig(schedule={"weekly_reset_enabled": True, "weekly_reset_clears_hard_stop": True}))
        h.orchestrator.start()
        h.cycle(equity="10000")
        h.cycle(equity="6900")
        assert h.ctx.cascade.hard_stop.is_locked

        h.clock.set_time(datetime(2024, 1, 8, 0, 30, tzinfo=timezone.utc))
        decision = h.orchestrator.run_cycle()

        assert h.ctx.cascade.hard_stop.is_locked is False
        assert decision.state is not SystemState.EMERGENCY


class TestStatus:

    def test_get_status(self, harness):
        harness.cycle()
        status = harness.orchestrator.get_status()

        assert status["state"] == "IDLE"
        assert status["cycle_count"] == 1
        assert status["protections"]["hard_stop"]["name"] == "HardStop"
        assert status["grid"]["base_price"] == "2000.10"
