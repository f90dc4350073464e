"""
Tests for the four breaker layers.

COVERAGE:
- HardStop latch and manual-only recovery
- DailyLossLimit stickiness until the day boundary, including missed rollovers
- EmergencyStop hysteresis
- HedgeSoftLock sizing, fail-closed behaviour, unlock and re-arm
- Threshold validation at construction
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from gridguard.config.loader import ConfigurationError
from gridguard.execution.gateway import ExecutionErrorCode, OrderResult
from gridguard.risk.drawdown import DrawdownTracker
from gridguard.risk.protections import (
    DailyLossLimit,
    EmergencyAction,
    EmergencyStop,
    HardStop,
    HedgeSoftLock,
    ReasonCode,
    StatusKind,
)
from gridguard.state.models import Direction, PositionKind
from tests.conftest import T0, make_position


# ============================================================================
# HARD STOP
# ============================================================================

class TestHardStop:

    def test_default_warning_is_ninety_percent(self):
        stop = HardStop(Decimal("30"))
        assert stop.warning_threshold == Decimal("27.0")

    def test_below_warning_allows(self):
        stop = HardStop(Decimal("30"))
        decision = stop.check(Decimal("10"), T0)
        assert decision.blocked is False
        assert decision.reason is ReasonCode.NONE

    def test_warning_band_allows(self):
        stop = HardStop(Decimal("30"))
        decision = stop.check(Decimal("28"), T0)
        assert decision.blocked is False
        assert decision.reason is ReasonCode.HARD_STOP_WARNING
        assert stop.status.kind is StatusKind.WARNING

    def test_trigger_latches(self):
        """After triggering, every check blocks regardless of drawdown."""
        stop = HardStop(Decimal("30"))
        first = stop.check(Decimal("31"), T0)

        assert first.blocked is True
        assert first.newly_triggered is True
        assert first.reason is ReasonCode.HARD_STOP_TRIGGERED
        assert stop.trigger_count == 1

        for dd in ("20", "5", "0"):
            decision = stop.check(Decimal(dd), T0)
            assert decision.blocked is True
            assert decision.newly_triggered is False
            assert decision.reason is ReasonCode.HARD_STOP_LATCHED

        assert stop.trigger_count == 1

    def test_manual_reset_requires_confirmation(self):
        stop = HardStop(Decimal("30"))
        stop.check(Decimal("35"), T0)

        assert stop.manual_reset(False) is False
        assert stop.manual_reset("yes") is False
        assert stop.is_locked is True

        assert stop.manual_reset(True) is True
        assert stop.is_locked is False
        assert stop.check(Decimal("0"), T0).blocked is False

    def test_administrative_reset(self):
        stop = HardStop(Decimal("30"))
        stop.check(Decimal("35"), T0)
        stop.administrative_reset("WEEKLY_RESET")
        assert stop.is_locked is False

    def test_disabled_never_triggers(self):
        stop = HardStop(Decimal("30"), enabled=False)
        assert stop.check(Decimal("90"), T0).blocked is False
        assert stop.is_locked is False

    def test_restore_lock(self):
        stop = HardStop(Decimal("30"))
        stop.restore_lock(T0)
        assert stop.check(Decimal("0"), T0).reason is ReasonCode.HARD_STOP_LATCHED

    def test_warning_must_be_below_trigger(self):
        with pytest.raises(ConfigurationError):
            HardStop(Decimal("30"), Decimal("30"))


# ============================================================================
# DAILY LOSS LIMIT
# ============================================================================

class TestDailyLossLimit:

    def test_trigger_stays_active_until_next_day(self):
        """10000 start, 5% limit: 9400 triggers, 9600 stays blocked, next day clears."""
        tracker = DrawdownTracker()
        limit = DailyLossLimit(Decimal("5"))

        assert limit.check(tracker.update(Decimal("10000"), Decimal("10000"), T0)).blocked is False

        hit = limit.check(tracker.update(Decimal("9400"), Decimal("10000"), T0 + timedelta(hours=1)))
        assert hit.blocked is True
        assert hit.newly_triggered is True
        assert hit.reason is ReasonCode.DAILY_LOSS_TRIGGERED
        assert limit.cooldown_end == T0.replace(hour=0) + timedelta(days=1)

        recovered = limit.check(tracker.update(Decimal("9600"), Decimal("10000"), T0 + timedelta(hours=2)))
        assert recovered.blocked is True
        assert recovered.newly_triggered is False
        assert recovered.reason is ReasonCode.DAILY_LOSS_ACTIVE

        next_day = limit.check(tracker.update(Decimal("9600"), Decimal("10000"), T0 + timedelta(hours=12, minutes=30)))
        assert next_day.blocked is False
        assert limit.is_triggered is False
        assert limit.cooldown_end is None

    def test_clears_when_rollover_cycle_was_not_seen(self):
        """The day_rolled snapshot never reaches the layer; the stored boundary still clears it."""
        tracker = DrawdownTracker()
        limit = DailyLossLimit(Decimal("5"))
        limit.check(tracker.update(Decimal("10000"), Decimal("10000"), T0))
        assert limit.check(tracker.update(Decimal("9400"), Decimal("10000"), T0 + timedelta(hours=1))).blocked

        rolled = tracker.update(Decimal("9400"), Decimal("10000"), T0 + timedelta(hours=13))
        assert rolled.day_rolled is True

        later = tracker.update(Decimal("9450"), Decimal("10000"), T0 + timedelta(hours=14))
        assert later.day_rolled is False

        decision = limit.check(later)
        assert decision.blocked is False
        assert limit.is_triggered is False

    def test_warning(self):
        tracker = DrawdownTracker()
        limit = DailyLossLimit(Decimal("5"))
        limit.check(tracker.update(Decimal("10000"), Decimal("10000"), T0))

        decision = limit.check(tracker.update(Decimal("9550"), Decimal("10000"), T0 + timedelta(minutes=1)))
        assert decision.blocked is False
        assert decision.reason is ReasonCode.DAILY_LOSS_WARNING
        assert limit.status.kind is StatusKind.WARNING

    def test_disabled(self):
        tracker = DrawdownTracker()
        limit = DailyLossLimit(Decimal("5"), enabled=False)
        limit.check(tracker.update(Decimal("10000"), Decimal("10000"), T0))
        assert limit.check(tracker.update(Decimal("5000"), Decimal("10000"), T0)).blocked is False


# ============================================================================
# EMERGENCY STOP
# ============================================================================

class TestEmergencyStop:

    def test_inactive_below_warning(self):
        stop = EmergencyStop(Decimal("10"), Decimal("8"))
        decision = stop.check(Decimal("5"), T0)
        assert decision.action is EmergencyAction.NONE
        assert decision.blocked is False

    def test_warning_reduces_size(self):
        stop = EmergencyStop(Decimal("10"), Decimal("8"))
        decision = stop.check(Decimal("8.5"), T0)
        assert decision.action is EmergencyAction.REDUCE_SIZE
        assert decision.blocked is False
        assert stop.size_factor(decision.action) == Decimal("0.5")

    def test_hysteresis_band(self):
        """W=8, T=10: triggered at 11, acts for every dd in (4, 10], clears below 4."""
        stop = EmergencyStop(Decimal("10"), Decimal("8"))

        first = stop.check(Decimal("11"), T0)
        assert first.action is EmergencyAction.STOP_NEW
        assert first.blocked is True
        assert first.newly_triggered is True

        for dd in ("10", "9", "8"):
            decision = stop.check(Decimal(dd), T0)
            assert decision.action is EmergencyAction.STOP_NEW
            assert decision.newly_triggered is False

        for dd in ("7.9", "6", "5", "4.1", "4"):
            decision = stop.check(Decimal(dd), T0)
            assert decision.action is EmergencyAction.REDUCE_SIZE
            assert decision.blocked is False
        assert stop.status.kind is StatusKind.COOLDOWN

        cleared = stop.check(Decimal("3.9"), T0)
        assert cleared.action is EmergencyAction.NONE
        assert cleared.reason is ReasonCode.EMERGENCY_CLEARED
        assert stop.status.kind is StatusKind.INACTIVE

        # Back in the band from INACTIVE: below warning, nothing happens
        assert stop.check(Decimal("6"), T0).action is EmergencyAction.NONE

    def test_retrigger_from_cooldown(self):
        stop = EmergencyStop(Decimal("10"), Decimal("8"))
        stop.check(Decimal("11"), T0)
        stop.check(Decimal("6"), T0)

        again = stop.check(Decimal("10.5"), T0)
        assert again.newly_triggered is True
        assert stop.trigger_count == 2

    def test_restore_trigger_count_never_lowers(self):
        stop = EmergencyStop(Decimal("10"), Decimal("8"))
        stop.restore_trigger_count(4)
        stop.restore_trigger_count(2)
        assert stop.trigger_count == 4

    def test_warning_must_be_below_trigger(self):
        with pytest.raises(ConfigurationError):
            EmergencyStop(Decimal("10"), Decimal("12"))


# ============================================================================
# HEDGE SOFT LOCK
# ============================================================================

class TestHedgeSoftLock:

    def test_below_trigger_allows(self, executor, broker):
        lock = HedgeSoftLock(Decimal("20"))
        decision = lock.check(Decimal("10"), [], executor, Decimal("10000"), T0)
        assert decision.blocked is False
        assert broker.requests == []

    def test_hedge_neutralizes_net_exposure(self, executor, broker):
        """BUY 0.05 + SELL 0.02 -> one SELL 0.03 hedge."""
        positions = [
            make_position(1, Direction.BUY, "0.05"),
            make_position(2, Direction.SELL, "0.02"),
        ]
        lock = HedgeSoftLock(Decimal("20"))
        decision = lock.check(Decimal("21"), positions, executor, Decimal("7900"), T0)

        assert decision.blocked is True
        assert decision.newly_triggered is True
        assert decision.reason is ReasonCode.HEDGE_LOCKED

        orders = broker.calls("place_market")
        assert len(orders) == 1
        assert orders[0].direction is Direction.SELL
        assert orders[0].volume == Decimal("0.03")
        assert orders[0].kind is PositionKind.HEDGE

        state = lock.state
        assert state.is_locked is True
        assert state.hedge_order_id == 1000
        assert state.locked_equity == Decimal("7900")

    def test_net_short_hedges_with_buy(self, executor, broker):
        lock = HedgeSoftLock(Decimal("20"))
        lock.check(Decimal("21"), [make_position(1, Direction.SELL, "0.04")], executor, Decimal("7900"), T0)
        assert broker.calls("place_market")[0].direction is Direction.BUY

    def test_locked_blocks_without_new_orders(self, executor, broker):
        lock = HedgeSoftLock(Decimal("20"))
        lock.check(Decimal("21"), [make_position(1, Direction.BUY, "0.05")], executor, Decimal("7900"), T0)

        decision = lock.check(Decimal("0"), [], executor, Decimal("10000"), T0)
        assert decision.blocked is True
        assert decision.reason is ReasonCode.HEDGE_ACTIVE
        assert len(broker.calls("place_market")) == 1

    def test_flat_exposure_locks_without_order(self, executor, broker):
        positions = [
            make_position(1, Direction.BUY, "0.05"),
            make_position(2, Direction.SELL, "0.05"),
        ]
        lock = HedgeSoftLock(Decimal("20"))
        decision = lock.check(Decimal("21"), positions, executor, Decimal("7900"), T0)

        assert decision.blocked is True
        assert decision.reason is ReasonCode.HEDGE_LOCKED_FLAT
        assert lock.state.hedge_order_id is None
        assert broker.requests == []

    def test_failed_hedge_does_not_lock(self, executor, broker):
        """Fail-closed: a rejected hedge leaves the lock unset."""
        broker.script(OrderResult.fail(ExecutionErrorCode.NO_MONEY, "margin"))
        lock = HedgeSoftLock(Decimal("20"))
        decision = lock.check(Decimal("21"), [make_position(1, Direction.BUY, "0.05")], executor, Decimal("7900"), T0)

        assert decision.blocked is False
        assert decision.reason is ReasonCode.HEDGE_FAILED
        assert lock.is_locked is False
        assert lock.failed_attempts == 1

        # Next cycle tries again
        retry = lock.check(Decimal("21"), [make_position(1, Direction.BUY, "0.05")], executor, Decimal("7900"), T0)
        assert retry.reason is ReasonCode.HEDGE_LOCKED

    def test_unlock(self, executor):
        lock = HedgeSoftLock(Decimal("20"))
        lock.check(Decimal("21"), [], executor, Decimal("7900"), T0)
        lock.unlock()

        assert lock.is_locked is False
        assert lock.state.hedge_order_id is None

    def test_unlock_disarms_until_dd_drops_below_trigger(self, executor, broker):
        lock = HedgeSoftLock(Decimal("20"))
        lock.check(Decimal("21"), [], executor, Decimal("7900"), T0)
        lock.unlock()
        assert lock.armed is False

        # Still above the trigger: no second lock on the flat book
        decision = lock.check(Decimal("21"), [], executor, Decimal("7900"), T0)
        assert decision.blocked is False
        assert decision.reason is ReasonCode.HEDGE_REARM_PENDING
        assert lock.is_locked is False

        assert lock.check(Decimal("19"), [], executor, Decimal("8100"), T0).blocked is False
        assert lock.armed is True

        relock = lock.check(Decimal("22"), [make_position(1, Direction.BUY, "0.05")], executor, Decimal("7800"), T0)
        assert relock.reason is ReasonCode.HEDGE_LOCKED
        assert len(broker.calls("place_market")) == 1

    def test_state_is_a_copy(self, executor):
        lock = HedgeSoftLock(Decimal("20"))
        lock.check(Decimal("21"), [], executor, Decimal("7900"), T0)
        lock.state.is_locked = False
        assert lock.is_locked is True
