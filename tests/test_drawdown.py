"""
Tests for drawdown tracking.

COVERAGE:
- drawdown_percent clamping
- High-water mark monotonicity
- Daily boundary reset (exactly once per crossing)
- Administrative HWM reset and restore
"""

from datetime import timedelta
from decimal import Decimal

from gridguard.config.schema import DrawdownBasis
from gridguard.risk.drawdown import DrawdownTracker, drawdown_percent
from tests.conftest import T0


class TestDrawdownPercent:

    def test_basic_decline(self):
        assert drawdown_percent(Decimal("10000"), Decimal("9000")) == Decimal("10")

    def test_gain_clamped_to_zero(self):
        assert drawdown_percent(Decimal("10000"), Decimal("10500")) == Decimal("0")

    def test_negative_equity_clamped_to_hundred(self):
        assert drawdown_percent(Decimal("10000"), Decimal("-50")) == Decimal("100")

    def test_non_positive_reference(self):
        assert drawdown_percent(Decimal("0"), Decimal("100")) == Decimal("0")


class TestDrawdownTracker:

    def test_first_update_initializes(self):
        """First sample seeds starting balance, HWM and day-start equity."""
        tracker = DrawdownTracker()
        snap = tracker.update(Decimal("10000"), Decimal("10000"), T0)

        assert snap.starting_balance == Decimal("10000")
        assert snap.high_water_mark == Decimal("10000")
        assert snap.daily_start_equity == Decimal("10000")
        assert snap.dd_from_hwm == Decimal("0")
        assert snap.day_rolled is False

    def test_hwm_never_decreases(self):
        """HWM only moves up while equity moves around."""
        tracker = DrawdownTracker()
        equities = ["10000", "10400", "9800", "10200", "9000", "10600", "10100"]
        previous = Decimal("0")
        for i, equity in enumerate(equities):
            snap = tracker.update(Decimal(equity), Decimal("10000"), T0 + timedelta(minutes=i))
            assert snap.high_water_mark >= previous
            previous = snap.high_water_mark

        assert tracker.high_water_mark == Decimal("10600")

    def test_drawdown_views(self):
        tracker = DrawdownTracker(starting_balance=Decimal("10000"))
        tracker.update(Decimal("12000"), Decimal("10000"), T0)
        snap = tracker.update(Decimal("9000"), Decimal("10000"), T0 + timedelta(minutes=1))

        assert snap.dd_from_hwm == Decimal("25")
        assert snap.dd_from_balance == Decimal("10")
        assert snap.drawdown(DrawdownBasis.HIGH_WATER_MARK) == Decimal("25")
        assert snap.drawdown(DrawdownBasis.BALANCE) == Decimal("10")

    def test_max_dd_reached_tracks_deepest(self):
        tracker = DrawdownTracker()
        tracker.update(Decimal("10000"), Decimal("10000"), T0)
        tracker.update(Decimal("8000"), Decimal("10000"), T0 + timedelta(minutes=1))
        snap = tracker.update(Decimal("9500"), Decimal("10000"), T0 + timedelta(minutes=2))

        assert snap.max_dd_reached == Decimal("20")
        assert snap.dd_from_hwm == Decimal("5")

    def test_daily_reset_once_per_crossing(self):
        """Several skipped days still produce exactly one reset."""
        tracker = DrawdownTracker()
        tracker.update(Decimal("10000"), Decimal("10000"), T0)
        tracker.update(Decimal("9500"), Decimal("10000"), T0 + timedelta(hours=1))

        # Cycles skipped for three days
        rolled = tracker.update(Decimal("9400"), Decimal("10000"), T0 + timedelta(days=3))
        again = tracker.update(Decimal("9300"), Decimal("10000"), T0 + timedelta(days=3, minutes=5))

        assert rolled.day_rolled is True
        assert rolled.daily_start_equity == Decimal("9400")
        assert rolled.dd_daily == Decimal("0")
        assert again.day_rolled is False
        assert again.daily_start_equity == Decimal("9400")

    def test_no_reset_before_boundary(self):
        tracker = DrawdownTracker()
        tracker.update(Decimal("10000"), Decimal("10000"), T0)
        snap = tracker.update(Decimal("9000"), Decimal("10000"), T0 + timedelta(hours=11))

        assert snap.day_rolled is False
        assert snap.dd_daily == Decimal("10")

    def test_reset_high_water_mark(self):
        tracker = DrawdownTracker()
        tracker.update(Decimal("10000"), Decimal("10000"), T0)
        tracker.update(Decimal("9000"), Decimal("10000"), T0 + timedelta(minutes=1))

        tracker.reset_high_water_mark()
        snap = tracker.update(Decimal("9000"), Decimal("10000"), T0 + timedelta(minutes=2))

        assert snap.high_water_mark == Decimal("9000")
        assert snap.dd_from_hwm == Decimal("0")
        assert snap.max_dd_reached == Decimal("0")

    def test_restore_never_lowers_hwm(self):
        tracker = DrawdownTracker()
        tracker.restore(Decimal("12000"))
        snap = tracker.update(Decimal("10800"), Decimal("10000"), T0)
        assert snap.high_water_mark == Decimal("12000")
        assert snap.dd_from_hwm == Decimal("10")

        tracker.restore(Decimal("11000"))
        assert tracker.high_water_mark == Decimal("12000")

    def test_history_is_bounded(self):
        tracker = DrawdownTracker(history_size=3)
        for i in range(5):
            tracker.update(Decimal(10000 + i), Decimal("10000"), T0 + timedelta(minutes=i))

        assert tracker.equity_history() == [Decimal("10002"), Decimal("10003"), Decimal("10004")]
