# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from gridguard.execution.executor import OrderExecutor
from gridguard.execution.retry import RetryPolicy
from gridguard.market.instrument import InstrumentSpec
from gridguard.risk.drawdown import DrawdownSnapshot
from gridguard.state.models import Direction, PositionInfo, PositionKind
from tests.fixtures.fake_broker import FakeBroker


# Wednesday, mid-session
T0 = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)


# -------------------------
# Builders
# -------------------------

def make_position(
    ticket: int,
    direction: Direction,
    volume,
    profit="0",
    kind: PositionKind = PositionKind.GRID,
    open_price="2000.00",
) -> PositionInfo:
    return PositionInfo(
        ticket=ticket,
        direction=direction,
        volume=Decimal(str(volume)),
        open_price=Decimal(str(open_price)),
        profit=Decimal(str(profit)),
        kind=kind,
    )


def make_dd_snapshot(
    equity="10000",
    daily_start="10000",
    hwm: Optional[str] = None,
    now: datetime = T0,
    day_rolled: bool = False,
) -> DrawdownSnapshot:
    equity = Decimal(str(equity))
    hwm = Decimal(str(hwm)) if hwm is not None else equity
    return DrawdownSnapshot(
        current_equity=equity,
        current_balance=equity,
        starting_balance=hwm,
        high_water_mark=hwm,
        daily_start_equity=Decimal(str(daily_start)),
        dd_from_balance=Decimal("0"),
        dd_from_hwm=Decimal("0"),
        dd_daily=Decimal("0"),
        max_dd_reached=Decimal("0"),
        last_update=now,
        next_daily_reset=None,
        day_rolled=day_rolled,
    )


# -------------------------
# Fixtures
# -------------------------

@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def instrument() -> InstrumentSpec:
    return InstrumentSpec()


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def executor(broker, instrument, sleeps) -> OrderExecutor:
    policy = RetryPolicy(max_attempts=3, delay_seconds=0.5, backoff_multiplier=2.0, sleep=sleeps.append)
    return OrderExecutor(broker, policy, instrument)
