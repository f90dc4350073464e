"""
Average True Range from OHLC bars.

ATR is returned in PRICE units; the spacing engine converts it to points
with the instrument's point size.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import pandas as pd

from gridguard.logging import get_logger, LogStream

logger = get_logger(LogStream.DATA)

REQUIRED_COLUMNS = ("high", "low", "close")


def true_range(bars: pd.DataFrame) -> pd.Series:
    """True range per bar: max(high-low, |high-prev_close|, |low-prev_close|)."""
    prev_close = bars["close"].shift(1)
    ranges = pd.concat(
        [
            bars["high"] - bars["low"],
            (bars["high"] - prev_close).abs(),
            (bars["low"] - prev_close).abs(),
        ],
        axis=1,
    )
    return ranges.max(axis=1)


def compute_atr(bars: Optional[pd.DataFrame], period: int = 14) -> Optional[Decimal]:
    """
    Simple rolling-mean ATR over the last *period* bars.

    Returns None when there are not enough bars or the frame is malformed;
    callers treat None as "volatility unavailable".
    """
    if bars is None or bars.empty:
        return None
    missing = [c for c in REQUIRED_COLUMNS if c not in bars.columns]
    if missing:
        logger.warning("ATR input missing columns", extra={"missing": missing})
        return None
    if len(bars) < period + 1:
        return None

    tr = true_range(bars.astype({c: float for c in REQUIRED_COLUMNS}))
    atr = tr.rolling(window=period).mean().iloc[-1]
    if pd.isna(atr):
        return None
    return Decimal(str(round(float(atr), 10)))
