"""
Grid spacing from volatility.

    fixed mode:    spacing = fixed_spacing_points
    dynamic mode:  spacing = clamp(atr_points * atr_multiplier, min, max)

A missing or non-positive ATR reading never fails the cycle: the engine
falls back to the fixed value and reports degraded=True. The degraded
warning is logged at the start of each degraded episode and then at most
once per degraded_log_interval_seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from gridguard.config.schema import GridConfig
from gridguard.market.instrument import InstrumentSpec
from gridguard.state.models import Direction
from gridguard.logging import get_logger, LogStream


class SpacingSource(str, Enum):
    FIXED = "FIXED"
    ATR = "ATR"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class SpacingResult:
    points: Decimal
    price_distance: Decimal
    source: SpacingSource
    degraded: bool = False
    raw_points: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "points": str(self.points),
            "price_distance": str(self.price_distance),
            "source": self.source.value,
            "degraded": self.degraded,
            "raw_points": str(self.raw_points) if self.raw_points is not None else None,
        }


class GridSpacingEngine:
    """Computes grid spacing, level prices and level lots."""

    def __init__(self, config: GridConfig, instrument: InstrumentSpec):
        self.config = config
        self.instrument = instrument
        self.logger = get_logger(LogStream.GRID)
        self._degraded = False
        self._last_degraded_log: Optional[datetime] = None

    def spacing(self, atr: Optional[Decimal], now: Optional[datetime] = None) -> SpacingResult:
        """
        Args:
            atr: Current ATR reading in price units (None if unavailable)
            now: Cycle timestamp, used to throttle the degraded warning
        """
        if not self.config.dynamic_spacing:
            return self._fixed(SpacingSource.FIXED)

        if atr is None or atr <= 0:
            self._log_degraded(atr, now)
            return self._fixed(SpacingSource.FALLBACK, degraded=True)

        if self._degraded:
            self.logger.info("ATR reading restored - dynamic spacing resumed", extra={"atr": str(atr)})
            self._degraded = False
            self._last_degraded_log = None

        raw = self.instrument.price_to_points(atr) * self.config.atr_multiplier
        points = min(max(raw, self.config.min_dynamic_spacing), self.config.max_dynamic_spacing)
        return SpacingResult(
            points=points,
            price_distance=self.instrument.points_to_price(points),
            source=SpacingSource.ATR,
            raw_points=raw,
        )

    def _fixed(self, source: SpacingSource, degraded: bool = False) -> SpacingResult:
        points = self.config.fixed_spacing_points
        return SpacingResult(
            points=points,
            price_distance=self.instrument.points_to_price(points),
            source=source,
            degraded=degraded,
        )

    def _log_degraded(self, atr: Optional[Decimal], now: Optional[datetime]) -> None:
        interval = timedelta(seconds=self.config.degraded_log_interval_seconds)
        episode_start = not self._degraded
        due = (
            now is None
            or self._last_degraded_log is None
            or now - self._last_degraded_log >= interval
        )
        self._degraded = True
        if episode_start or due:
            self._last_degraded_log = now
            self.logger.warning("ATR unavailable - using fixed spacing", extra={
                "atr": str(atr) if atr is not None else None,
                "fixed_spacing_points": str(self.config.fixed_spacing_points),
                "episode_start": episode_start,
            })

    @property
    def degraded(self) -> bool:
        return self._degraded

    # ========================================================================
    # LEVELS
    # ========================================================================

    def level_price(self, base_price: Decimal, index: int, direction: Direction, spacing: SpacingResult) -> Decimal:
        """Buy levels step down from base, sell levels step up."""
        offset = spacing.price_distance * index
        if direction is Direction.BUY:
            return self.instrument.round_price(base_price - offset)
        return self.instrument.round_price(base_price + offset)

    def level_lot(self, index: int, base_lot: Decimal) -> Decimal:
        raw = base_lot * self.config.level_multiplier ** index
        return self.instrument.quantize_lot(raw)
