"""
Adaptive sizing - drawdown -> lot multiplier.

MULTIPLIER CURVE (start=S, full=F, floor=m):
    dd <= 0        -> 1.0, or recovery_boost while in recovery mode
    0 < dd < S     -> 1.0
    S <= dd < F    -> 1.0 - (dd - S) / (F - S) * (1 - m)
    dd >= F        -> m

Recovery mode is flagged the first time dd enters the reduction band and
cleared once dd drops back below S. The multiplier for a cycle is computed
before the flag is updated for that cycle.

LOT SIZE:
    lot = quantize(base_lot * multiplier * extra_factor)

Quantization to the lot step and clamping to broker min/max always happen
last, never before the multiplier is applied.
"""

from __future__ import annotations

from decimal import Decimal

from gridguard.config.schema import SizingConfig
from gridguard.market.instrument import InstrumentSpec
from gridguard.logging import get_logger, LogStream

ONE = Decimal("1")


class AdaptiveSizingEngine:
    """
    Maps drawdown to a position-size multiplier.

    Example:
        engine = AdaptiveSizingEngine(SizingConfig(), spec)
        engine.multiplier(Decimal("10"))   # -> 0.625
    """

    def __init__(self, config: SizingConfig, instrument: InstrumentSpec):
        self.base_lot = config.base_lot
        self.reduction_start = config.reduction_start
        self.reduction_full = config.reduction_full
        self.min_multiplier = config.min_multiplier
        self.recovery_boost = config.recovery_boost
        self.instrument = instrument
        self.in_recovery_mode = False
        self.logger = get_logger(LogStream.RISK)

    def curve(self, dd: Decimal) -> Decimal:
        """Pure multiplier for *dd*, ignoring recovery mode."""
        if dd < self.reduction_start:
            return ONE
        if dd >= self.reduction_full:
            return self.min_multiplier
        progress = (dd - self.reduction_start) / (self.reduction_full - self.reduction_start)
        return ONE - progress * (ONE - self.min_multiplier)

    def multiplier(self, dd: Decimal) -> Decimal:
        """Multiplier for this cycle; updates the recovery-mode flag."""
        if dd <= 0 and self.in_recovery_mode:
            value = self.recovery_boost
        else:
            value = self.curve(dd)

        if dd >= self.reduction_start:
            if not self.in_recovery_mode:
                self.logger.info("Sizing reduction engaged", extra={
                    "dd": str(dd),
                    "multiplier": str(value),
                })
            self.in_recovery_mode = True
        elif self.in_recovery_mode:
            self.logger.info("Sizing reduction released", extra={"dd": str(dd)})
            self.in_recovery_mode = False

        return value

    def lot_size(self, dd: Decimal, extra_factor: Decimal = ONE) -> Decimal:
        return self.lot_for_multiplier(self.multiplier(dd), extra_factor)

    def lot_for_multiplier(self, multiplier: Decimal, extra_factor: Decimal = ONE) -> Decimal:
        raw = self.base_lot * multiplier * extra_factor
        return self.instrument.quantize_lot(raw)
