"""
Instrument rules and volatility measurement.

Usage:
    from gridguard.market import InstrumentSpec, compute_atr

    spec = InstrumentSpec.from_config(config.instrument)
    lot = spec.quantize_lot(raw_lot)
    atr = compute_atr(bars_df, period=14)
"""

from .instrument import InstrumentSpec
from .volatility import compute_atr, true_range

__all__ = [
    'InstrumentSpec',
    'compute_atr',
    'true_range',
]
