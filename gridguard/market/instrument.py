"""
Instrument properties - contract rules for the traded symbol.

Stores the broker-side constraints every order must respect:
- Point size (price value of one point)
- Lot step, min lot, max lot
- Contract size (profit per 1.0 price move per lot)

Quantization is always the LAST step of any lot computation: multipliers are
applied to the raw value first, then the result is floored to the lot step
and clamped to the broker limits.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Tuple

from gridguard.config.schema import InstrumentConfig


@dataclass(frozen=True)
class InstrumentSpec:
    """
    Complete properties for the traded instrument.

    Example:
        spec = InstrumentSpec(symbol="XAUUSD", point=Decimal("0.01"),
                              lot_step=Decimal("0.01"), min_lot=Decimal("0.01"),
                              max_lot=Decimal("50"))

        spec.quantize_lot(Decimal("0.0349"))   # -> 0.03
        spec.points_to_price(Decimal("150"))   # -> 1.50
    """

    symbol: str = "XAUUSD"
    point: Decimal = Decimal("0.01")
    lot_step: Decimal = Decimal("0.01")
    min_lot: Decimal = Decimal("0.01")
    max_lot: Decimal = Decimal("100")
    contract_size: Decimal = Decimal("100")
    strategy_id: int = 0

    @classmethod
    def from_config(cls, config: InstrumentConfig) -> "InstrumentSpec":
        return cls(
            symbol=config.symbol,
            point=config.point,
            lot_step=config.lot_step,
            min_lot=config.min_lot,
            max_lot=config.max_lot,
            contract_size=config.contract_size,
            strategy_id=config.strategy_id,
        )

    def floor_to_step(self, volume: Decimal) -> Decimal:
        """Floor *volume* to a whole number of lot steps (no clamping)."""
        if volume <= 0:
            return Decimal("0")
        steps = (volume / self.lot_step).quantize(Decimal("1"), rounding=ROUND_DOWN)
        return steps * self.lot_step

    def quantize_lot(self, volume: Decimal) -> Decimal:
        """Floor to lot step, then clamp to [min_lot, max_lot]."""
        stepped = self.floor_to_step(volume)
        if stepped < self.min_lot:
            return self.min_lot
        if stepped > self.max_lot:
            return self.max_lot
        return stepped

    def validate_volume(self, volume: Decimal) -> Tuple[bool, str]:
        """Check a volume against broker rules without altering it."""
        if volume < self.min_lot:
            return False, f"volume {volume} below min_lot {self.min_lot}"
        if volume > self.max_lot:
            return False, f"volume {volume} above max_lot {self.max_lot}"
        if self.floor_to_step(volume) != volume:
            return False, f"volume {volume} not a multiple of lot_step {self.lot_step}"
        return True, ""

    def round_price(self, price: Decimal) -> Decimal:
        """Round price to the nearest point."""
        return (price / self.point).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * self.point

    def points_to_price(self, points: Decimal) -> Decimal:
        return points * self.point

    def price_to_points(self, price_distance: Decimal) -> Decimal:
        return price_distance / self.point
