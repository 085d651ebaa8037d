"""Premium/discount location of price within a reference range."""

from collections.abc import Iterable

from ..data.models import Candle
from ..models.analysis import PremiumDiscount


def calculate_range(candles: Iterable[Candle]) -> tuple[float, float]:
    """``(high, low)`` of the candles, ``(0.0, 0.0)`` when empty."""
    candles = list(candles)
    if not candles:
        return 0.0, 0.0
    return max(c.high for c in candles), min(c.low for c in candles)


def pd_level(range_high: float, range_low: float) -> float:
    """50% equilibrium of the range."""
    return (range_high + range_low) / 2


def premium_discount(price: float, range_high: float, range_low: float) -> PremiumDiscount:
    if price >= pd_level(range_high, range_low):
        return PremiumDiscount.PREMIUM
    return PremiumDiscount.DISCOUNT


def price_location(price: float, range_high: float, range_low: float) -> float:
    """Position of price in the range, 0 at the low and 100 at the high."""
    if range_high == range_low:
        return 50.0
    return (price - range_low) / (range_high - range_low) * 100


def is_in_premium(price: float, range_high: float, range_low: float) -> bool:
    return premium_discount(price, range_high, range_low) == PremiumDiscount.PREMIUM


def is_in_discount(price: float, range_high: float, range_low: float) -> bool:
    return premium_discount(price, range_high, range_low) == PremiumDiscount.DISCOUNT
