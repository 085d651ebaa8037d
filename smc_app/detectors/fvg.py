"""Fair value gap detection."""

from collections.abc import Iterable
from typing import Optional

from ..config.defaults import FVGParams
from ..data.models import Direction, Series, Timeframe
from ..models.patterns import FairValueGap


def detect_fvgs(
    candles: Series,
    timeframe: Timeframe,
    params: Optional[FVGParams] = None,
) -> list[FairValueGap]:
    """
    Scan every consecutive triple ``(c1, c2, c3)`` for a gap.

    Bullish when ``c1.high < c3.low`` (gap ``[c1.high, c3.low]``), bearish
    when ``c1.low > c3.high`` (gap ``[c3.high, c1.low]``). Overlapping gaps
    are all kept, in time order.
    """
    params = params or FVGParams()
    fvgs: list[FairValueGap] = []

    if len(candles) < params.min_bars:
        return fvgs

    for i in range(len(candles) - 2):
        c1, c3 = candles[i], candles[i + 2]

        if c1.high < c3.low:
            fvgs.append(FairValueGap(
                start_time=c1.time,
                end_time=c3.time,
                top=c3.low,
                bottom=c1.high,
                direction=Direction.BULLISH,
                timeframe=timeframe,
            ))

        if c1.low > c3.high:
            fvgs.append(FairValueGap(
                start_time=c1.time,
                end_time=c3.time,
                top=c1.low,
                bottom=c3.high,
                direction=Direction.BEARISH,
                timeframe=timeframe,
            ))

    return fvgs


def is_price_in_fvg(price: float, fvg: FairValueGap) -> bool:
    return fvg.bottom <= price <= fvg.top


def fvg_midpoint(fvg: FairValueGap) -> float:
    """50% level of the gap."""
    return fvg.midpoint


def is_fvg_filled(fvg: FairValueGap, candles: Series) -> bool:
    """
    True once a candle after the gap breaches its invalidating side.

    Bullish gaps fill when a later low trades below ``bottom``; bearish
    gaps when a later high trades above ``top``.
    """
    for candle in candles:
        if candle.time <= fvg.end_time:
            continue
        if fvg.direction == Direction.BULLISH and candle.low < fvg.bottom:
            return True
        if fvg.direction == Direction.BEARISH and candle.high > fvg.top:
            return True
    return False


def unfilled_fvgs(fvgs: Iterable[FairValueGap], candles: Series) -> list[FairValueGap]:
    return [fvg for fvg in fvgs if not is_fvg_filled(fvg, candles)]
