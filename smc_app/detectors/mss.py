"""Market structure shift detection and confirmation."""

from collections.abc import Iterable
from typing import Optional

from ..config.defaults import MSSParams
from ..data.models import Direction, Series, Timeframe
from ..models.patterns import MarketStructureShift
from .swings import single_bar_swings


def detect_mss(
    candles: Series,
    timeframe: Timeframe,
    params: Optional[MSSParams] = None,
) -> list[MarketStructureShift]:
    """
    Find swing-to-swing breaks.

    A bullish shift fires when a single-bar swing high exceeds the swing
    high before it; a bearish shift when a swing low undercuts the swing low
    before it. Bullish shifts are listed first, each side in time order.
    """
    params = params or MSSParams()
    shifts: list[MarketStructureShift] = []

    if len(candles) < params.min_bars:
        return shifts

    highs, lows = single_bar_swings(candles)

    for (_, prev), (_, curr) in zip(highs, highs[1:]):
        if curr.price > prev.price:
            shifts.append(MarketStructureShift(
                time=curr.time,
                direction=Direction.BULLISH,
                timeframe=timeframe,
                previous_high=prev.price,
                new_high=curr.price,
            ))

    for (_, prev), (_, curr) in zip(lows, lows[1:]):
        if curr.price < prev.price:
            shifts.append(MarketStructureShift(
                time=curr.time,
                direction=Direction.BEARISH,
                timeframe=timeframe,
                previous_low=prev.price,
                new_low=curr.price,
            ))

    return shifts


def is_mss_confirmed(mss: MarketStructureShift, candles: Series, lookback: int = 3) -> bool:
    """
    Check that price held beyond the broken level for ``lookback`` bars.

    Bullish: every bar in the window has ``low > previous_high``.
    Bearish: every bar has ``high < previous_low``. False when the MSS bar
    is not in the series or fewer than ``lookback`` bars follow it.
    """
    index = next((i for i, c in enumerate(candles) if c.time == mss.time), None)
    if index is None or index + lookback >= len(candles):
        return False

    window = candles[index + 1:index + lookback + 1]

    if mss.direction == Direction.BULLISH and mss.previous_high is not None:
        return all(c.low > mss.previous_high for c in window)
    if mss.direction == Direction.BEARISH and mss.previous_low is not None:
        return all(c.high < mss.previous_low for c in window)

    return False


def latest_mss(shifts: Iterable[MarketStructureShift]) -> Optional[MarketStructureShift]:
    return max(shifts, key=lambda m: m.time, default=None)
