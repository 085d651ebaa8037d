"""Swing point detection."""

from ..data.models import Series
from ..models.patterns import SwingPoint


def single_bar_swings(candles: Series) -> tuple[list[tuple[int, SwingPoint]], list[tuple[int, SwingPoint]]]:
    """
    Swings strictly beyond the immediate neighbour on each side.

    Returns:
        ``(highs, lows)`` as lists of ``(index, SwingPoint)`` in time order
    """
    highs: list[tuple[int, SwingPoint]] = []
    lows: list[tuple[int, SwingPoint]] = []

    for i in range(1, len(candles) - 1):
        prev, curr, nxt = candles[i - 1], candles[i], candles[i + 1]
        if curr.high > prev.high and curr.high > nxt.high:
            highs.append((i, SwingPoint(curr.high, curr.time)))
        if curr.low < prev.low and curr.low < nxt.low:
            lows.append((i, SwingPoint(curr.low, curr.time)))

    return highs, lows


def pivot_swings(candles: Series, span: int = 2) -> tuple[list[SwingPoint], list[SwingPoint]]:
    """
    Pivots strictly beyond ``span`` bars on both sides (5-bar pivots by default).

    Returns:
        ``(highs, lows)`` in time order
    """
    highs: list[SwingPoint] = []
    lows: list[SwingPoint] = []

    for i in range(span, len(candles) - span):
        curr = candles[i]
        neighbours = [candles[j] for j in range(i - span, i + span + 1) if j != i]
        if all(curr.high > c.high for c in neighbours):
            highs.append(SwingPoint(curr.high, curr.time))
        if all(curr.low < c.low for c in neighbours):
            lows.append(SwingPoint(curr.low, curr.time))

    return highs, lows


def latest_swing_points(
    candles: Series, count: int = 5
) -> tuple[tuple[SwingPoint, ...], tuple[SwingPoint, ...]]:
    """Most recent ``count`` pivot highs and lows, newest first."""
    if len(candles) < 5:
        return (), ()

    highs, lows = pivot_swings(candles)
    highs.sort(key=lambda s: s.time, reverse=True)
    lows.sort(key=lambda s: s.time, reverse=True)

    return tuple(highs[:count]), tuple(lows[:count])
