"""
Displacement detection.

A displacement candle is unusually large relative to the series' average
range and has little wick. Thresholds come from DisplacementParams.
"""

from collections.abc import Iterable
from typing import Optional

from ..config.defaults import DisplacementParams
from ..data.models import Candle, Direction, Series, Timeframe
from ..models.patterns import DisplacementEvent


def average_range(candles: Series) -> float:
    if not candles:
        return 0.0
    return sum(c.range for c in candles) / len(candles)


def detect_displacement(
    candles: Series,
    timeframe: Timeframe,
    params: Optional[DisplacementParams] = None,
) -> list[DisplacementEvent]:
    """
    Flag candles with ``range > range_mult*avg``, ``body/range > body_ratio``
    and ``body > body_mult*avg``.

    Strength is ``min(1, range / (2*avg))``. Fewer than two candles, or a
    flat series, yields nothing.
    """
    params = params or DisplacementParams()
    events: list[DisplacementEvent] = []

    if len(candles) < 2:
        return events

    avg = average_range(candles)
    if avg <= 0:
        return events

    for index, candle in enumerate(candles):
        size = candle.range
        if size <= 0:
            continue

        body = candle.body
        if (size > avg * params.range_mult
                and body / size > params.body_ratio
                and body > avg * params.body_mult):
            events.append(DisplacementEvent(
                time=candle.time,
                strength=min(1.0, size / (avg * 2)),
                direction=Direction.BULLISH if candle.is_bullish else Direction.BEARISH,
                candle_index=index,
                timeframe=timeframe,
            ))

    return events


def calculate_displacement_strength(candle: Candle, avg_range: float) -> float:
    """Blend of size factor and body ratio, both in [0, 1]."""
    size = candle.range
    if size <= 0 or avg_range <= 0:
        return 0.0
    size_factor = min(1.0, size / (avg_range * 2))
    body_factor = candle.body / size
    return (size_factor + body_factor) / 2


def is_strong_displacement(event: DisplacementEvent, threshold: float = 0.6) -> bool:
    return event.strength > threshold


def latest_displacement(events: Iterable[DisplacementEvent]) -> Optional[DisplacementEvent]:
    return max(events, key=lambda e: e.time, default=None)
