"""
Support and resistance from clustered 5-bar pivots.

Strength of a level is ``min(1, (touches*0.3 + recent*0.7) / 3)`` where
``recent`` counts members newer than the ``recent_bars``-th-from-last
candle. Weak levels are dropped and single-touch clusters are never
reported.
"""

from typing import Optional

from ..config.defaults import ClusteringParams, SupportResistanceParams
from ..data.models import Series, Timeframe
from ..models.patterns import LevelType, SupportResistanceLevel
from .clustering import cluster_prices
from .swings import pivot_swings


def _levels(points, level_type, cutoff, timeframe, params, clustering):
    levels = []
    for cluster in cluster_prices(points, params.tolerance, clustering.mode):
        touches = cluster.size
        if touches < 2:
            continue
        recent = sum(1 for t in cluster.times if t > cutoff)
        strength = min(1.0, (touches * 0.3 + recent * 0.7) / 3)
        if strength > params.min_strength:
            levels.append(SupportResistanceLevel(
                price=cluster.mean,
                type=level_type,
                strength=strength,
                touches=touches,
                timeframe=timeframe,
            ))
    return levels


def detect_support_resistance(
    candles: Series,
    timeframe: Timeframe,
    params: Optional[SupportResistanceParams] = None,
    clustering: Optional[ClusteringParams] = None,
) -> list[SupportResistanceLevel]:
    """Resistance from pivot highs, support from pivot lows, strongest first."""
    params = params or SupportResistanceParams()
    clustering = clustering or ClusteringParams()

    if len(candles) < params.min_bars:
        return []

    highs, lows = pivot_swings(candles)
    cutoff = candles[max(0, len(candles) - params.recent_bars)].time

    levels = _levels([(s.price, s.time) for s in highs], LevelType.RESISTANCE,
                     cutoff, timeframe, params, clustering)
    levels += _levels([(s.price, s.time) for s in lows], LevelType.SUPPORT,
                      cutoff, timeframe, params, clustering)

    return sorted(levels, key=lambda level: level.strength, reverse=True)


def key_levels(levels: list[SupportResistanceLevel], count: int = 5) -> list[SupportResistanceLevel]:
    return levels[:count]
