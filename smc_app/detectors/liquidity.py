"""
Liquidity pools (equal highs/lows) and sweep detection.

Equal highs mark sell-side liquidity resting above them, equal lows mark
buy-side liquidity resting below. A pool is swept when price trades through
it and then back to the original side within the series.
"""

from typing import Optional

from ..config.defaults import ClusteringParams, LiquidityParams
from ..data.models import Candle, Series, Timeframe
from ..models.patterns import AsianRange, LiquidityPool, LiquidityType
from .clustering import cluster_prices


def _equal_levels(points, params: LiquidityParams, clustering: ClusteringParams) -> list[float]:
    clusters = cluster_prices(points, params.tolerance, clustering.mode)
    return [c.mean for c in clusters if c.size >= params.min_members]


def detect_equal_highs(
    candles: Series,
    params: Optional[LiquidityParams] = None,
    clustering: Optional[ClusteringParams] = None,
) -> list[float]:
    """Mean prices of high clusters with at least ``min_members`` bars."""
    return _equal_levels(
        [(c.high, c.time) for c in candles],
        params or LiquidityParams(),
        clustering or ClusteringParams(),
    )


def detect_equal_lows(
    candles: Series,
    params: Optional[LiquidityParams] = None,
    clustering: Optional[ClusteringParams] = None,
) -> list[float]:
    """Mean prices of low clusters with at least ``min_members`` bars."""
    return _equal_levels(
        [(c.low, c.time) for c in candles],
        params or LiquidityParams(),
        clustering or ClusteringParams(),
    )


def find_liquidity_pools(
    candles: Series,
    timeframe: Timeframe,
    params: Optional[LiquidityParams] = None,
    clustering: Optional[ClusteringParams] = None,
) -> list[LiquidityPool]:
    """Equal highs as sell-side pools followed by equal lows as buy-side pools."""
    if not candles:
        return []

    stamp = candles[-1].time
    pools = [
        LiquidityPool(price, LiquidityType.SELL_SIDE, timeframe, stamp, "Equal High")
        for price in detect_equal_highs(candles, params, clustering)
    ]
    pools.extend(
        LiquidityPool(price, LiquidityType.BUY_SIDE, timeframe, stamp, "Equal Low")
        for price in detect_equal_lows(candles, params, clustering)
    )
    return pools


def is_liquidity_swept(price: float, candles: Series, liquidity_type: LiquidityType) -> bool:
    """
    Sell-side: some high breaks above ``price`` and the same or a later
    candle trades back below it. Buy-side is mirrored.
    """
    if len(candles) < 2:
        return False

    swept = False
    for candle in candles:
        if liquidity_type == LiquidityType.SELL_SIDE:
            if not swept and candle.high > price:
                swept = True
            if swept and candle.low < price:
                return True
        else:
            if not swept and candle.low < price:
                swept = True
            if swept and candle.high > price:
                return True

    return False


def find_sweep_candle(price: float, candles: Series) -> Optional[Candle]:
    """First candle whose range straddles ``price``."""
    return next((c for c in candles if c.low < price < c.high), None)


def asian_range(candles: Series, bars: int = 4) -> Optional[AsianRange]:
    """High/low of the first ``bars`` candles of the window."""
    head = candles[:bars]
    if not head:
        return None
    return AsianRange(
        high=max(c.high for c in head),
        low=min(c.low for c in head),
        time=head[0].time,
    )
