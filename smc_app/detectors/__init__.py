"""
Pattern detectors.

Pure functions over a chronologically ordered candle series. None of them
mutates its input or keeps state between calls; a series shorter than a
detector's minimum yields an empty result instead of an error.
"""

from .clustering import PriceCluster, cluster_prices
from .displacement import (
    calculate_displacement_strength,
    detect_displacement,
    is_strong_displacement,
    latest_displacement,
)
from .fvg import detect_fvgs, fvg_midpoint, is_fvg_filled, is_price_in_fvg, unfilled_fvgs
from .liquidity import (
    asian_range,
    detect_equal_highs,
    detect_equal_lows,
    find_liquidity_pools,
    find_sweep_candle,
    is_liquidity_swept,
)
from .mss import detect_mss, is_mss_confirmed, latest_mss
from .premium_discount import (
    calculate_range,
    is_in_discount,
    is_in_premium,
    pd_level,
    premium_discount,
    price_location,
)
from .support_resistance import detect_support_resistance, key_levels
from .swings import latest_swing_points, pivot_swings, single_bar_swings

__all__ = [
    "PriceCluster",
    "cluster_prices",
    "calculate_displacement_strength",
    "detect_displacement",
    "is_strong_displacement",
    "latest_displacement",
    "detect_fvgs",
    "fvg_midpoint",
    "is_fvg_filled",
    "is_price_in_fvg",
    "unfilled_fvgs",
    "asian_range",
    "detect_equal_highs",
    "detect_equal_lows",
    "find_liquidity_pools",
    "find_sweep_candle",
    "is_liquidity_swept",
    "detect_mss",
    "is_mss_confirmed",
    "latest_mss",
    "calculate_range",
    "is_in_discount",
    "is_in_premium",
    "pd_level",
    "premium_discount",
    "price_location",
    "detect_support_resistance",
    "key_levels",
    "latest_swing_points",
    "pivot_swings",
    "single_bar_swings",
]
