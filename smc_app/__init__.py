"""
SMC App - Multi-timeframe market structure signal engine

Derives directional trade recommendations from 2h / 15m / 5m candle series
using liquidity sweeps, fair value gaps, market structure shifts and
displacement, then tracks the resulting signals against live price and
gates new trades behind win/loss cooldowns.
"""

__version__ = "0.1.0"
__author__ = "SMC Team"
