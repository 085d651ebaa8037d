"""
Utility functions module.

Time handling shared across the analysis, lifecycle and cooldown code.
Candle timestamps are integer epoch seconds; lifecycle timestamps are
timezone-aware UTC datetimes.
"""
