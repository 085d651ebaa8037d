"""
Multi-timeframe analysis.

2h bias, 15m liquidity and 5m execution stages, composed top-down into a
single gated decision.
"""
