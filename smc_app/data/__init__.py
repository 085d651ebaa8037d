"""
Candle data module.

Canonical candle records, invariant checks and payload normalization into
chronologically ordered, duplicate-free series.
"""
