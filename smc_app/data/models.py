"""
Canonical data models for candle series.

Candles are immutable and carry integer epoch seconds. A series is a plain
tuple of candles in chronological order with no duplicate timestamps; the
normalizer is the only place that builds one from raw payloads.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Timeframe(str, Enum):
    """The three analysis timeframes."""
    H2 = "2h"
    M15 = "15m"
    M5 = "5m"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]


_TIMEFRAME_SECONDS = {
    Timeframe.H2: 2 * 60 * 60,
    Timeframe.M15: 15 * 60,
    Timeframe.M5: 5 * 60,
}


class Direction(str, Enum):
    """Direction of a detected pattern or trade."""
    BULLISH = "bullish"
    BEARISH = "bearish"


@dataclass(frozen=True)
class Candle:
    """Single OHLCV bar."""
    time: int                       # Epoch seconds, bar open
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open


Series = tuple[Candle, ...]


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of normalizing one raw payload into a series."""

    candles: Series = ()
    rejected: tuple[str, ...] = ()          # One reason per dropped item
    duplicates_removed: int = 0
    out_of_window: int = 0
    timeframe: Optional[Timeframe] = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return len(self.candles) > 0

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)
