"""Records produced by the pattern detectors."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..data.models import Direction, Timeframe
from .base import Record


class LiquidityType(str, Enum):
    """Side of the book a liquidity pool rests on."""
    BUY_SIDE = "buy-side"      # Resting below equal lows
    SELL_SIDE = "sell-side"    # Resting above equal highs


class LevelType(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class OrderBlockStrength(str, Enum):
    MEDIUM = "medium"
    STRONG = "strong"


@dataclass(frozen=True)
class SwingPoint(Record):
    """Swing high or low price and the open time of its bar."""
    price: float
    time: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwingPoint":
        return cls(price=float(data["price"]), time=int(data["time"]))


@dataclass(frozen=True)
class FairValueGap(Record):
    """Three-candle imbalance; ``top > bottom`` always holds."""
    start_time: int
    end_time: int
    top: float
    bottom: float
    direction: Direction
    timeframe: Timeframe

    @property
    def midpoint(self) -> float:
        """50% level of the gap, used as entry reference."""
        return (self.top + self.bottom) / 2

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FairValueGap":
        return cls(
            start_time=int(data["start_time"]),
            end_time=int(data["end_time"]),
            top=float(data["top"]),
            bottom=float(data["bottom"]),
            direction=Direction(data["direction"]),
            timeframe=Timeframe(data["timeframe"]),
        )


@dataclass(frozen=True)
class MarketStructureShift(Record):
    """
    Break of the preceding swing.

    Bullish shifts set ``previous_high``/``new_high``; bearish shifts set
    ``previous_low``/``new_low``.
    """
    time: int
    direction: Direction
    timeframe: Timeframe
    previous_high: Optional[float] = None
    new_high: Optional[float] = None
    previous_low: Optional[float] = None
    new_low: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketStructureShift":
        return cls(
            time=int(data["time"]),
            direction=Direction(data["direction"]),
            timeframe=Timeframe(data["timeframe"]),
            previous_high=data.get("previous_high"),
            new_high=data.get("new_high"),
            previous_low=data.get("previous_low"),
            new_low=data.get("new_low"),
        )


@dataclass(frozen=True)
class DisplacementEvent(Record):
    time: int
    strength: float            # [0, 1]
    direction: Direction
    candle_index: int
    timeframe: Timeframe

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DisplacementEvent":
        return cls(
            time=int(data["time"]),
            strength=float(data["strength"]),
            direction=Direction(data["direction"]),
            candle_index=int(data["candle_index"]),
            timeframe=Timeframe(data["timeframe"]),
        )


@dataclass(frozen=True)
class LiquidityPool(Record):
    """Cluster of equal highs (sell-side) or equal lows (buy-side)."""
    price: float
    type: LiquidityType
    timeframe: Timeframe
    timestamp: int
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LiquidityPool":
        return cls(
            price=float(data["price"]),
            type=LiquidityType(data["type"]),
            timeframe=Timeframe(data["timeframe"]),
            timestamp=int(data["timestamp"]),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class LiquiditySweep(Record):
    """A pool price that was traded through and reclaimed."""
    price: float
    time: int
    type: LiquidityType

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LiquiditySweep":
        return cls(
            price=float(data["price"]),
            time=int(data["time"]),
            type=LiquidityType(data["type"]),
        )


@dataclass(frozen=True)
class AsianRange(Record):
    high: float
    low: float
    time: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AsianRange":
        return cls(high=float(data["high"]), low=float(data["low"]), time=int(data["time"]))


@dataclass(frozen=True)
class SupportResistanceLevel(Record):
    price: float
    type: LevelType
    strength: float            # [0, 1]
    touches: int               # >= 2
    timeframe: Timeframe

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SupportResistanceLevel":
        return cls(
            price=float(data["price"]),
            type=LevelType(data["type"]),
            strength=float(data["strength"]),
            touches=int(data["touches"]),
            timeframe=Timeframe(data["timeframe"]),
        )


@dataclass(frozen=True)
class OrderBlock(Record):
    """Strong candle sitting at a range extreme."""
    start_time: int
    end_time: int
    top: float
    bottom: float
    direction: Direction
    timeframe: Timeframe
    strength: OrderBlockStrength = OrderBlockStrength.MEDIUM

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderBlock":
        return cls(
            start_time=int(data["start_time"]),
            end_time=int(data["end_time"]),
            top=float(data["top"]),
            bottom=float(data["bottom"]),
            direction=Direction(data["direction"]),
            timeframe=Timeframe(data["timeframe"]),
            strength=OrderBlockStrength(data.get("strength", "medium")),
        )
