"""
Stage records and the aggregate analysis result.

Each timeframe stage produces one explicit record with required fields:
BiasAnalysis (2h), LiquidityAnalysis (15m) and ExecutionSignal (5m).
AnalysisResult ties them together with the final decision and is what gets
snapshotted onto watchlist signals.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .base import Record
from .patterns import (
    AsianRange,
    DisplacementEvent,
    FairValueGap,
    LiquidityPool,
    LiquiditySweep,
    LiquidityType,
    MarketStructureShift,
    OrderBlock,
    SupportResistanceLevel,
    SwingPoint,
)


class Bias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class PremiumDiscount(str, Enum):
    PREMIUM = "premium"
    DISCOUNT = "discount"


class ReactionStrength(str, Enum):
    WEAK = "weak"
    STRONG = "strong"


class TradeDirection(str, Enum):
    LONG = "long"
    SHORT = "short"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Decision(str, Enum):
    """Final gated decision of an analysis run."""
    NO_TRADE = "NO_TRADE"
    WATCH = "WATCH"
    TRADE_SETUP = "TRADE_SETUP"


class InstrumentType(str, Enum):
    VOLATILITY = "volatility"
    FOREX = "forex"
    SYNTHETIC = "synthetic"


def _swings(items: Optional[list[dict[str, Any]]]) -> tuple[SwingPoint, ...]:
    return tuple(SwingPoint.from_dict(s) for s in items or [])


def _optional_enum(enum_cls, value):
    return enum_cls(value) if value is not None else None


@dataclass(frozen=True)
class KeyLiquidity(Record):
    """Equal lows (buy-side) and equal highs (sell-side) prices."""
    buy_side: tuple[float, ...] = ()
    sell_side: tuple[float, ...] = ()

    def prices(self) -> list[tuple[float, LiquidityType]]:
        """All tracked levels tagged with their side."""
        return ([(p, LiquidityType.BUY_SIDE) for p in self.buy_side]
                + [(p, LiquidityType.SELL_SIDE) for p in self.sell_side])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeyLiquidity":
        return cls(
            buy_side=tuple(float(p) for p in data.get("buy_side", [])),
            sell_side=tuple(float(p) for p in data.get("sell_side", [])),
        )


@dataclass(frozen=True)
class BiasAnalysis(Record):
    """2h directional bias and reference range."""
    bias: Bias
    range_high: float
    range_low: float
    pd_level: float
    premium_discount: PremiumDiscount
    price_location: float
    key_liquidity: KeyLiquidity
    htf_zone: str
    fvgs: tuple[FairValueGap, ...] = ()
    order_blocks: tuple[OrderBlock, ...] = ()
    liquidity_pools: tuple[LiquidityPool, ...] = ()
    support_resistance: tuple[SupportResistanceLevel, ...] = ()
    mss_points: tuple[MarketStructureShift, ...] = ()
    swing_highs: tuple[SwingPoint, ...] = ()
    swing_lows: tuple[SwingPoint, ...] = ()

    @classmethod
    def empty(cls) -> "BiasAnalysis":
        """Neutral bias for a run without 2h data."""
        return cls(
            bias=Bias.NEUTRAL,
            range_high=0.0,
            range_low=0.0,
            pd_level=0.0,
            premium_discount=PremiumDiscount.DISCOUNT,
            price_location=50.0,
            key_liquidity=KeyLiquidity(),
            htf_zone="",
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BiasAnalysis":
        return cls(
            bias=Bias(data["bias"]),
            range_high=float(data["range_high"]),
            range_low=float(data["range_low"]),
            pd_level=float(data["pd_level"]),
            premium_discount=PremiumDiscount(data["premium_discount"]),
            price_location=float(data.get("price_location", 50.0)),
            key_liquidity=KeyLiquidity.from_dict(data.get("key_liquidity", {})),
            htf_zone=data.get("htf_zone", ""),
            fvgs=tuple(FairValueGap.from_dict(f) for f in data.get("fvgs", [])),
            order_blocks=tuple(OrderBlock.from_dict(o) for o in data.get("order_blocks", [])),
            liquidity_pools=tuple(LiquidityPool.from_dict(p) for p in data.get("liquidity_pools", [])),
            support_resistance=tuple(
                SupportResistanceLevel.from_dict(s) for s in data.get("support_resistance", [])
            ),
            mss_points=tuple(MarketStructureShift.from_dict(m) for m in data.get("mss_points", [])),
            swing_highs=_swings(data.get("swing_highs")),
            swing_lows=_swings(data.get("swing_lows")),
        )


@dataclass(frozen=True)
class LiquidityAnalysis(Record):
    """15m sweep and setup filter."""
    liquidity_taken: bool
    fvg_present: bool
    setup_valid: bool
    displacement_detected: bool
    liquidity_type: Optional[LiquidityType] = None
    reaction_strength: Optional[ReactionStrength] = None
    strong_displacement: bool = False
    price_in_correct_zone: bool = False
    liquidity_sweeps: tuple[LiquiditySweep, ...] = ()
    fvgs: tuple[FairValueGap, ...] = ()
    displacement: tuple[DisplacementEvent, ...] = ()
    asian_range: Optional[AsianRange] = None
    swing_highs: tuple[SwingPoint, ...] = ()
    swing_lows: tuple[SwingPoint, ...] = ()

    @classmethod
    def empty(cls, swing_highs: tuple[SwingPoint, ...] = (),
              swing_lows: tuple[SwingPoint, ...] = ()) -> "LiquidityAnalysis":
        return cls(
            liquidity_taken=False,
            fvg_present=False,
            setup_valid=False,
            displacement_detected=False,
            swing_highs=swing_highs,
            swing_lows=swing_lows,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LiquidityAnalysis":
        asian = data.get("asian_range")
        return cls(
            liquidity_taken=bool(data["liquidity_taken"]),
            fvg_present=bool(data["fvg_present"]),
            setup_valid=bool(data["setup_valid"]),
            displacement_detected=bool(data["displacement_detected"]),
            liquidity_type=_optional_enum(LiquidityType, data.get("liquidity_type")),
            reaction_strength=_optional_enum(ReactionStrength, data.get("reaction_strength")),
            strong_displacement=bool(data.get("strong_displacement", False)),
            price_in_correct_zone=bool(data.get("price_in_correct_zone", False)),
            liquidity_sweeps=tuple(LiquiditySweep.from_dict(s) for s in data.get("liquidity_sweeps", [])),
            fvgs=tuple(FairValueGap.from_dict(f) for f in data.get("fvgs", [])),
            displacement=tuple(DisplacementEvent.from_dict(d) for d in data.get("displacement", [])),
            asian_range=AsianRange.from_dict(asian) if asian else None,
            swing_highs=_swings(data.get("swing_highs")),
            swing_lows=_swings(data.get("swing_lows")),
        )


@dataclass(frozen=True)
class ExecutionSignal(Record):
    """5m trigger with derived trade levels."""
    trade_signal: bool
    mss_confirmed: bool
    direction: Optional[TradeDirection] = None
    fvg_details: Optional[FairValueGap] = None
    entry_price: Optional[float] = None
    stop_price: Optional[float] = None
    target_price: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    confidence: Confidence = Confidence.LOW
    entry_zone: str = ""
    stop_level: str = ""
    target_zone: str = ""
    mss_points: tuple[MarketStructureShift, ...] = ()
    swing_highs: tuple[SwingPoint, ...] = ()
    swing_lows: tuple[SwingPoint, ...] = ()

    @classmethod
    def empty(cls, swing_highs: tuple[SwingPoint, ...] = (),
              swing_lows: tuple[SwingPoint, ...] = ()) -> "ExecutionSignal":
        return cls(
            trade_signal=False,
            mss_confirmed=False,
            swing_highs=swing_highs,
            swing_lows=swing_lows,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionSignal":
        fvg = data.get("fvg_details")
        return cls(
            trade_signal=bool(data["trade_signal"]),
            mss_confirmed=bool(data["mss_confirmed"]),
            direction=_optional_enum(TradeDirection, data.get("direction")),
            fvg_details=FairValueGap.from_dict(fvg) if fvg else None,
            entry_price=data.get("entry_price"),
            stop_price=data.get("stop_price"),
            target_price=data.get("target_price"),
            risk_reward_ratio=data.get("risk_reward_ratio"),
            confidence=Confidence(data.get("confidence", "low")),
            entry_zone=data.get("entry_zone", ""),
            stop_level=data.get("stop_level", ""),
            target_zone=data.get("target_zone", ""),
            mss_points=tuple(MarketStructureShift.from_dict(m) for m in data.get("mss_points", [])),
            swing_highs=_swings(data.get("swing_highs")),
            swing_lows=_swings(data.get("swing_lows")),
        )


@dataclass(frozen=True)
class InstrumentProfile(Record):
    """Per-instrument rule flags."""
    symbol: str
    type: InstrumentType = InstrumentType.FOREX
    use_session_filter: bool = True
    prioritize_mss: bool = False
    ignore_order_blocks: bool = False
    full_ict_model: bool = True
    price_decimals: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstrumentProfile":
        return cls(
            symbol=data["symbol"],
            type=InstrumentType(data.get("type", "forex")),
            use_session_filter=bool(data.get("use_session_filter", True)),
            prioritize_mss=bool(data.get("prioritize_mss", False)),
            ignore_order_blocks=bool(data.get("ignore_order_blocks", False)),
            full_ict_model=bool(data.get("full_ict_model", True)),
            price_decimals=int(data.get("price_decimals", 5)),
        )


@dataclass(frozen=True)
class AnalysisResult(Record):
    """Complete three-timeframe analysis with the gated final decision."""
    instrument: str
    timestamp: int                      # Epoch seconds of the run
    data_window_start: int
    data_window_end: int
    timeframe_2h: BiasAnalysis
    timeframe_15m: LiquidityAnalysis
    timeframe_5m: ExecutionSignal
    final_decision: Decision
    session_valid: bool
    instrument_config: InstrumentProfile
    reason: str = ""
    id: Optional[str] = field(default=None, compare=False)

    @property
    def is_trade_setup(self) -> bool:
        return self.final_decision == Decision.TRADE_SETUP

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        return cls(
            instrument=data["instrument"],
            timestamp=int(data["timestamp"]),
            data_window_start=int(data["data_window_start"]),
            data_window_end=int(data["data_window_end"]),
            timeframe_2h=BiasAnalysis.from_dict(data["timeframe_2h"]),
            timeframe_15m=LiquidityAnalysis.from_dict(data["timeframe_15m"]),
            timeframe_5m=ExecutionSignal.from_dict(data["timeframe_5m"]),
            final_decision=Decision(data["final_decision"]),
            session_valid=bool(data["session_valid"]),
            instrument_config=InstrumentProfile.from_dict(data["instrument_config"]),
            reason=data.get("reason", ""),
            id=data.get("id"),
        )
