"""
5m execution stage.

A trade signal needs a confirmed market structure shift in the bias
direction plus an unfilled FVG in the same direction. Entry sits at the
FVG midpoint, the stop beyond the far side of the gap (and beyond any swept
same-side liquidity), the target at opposing 2h liquidity when it pays at
least ``min_liquidity_rr`` and otherwise at a fixed risk multiple.
"""

from typing import Optional

from ..config.defaults import DefaultConfig, ExecutionParams, get_default_config
from ..data.models import Direction, Series, Timeframe
from ..detectors.displacement import detect_displacement, is_strong_displacement
from ..detectors.fvg import detect_fvgs, unfilled_fvgs
from ..detectors.liquidity import find_sweep_candle
from ..detectors.mss import detect_mss, is_mss_confirmed
from ..detectors.swings import latest_swing_points
from ..models.analysis import (
    Bias,
    BiasAnalysis,
    Confidence,
    ExecutionSignal,
    InstrumentProfile,
    LiquidityAnalysis,
    TradeDirection,
)
from ..models.patterns import FairValueGap, LiquidityType
from .instruments import format_price

BIAS_DIRECTION = {Bias.BULLISH: Direction.BULLISH, Bias.BEARISH: Direction.BEARISH}
TRADE_DIRECTION = {Direction.BULLISH: TradeDirection.LONG, Direction.BEARISH: TradeDirection.SHORT}


def calculate_stop(
    direction: TradeDirection,
    fvg: FairValueGap,
    liquidity: LiquidityAnalysis,
    buffer_pct: float,
) -> float:
    if direction == TradeDirection.LONG:
        stop = fvg.bottom * (1 - buffer_pct)
        swept = [s.price for s in liquidity.liquidity_sweeps if s.type == LiquidityType.BUY_SIDE]
        if swept:
            stop = min(stop, min(swept) * (1 - buffer_pct))
        return stop

    stop = fvg.top * (1 + buffer_pct)
    swept = [s.price for s in liquidity.liquidity_sweeps if s.type == LiquidityType.SELL_SIDE]
    if swept:
        stop = max(stop, max(swept) * (1 + buffer_pct))
    return stop


def calculate_target(
    direction: TradeDirection,
    entry: float,
    stop: float,
    bias: BiasAnalysis,
    params: ExecutionParams,
) -> float:
    risk = abs(entry - stop)

    if direction == TradeDirection.LONG:
        opposing = [p for p in bias.key_liquidity.sell_side if p > entry]
        liquidity_target = max(opposing) if opposing else None
        projected = entry + params.target_risk_multiple * risk
    else:
        opposing = [p for p in bias.key_liquidity.buy_side if p < entry]
        liquidity_target = min(opposing) if opposing else None
        projected = entry - params.target_risk_multiple * risk

    if liquidity_target is not None and abs(liquidity_target - entry) >= params.min_liquidity_rr * risk:
        return liquidity_target
    return projected


def risk_reward(entry: float, stop: float, target: float) -> Optional[float]:
    """``|target - entry| / |entry - stop|``; None when stop equals entry."""
    risk = abs(entry - stop)
    if risk == 0:
        return None
    return abs(target - entry) / risk


def score_confidence(
    mss_confirmed: bool,
    strong_displacement: bool,
    liquidity_confirmed: bool,
    rr: Optional[float],
    high_rr: float,
) -> Confidence:
    score = sum([mss_confirmed, strong_displacement, liquidity_confirmed,
                 rr is not None and rr >= high_rr])
    if score >= 3:
        return Confidence.HIGH
    if score >= 2:
        return Confidence.MEDIUM
    return Confidence.LOW


def analyze_execution(
    candles: Series,
    bias: BiasAnalysis,
    liquidity: LiquidityAnalysis,
    profile: InstrumentProfile,
    config: Optional[DefaultConfig] = None,
) -> ExecutionSignal:
    """Run the 5m stage."""
    config = config or get_default_config()
    recent = candles[-config.window.max_bars_5m:] if candles else ()

    if not recent:
        return ExecutionSignal.empty()

    swing_highs, swing_lows = latest_swing_points(recent, config.window.swing_point_count)
    shifts = detect_mss(recent, Timeframe.M5, config.mss)
    fvgs = detect_fvgs(recent, Timeframe.M5, config.fvg)
    wanted = BIAS_DIRECTION.get(bias.bias)

    confirmed = [
        m for m in shifts
        if (wanted is None or m.direction == wanted)
        and is_mss_confirmed(m, recent, config.mss.confirmation_bars)
    ]
    candidates = unfilled_fvgs([f for f in fvgs if wanted is None or f.direction == wanted], recent)
    fvg = candidates[-1] if candidates else None
    mss_confirmed = bool(confirmed)

    if wanted is None or not mss_confirmed or fvg is None:
        return ExecutionSignal(
            trade_signal=False,
            mss_confirmed=mss_confirmed,
            fvg_details=fvg,
            mss_points=tuple(shifts),
            swing_highs=swing_highs,
            swing_lows=swing_lows,
        )

    direction = TRADE_DIRECTION[wanted]
    params = config.execution
    entry = fvg.midpoint
    stop = calculate_stop(direction, fvg, liquidity, params.stop_buffer_pct)
    target = calculate_target(direction, entry, stop, bias, params)
    rr = risk_reward(entry, stop, target)

    latest_sweep = max(liquidity.liquidity_sweeps, key=lambda s: s.time, default=None)
    liquidity_confirmed = (latest_sweep is not None
                           and find_sweep_candle(latest_sweep.price, recent) is not None)
    strong = any(
        is_strong_displacement(d, config.displacement.strong_threshold)
        for d in detect_displacement(recent, Timeframe.M5, config.displacement)
    )
    decimals = profile.price_decimals

    return ExecutionSignal(
        trade_signal=True,
        mss_confirmed=True,
        direction=direction,
        fvg_details=fvg,
        entry_price=entry,
        stop_price=stop,
        target_price=target,
        risk_reward_ratio=rr,
        confidence=score_confidence(True, strong, liquidity_confirmed, rr, params.high_confidence_rr),
        entry_zone=format_price(entry, decimals),
        stop_level=format_price(stop, decimals),
        target_zone=format_price(target, decimals),
        mss_points=tuple(shifts),
        swing_highs=swing_highs,
        swing_lows=swing_lows,
    )
