"""
15m liquidity stage.

Checks whether any 2h key level was swept inside the 15m window and whether
a bias-aligned FVG is present. Reaction strength, zone and displacement are
reported alongside but do not gate the setup.
"""

from typing import Optional

from ..config.defaults import DefaultConfig, get_default_config
from ..data.models import Candle, Direction, Series, Timeframe
from ..detectors.displacement import detect_displacement, is_strong_displacement
from ..detectors.fvg import detect_fvgs
from ..detectors.liquidity import asian_range, find_sweep_candle, is_liquidity_swept
from ..detectors.premium_discount import is_in_discount, is_in_premium
from ..detectors.swings import latest_swing_points
from ..models.analysis import Bias, BiasAnalysis, LiquidityAnalysis, ReactionStrength
from ..models.patterns import FairValueGap, LiquiditySweep, LiquidityType


def _breach_candle(price: float, candles: Series, liquidity_type: LiquidityType) -> Optional[Candle]:
    if liquidity_type == LiquidityType.SELL_SIDE:
        return next((c for c in candles if c.high > price), None)
    return next((c for c in candles if c.low < price), None)


def find_sweeps(bias: BiasAnalysis, candles: Series) -> list[LiquiditySweep]:
    """Sweeps of the 2h key levels within the given candles."""
    sweeps: list[LiquiditySweep] = []
    for price, liquidity_type in bias.key_liquidity.prices():
        if not is_liquidity_swept(price, candles, liquidity_type):
            continue
        candle = find_sweep_candle(price, candles) or _breach_candle(price, candles, liquidity_type)
        sweeps.append(LiquiditySweep(price=price, time=candle.time, type=liquidity_type))
    return sweeps


def reaction_strength(
    sweep: LiquiditySweep,
    candles: Series,
    bias: Bias,
    reaction_bars: int = 5,
    min_move_pct: float = 0.5,
) -> ReactionStrength:
    """
    Average close of the bars after a sweep must move ``min_move_pct``
    percent away from the swept level, in the bias direction.
    """
    index = next((i for i, c in enumerate(candles) if c.time == sweep.time), None)
    if index is None or index + 3 >= len(candles):
        return ReactionStrength.WEAK

    reaction = candles[index + 1:index + 1 + reaction_bars]
    avg_close = sum(c.close for c in reaction) / len(reaction)

    if sweep.type == LiquidityType.BUY_SIDE:
        move_pct = (avg_close - sweep.price) / sweep.price * 100
        if move_pct > min_move_pct and bias == Bias.BULLISH:
            return ReactionStrength.STRONG
    else:
        move_pct = (sweep.price - avg_close) / sweep.price * 100
        if move_pct > min_move_pct and bias == Bias.BEARISH:
            return ReactionStrength.STRONG

    return ReactionStrength.WEAK


def aligned_fvgs(fvgs: list[FairValueGap], bias: Bias) -> list[FairValueGap]:
    """FVGs matching the bias direction; all of them under a neutral bias."""
    if bias == Bias.BULLISH:
        return [f for f in fvgs if f.direction == Direction.BULLISH]
    if bias == Bias.BEARISH:
        return [f for f in fvgs if f.direction == Direction.BEARISH]
    return list(fvgs)


def analyze_liquidity(
    candles: Series,
    bias: BiasAnalysis,
    config: Optional[DefaultConfig] = None,
) -> LiquidityAnalysis:
    """Run the 15m stage against the 2h bias record."""
    config = config or get_default_config()
    recent = candles[-config.window.max_bars_15m:] if candles else ()

    if not recent:
        return LiquidityAnalysis.empty()

    sweeps = find_sweeps(bias, recent)
    latest = max(sweeps, key=lambda s: s.time, default=None)

    strength = None
    if latest is not None:
        strength = reaction_strength(
            latest, recent, bias.bias,
            config.execution.reaction_bars,
            config.execution.reaction_min_move_pct,
        )

    current_price = recent[-1].close
    in_zone = (
        bias.bias == Bias.NEUTRAL
        or (bias.bias == Bias.BULLISH and is_in_discount(current_price, bias.range_high, bias.range_low))
        or (bias.bias == Bias.BEARISH and is_in_premium(current_price, bias.range_high, bias.range_low))
    )

    displacement = detect_displacement(recent, Timeframe.M15, config.displacement)
    fvgs = aligned_fvgs(detect_fvgs(recent, Timeframe.M15, config.fvg), bias.bias)
    swing_highs, swing_lows = latest_swing_points(recent, config.window.swing_point_count)

    liquidity_taken = bool(sweeps)
    fvg_present = bool(fvgs)

    return LiquidityAnalysis(
        liquidity_taken=liquidity_taken,
        fvg_present=fvg_present,
        setup_valid=liquidity_taken and fvg_present,
        displacement_detected=bool(displacement),
        liquidity_type=latest.type if latest else None,
        reaction_strength=strength,
        strong_displacement=any(
            is_strong_displacement(d, config.displacement.strong_threshold) for d in displacement
        ),
        price_in_correct_zone=in_zone,
        liquidity_sweeps=tuple(sweeps),
        fvgs=tuple(fvgs),
        displacement=tuple(displacement),
        asian_range=asian_range(recent, config.liquidity.asian_range_bars),
        swing_highs=swing_highs,
        swing_lows=swing_lows,
    )
