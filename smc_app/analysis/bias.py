"""
2h bias stage.

Establishes directional intent from recent structure and where price sits
in the window's range, and collects the key liquidity levels the lower
timeframes work against.
"""

from typing import Optional

import structlog

from ..config.defaults import DefaultConfig, get_default_config
from ..data.models import Direction, Series, Timeframe
from ..detectors.fvg import detect_fvgs, is_price_in_fvg
from ..detectors.liquidity import detect_equal_highs, detect_equal_lows, find_liquidity_pools
from ..detectors.mss import detect_mss
from ..detectors.premium_discount import calculate_range, pd_level, premium_discount, price_location
from ..detectors.support_resistance import detect_support_resistance, key_levels
from ..detectors.swings import latest_swing_points
from ..models.analysis import Bias, BiasAnalysis, KeyLiquidity, PremiumDiscount
from ..models.patterns import FairValueGap, OrderBlock, OrderBlockStrength

logger = structlog.get_logger(__name__)


def determine_bias(candles: Series, current_price: float, equilibrium: float) -> Bias:
    """
    Net structure over the last five bars.

    Two or more higher highs and higher lows is bullish, two or more lower
    highs and lower lows is bearish. Otherwise a premium close with at least
    one higher high leans bullish and a discount close with at least one
    lower low leans bearish. Fewer than three bars is neutral.
    """
    if len(candles) < 3:
        return Bias.NEUTRAL

    recent = candles[-5:]
    higher_highs = higher_lows = lower_highs = lower_lows = 0
    for prev, curr in zip(recent, recent[1:]):
        if curr.high > prev.high:
            higher_highs += 1
        if curr.low > prev.low:
            higher_lows += 1
        if curr.high < prev.high:
            lower_highs += 1
        if curr.low < prev.low:
            lower_lows += 1

    in_premium = current_price >= equilibrium

    if higher_highs >= 2 and higher_lows >= 2:
        return Bias.BULLISH
    if lower_highs >= 2 and lower_lows >= 2:
        return Bias.BEARISH
    if in_premium and higher_highs >= 1:
        return Bias.BULLISH
    if not in_premium and lower_lows >= 1:
        return Bias.BEARISH
    return Bias.NEUTRAL


def identify_order_blocks(candles: Series, timeframe: Timeframe = Timeframe.H2) -> list[OrderBlock]:
    """Strong-bodied candles within 1% of the range extremes."""
    blocks: list[OrderBlock] = []
    if len(candles) < 2:
        return blocks

    range_high, range_low = calculate_range(candles)
    avg = sum(c.range for c in candles) / len(candles)

    for candle in candles:
        strength = OrderBlockStrength.STRONG if candle.range > avg * 1.5 else OrderBlockStrength.MEDIUM
        strong_body = candle.body > avg * 0.7

        if candle.close > candle.open and candle.low <= range_low * 1.01 and strong_body:
            blocks.append(OrderBlock(candle.time, candle.time, candle.high, candle.low,
                                     Direction.BULLISH, timeframe, strength))

        if candle.close < candle.open and candle.high >= range_high * 0.99 and strong_body:
            blocks.append(OrderBlock(candle.time, candle.time, candle.high, candle.low,
                                     Direction.BEARISH, timeframe, strength))

    return blocks


def describe_htf_zone(
    current_price: float,
    fvgs: list[FairValueGap],
    order_blocks: list[OrderBlock],
    zone: PremiumDiscount,
) -> str:
    if fvgs and is_price_in_fvg(current_price, fvgs[-1]):
        return f"2H FVG ({fvgs[-1].direction.value})"
    if order_blocks and order_blocks[-1].bottom <= current_price <= order_blocks[-1].top:
        return f"2H Order Block ({order_blocks[-1].direction.value})"
    if zone == PremiumDiscount.PREMIUM:
        return "2H Premium Zone"
    return "2H Discount Zone"


def analyze_bias(
    candles: Series,
    config: Optional[DefaultConfig] = None,
    ignore_order_blocks: bool = False,
) -> BiasAnalysis:
    """Run the 2h stage; an empty series yields a neutral, empty record."""
    config = config or get_default_config()
    recent = candles[-config.window.max_bars_2h:] if candles else ()

    if not recent:
        logger.debug("No 2h data, bias neutral")
        return BiasAnalysis.empty()

    range_high, range_low = calculate_range(recent)
    equilibrium = pd_level(range_high, range_low)
    current_price = recent[-1].close
    zone = premium_discount(current_price, range_high, range_low)

    fvgs = detect_fvgs(recent, Timeframe.H2, config.fvg)
    order_blocks = [] if ignore_order_blocks else identify_order_blocks(recent)
    swing_highs, swing_lows = latest_swing_points(recent, config.window.swing_point_count)
    levels = detect_support_resistance(recent, Timeframe.H2, config.support_resistance, config.clustering)

    bias = determine_bias(recent, current_price, equilibrium)

    return BiasAnalysis(
        bias=bias,
        range_high=range_high,
        range_low=range_low,
        pd_level=equilibrium,
        premium_discount=zone,
        price_location=price_location(current_price, range_high, range_low),
        key_liquidity=KeyLiquidity(
            buy_side=tuple(detect_equal_lows(recent, config.liquidity, config.clustering)),
            sell_side=tuple(detect_equal_highs(recent, config.liquidity, config.clustering)),
        ),
        htf_zone=describe_htf_zone(current_price, fvgs, order_blocks, zone),
        fvgs=tuple(fvgs),
        order_blocks=tuple(order_blocks),
        liquidity_pools=tuple(find_liquidity_pools(recent, Timeframe.H2, config.liquidity, config.clustering)),
        support_resistance=tuple(key_levels(levels, config.support_resistance.key_level_count)),
        mss_points=tuple(detect_mss(recent, Timeframe.H2, config.mss)),
        swing_highs=swing_highs,
        swing_lows=swing_lows,
    )
