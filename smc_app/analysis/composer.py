"""
Multi-timeframe composer.

Runs 2h bias, 15m liquidity and 5m execution over bounded windows and gates
the outcome top-down:

1. Neutral bias -> NO_TRADE, whatever the lower timeframes show.
2. Clear bias but no 15m or 5m bars -> NO_TRADE.
3. Clear bias with any of setup_valid, trade_signal or direction match
   missing -> WATCH.
4. Otherwise TRADE_SETUP, downgraded to WATCH when the session filter or the
   instrument rules reject it.

The composer never raises on thin data; it always returns an AnalysisResult.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Optional, Union

from ..config.defaults import DefaultConfig, get_default_config
from ..data.models import Series, Timeframe
from ..detectors.swings import latest_swing_points
from ..logging.config import get_gating_logger, log_gate_decision
from ..models.analysis import (
    AnalysisResult,
    Bias,
    BiasAnalysis,
    Decision,
    ExecutionSignal,
    InstrumentProfile,
    LiquidityAnalysis,
    TradeDirection,
)
from ..utils.time import datetime_to_epoch, now_utc
from .bias import analyze_bias
from .execution import analyze_execution
from .instruments import instrument_rule_failure, resolve_profile
from .liquidity import analyze_liquidity
from .sessions import is_valid_session

logger = get_gating_logger(__name__)

SeriesByTimeframe = Mapping[Union[Timeframe, str], Series]

EXPECTED_DIRECTION = {Bias.BULLISH: TradeDirection.LONG, Bias.BEARISH: TradeDirection.SHORT}


def _series(series_by_timeframe: SeriesByTimeframe, timeframe: Timeframe, max_bars: int) -> Series:
    candles = series_by_timeframe.get(timeframe)
    if candles is None:
        candles = series_by_timeframe.get(timeframe.value)
    if not candles or max_bars <= 0:
        return ()
    return tuple(candles)[-max_bars:]


def _window_bounds(frames: list[Series], fallback: int) -> tuple[int, int]:
    starts = [s[0].time for s in frames if s]
    ends = [s[-1].time for s in frames if s]
    if not starts:
        return fallback, fallback
    return min(starts), max(ends)


def run_analysis(
    instrument: str,
    series_by_timeframe: SeriesByTimeframe,
    config: Optional[DefaultConfig] = None,
    profile: Optional[InstrumentProfile] = None,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Analyze one instrument across the three timeframes.

    Args:
        instrument: Instrument symbol
        series_by_timeframe: Normalized series keyed by Timeframe or its value
        config: Merged configuration; defaults when omitted
        profile: Instrument profile; resolved from the symbol when omitted
        now: Reference time for the session filter and run timestamp

    Returns:
        AnalysisResult with the gated final decision
    """
    config = config or get_default_config()
    profile = profile or resolve_profile(instrument)
    now = now_utc(now)
    window = config.window

    h2 = _series(series_by_timeframe, Timeframe.H2, window.max_bars_2h)
    m15 = _series(series_by_timeframe, Timeframe.M15, window.max_bars_15m)
    m5 = _series(series_by_timeframe, Timeframe.M5, window.max_bars_5m)

    timestamp = datetime_to_epoch(now)
    window_start, window_end = _window_bounds([h2, m15, m5], timestamp)
    session_valid = is_valid_session(now, profile, config.session)

    def result(decision: Decision, reason: str, bias: BiasAnalysis,
               liquidity: LiquidityAnalysis, execution: ExecutionSignal) -> AnalysisResult:
        logger.info(
            "Analysis complete",
            instrument=profile.symbol,
            decision=decision.value,
            bias=bias.bias.value,
            reason=reason,
        )
        return AnalysisResult(
            instrument=profile.symbol,
            timestamp=timestamp,
            data_window_start=window_start,
            data_window_end=window_end,
            timeframe_2h=bias,
            timeframe_15m=liquidity,
            timeframe_5m=execution,
            final_decision=decision,
            session_valid=session_valid,
            instrument_config=profile,
            reason=reason,
        )

    bias = analyze_bias(h2, config, ignore_order_blocks=profile.ignore_order_blocks)

    if bias.bias == Bias.NEUTRAL:
        log_gate_decision(logger, "bias", False, profile.symbol, "No clear bias from 2H analysis",
                          {"bars_2h": len(h2)})
        return result(
            Decision.NO_TRADE, "No clear bias from 2H analysis", bias,
            LiquidityAnalysis.empty(*latest_swing_points(m15, window.swing_point_count)),
            ExecutionSignal.empty(*latest_swing_points(m5, window.swing_point_count)),
        )
    log_gate_decision(logger, "bias", True, profile.symbol, f"2H bias {bias.bias.value}")

    if not m15 or not m5:
        reason = "Insufficient lower timeframe data"
        log_gate_decision(logger, "data", False, profile.symbol, reason,
                          {"bars_15m": len(m15), "bars_5m": len(m5)})
        return result(Decision.NO_TRADE, reason, bias,
                      LiquidityAnalysis.empty(), ExecutionSignal.empty())

    liquidity = analyze_liquidity(m15, bias, config)
    execution = analyze_execution(m5, bias, liquidity, profile, config)

    if not liquidity.setup_valid:
        reason = "Setup not valid - waiting for liquidity sweep and FVG"
        log_gate_decision(logger, "setup", False, profile.symbol, reason, {
            "liquidity_taken": liquidity.liquidity_taken,
            "fvg_present": liquidity.fvg_present,
        })
        return result(Decision.WATCH, reason, bias, liquidity, execution)

    if not execution.trade_signal:
        reason = "No valid execution signal on 5m"
        log_gate_decision(logger, "execution", False, profile.symbol, reason,
                          {"mss_confirmed": execution.mss_confirmed,
                           "fvg": execution.fvg_details is not None})
        return result(Decision.WATCH, reason, bias, liquidity, execution)

    if execution.direction != EXPECTED_DIRECTION[bias.bias]:
        reason = "Execution direction does not match 2H bias"
        log_gate_decision(logger, "direction", False, profile.symbol, reason)
        return result(Decision.WATCH, reason, bias, liquidity, execution)

    if profile.use_session_filter and not session_valid:
        reason = "Outside valid trading session"
        log_gate_decision(logger, "session", False, profile.symbol, reason,
                          {"now": now.isoformat()})
        return result(Decision.WATCH, reason, bias, liquidity, execution)

    rule_failure = instrument_rule_failure(profile, bias, liquidity, execution)
    if rule_failure:
        log_gate_decision(logger, "instrument_rules", False, profile.symbol, rule_failure,
                          {"type": profile.type.value})
        return result(Decision.WATCH, rule_failure, bias, liquidity, execution)

    log_gate_decision(logger, "final", True, profile.symbol, "All conditions met")
    return result(Decision.TRADE_SETUP, "All conditions met", bias, liquidity, execution)
