"""
Watchlist signal state machine.

Pure transition functions: each takes a signal plus new information and
returns the updated signal. Terminal signals (hit_sl / hit_tp) come back
unchanged from every function.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

from ..errors import StateTransitionError
from ..logging.config import get_state_logger, log_state_transition
from ..models.analysis import AnalysisResult, Decision, TradeDirection
from ..utils.time import now_utc
from .models import ExitReason, SignalStatus, WatchlistSignal

state_logger = get_state_logger(__name__)


def advance_signal(
    signal: WatchlistSignal,
    result: AnalysisResult,
    now: Optional[datetime] = None,
) -> WatchlistSignal:
    """
    Apply a fresh analysis result to a signal.

    TRADE_SETUP moves ``watching`` to ``signal_ready`` and captures the
    execution levels; on ``signal_ready`` it refreshes the levels in place.
    Every other combination keeps the status. The snapshot and
    ``last_analyzed_at`` are refreshed for any non-terminal signal.

    Args:
        signal: Current signal
        result: Analysis result for the signal's instrument
        now: Time of the analysis

    Returns:
        Updated signal
    """
    if signal.is_terminal:
        return signal

    now = now_utc(now)
    updated = signal.with_snapshot(result, now)

    execution = result.timeframe_5m
    has_levels = (
        execution.direction is not None
        and execution.entry_price is not None
        and execution.stop_price is not None
    )

    if result.final_decision != Decision.TRADE_SETUP or not has_levels:
        return updated

    targets = (execution.target_price,) if execution.target_price is not None else ()

    if signal.status == SignalStatus.WATCHING:
        log_state_transition(
            state_logger,
            signal_id=signal.id,
            from_state=signal.status.value,
            to_state=SignalStatus.SIGNAL_READY.value,
            trigger="trade_setup",
            context={
                "instrument": signal.instrument,
                "direction": execution.direction.value,
                "entry_price": execution.entry_price,
                "stop_loss": execution.stop_price,
                "take_profit": list(targets),
            },
        )
        updated = updated.with_levels(execution.direction, execution.entry_price,
                                      execution.stop_price, targets)
        return replace(updated, status=SignalStatus.SIGNAL_READY, signal_generated_at=now)

    if signal.status == SignalStatus.SIGNAL_READY:
        state_logger.info(
            "Signal levels refreshed",
            signal_id=signal.id,
            entry_price=execution.entry_price,
            stop_loss=execution.stop_price,
        )
        return updated.with_levels(execution.direction, execution.entry_price,
                                   execution.stop_price, targets)

    return updated


def activate_signal(signal: WatchlistSignal, now: Optional[datetime] = None) -> WatchlistSignal:
    """
    Mark a ready signal as active once the trade has been executed.

    Raises:
        StateTransitionError: If the signal is not ``signal_ready``
    """
    if signal.status != SignalStatus.SIGNAL_READY:
        raise StateTransitionError(
            f"Cannot activate signal {signal.id} from {signal.status.value}",
            current_state=signal.status.value,
            attempted_transition=SignalStatus.ACTIVE.value,
            context={"signal_id": signal.id},
        )

    now = now_utc(now)
    log_state_transition(
        state_logger,
        signal_id=signal.id,
        from_state=signal.status.value,
        to_state=SignalStatus.ACTIVE.value,
        trigger="trade_executed",
        context={"timestamp": now.isoformat()},
    )
    return signal.with_status(SignalStatus.ACTIVE)


def check_exit(signal: WatchlistSignal, price: float) -> Optional[ExitReason]:
    """
    Exit condition for an active signal at ``price``; stop is checked first.

    Long: ``price <= stop_loss`` is SL, ``price >= any take profit`` is TP.
    Short mirrors both inequalities.
    """
    if signal.direction is None:
        return None

    if signal.direction == TradeDirection.LONG:
        if signal.stop_loss is not None and price <= signal.stop_loss:
            return ExitReason.SL
        if any(price >= tp for tp in signal.take_profit):
            return ExitReason.TP
    else:
        if signal.stop_loss is not None and price >= signal.stop_loss:
            return ExitReason.SL
        if any(price <= tp for tp in signal.take_profit):
            return ExitReason.TP

    return None


def evaluate_exit(
    signal: WatchlistSignal,
    price: float,
    now: Optional[datetime] = None,
) -> WatchlistSignal:
    """
    Apply a price tick to a signal.

    Non-terminal signals record the price. Active signals that reach their
    stop or a target become terminal with exit price, reason and close time.
    """
    if signal.is_terminal:
        return signal

    now = now_utc(now)
    updated = signal.with_price(price, now)

    if signal.status != SignalStatus.ACTIVE:
        return updated

    reason = check_exit(signal, price)
    if reason is None:
        return updated

    status = SignalStatus.HIT_SL if reason == ExitReason.SL else SignalStatus.HIT_TP
    log_state_transition(
        state_logger,
        signal_id=signal.id,
        from_state=signal.status.value,
        to_state=status.value,
        trigger="price_exit",
        context={
            "price": price,
            "stop_loss": signal.stop_loss,
            "take_profit": list(signal.take_profit),
            "direction": signal.direction.value,
        },
    )
    return updated.with_exit(status, reason, price, now)
