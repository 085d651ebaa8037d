"""
SignalEngine facade.

One object wiring configuration, normalization, analysis, the signal
lifecycle and the cooldown gate around a shared store and feed.
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, Optional

from .analysis.composer import run_analysis
from .analysis.instruments import resolve_profile
from .config.loader import ConfigLoader
from .config.validation import ConfigValidator
from .data.models import Timeframe
from .data.normalizer import CandleNormalizer
from .errors import GracefulDegradationError, MalformedDataError, StateTransitionError
from .feeds.base import BrokerFacade, MarketDataProvider, ResilientFeed
from .logging.config import get_logger
from .models.analysis import AnalysisResult, TradeDirection
from .persistence.store import SignalStore
from .state import machine
from .state.cooldown import CooldownGate
from .state.models import BatchCloseResult, CloseFilter, OperationOutcome, WatchlistSignal
from .state.runtime import SignalLifecycleManager

logger = get_logger(__name__)


class SignalEngine:
    """
    Entry point for callers that do not want to wire the pieces themselves.

    Example:
        engine = SignalEngine(store=SignalStore(":memory:"), provider=my_feed)
        result = engine.run_analysis("EURUSD", {"2h": h2, "15m": m15, "5m": m5})
    """

    def __init__(
        self,
        store: Optional[SignalStore] = None,
        provider: Optional[MarketDataProvider] = None,
        broker: Optional[BrokerFacade] = None,
        loader: Optional[ConfigLoader] = None,
    ):
        self.loader = loader or ConfigLoader.create()
        self.store = store or SignalStore()
        self.feed = ResilientFeed(provider, broker, self.loader.defaults.feeds)
        self.lifecycle = SignalLifecycleManager(self.store, self.feed, self.loader)
        self.cooldowns = CooldownGate(self.store, self.feed, self.loader.defaults.cooldown)

    # Analysis

    def run_analysis(
        self,
        instrument: str,
        series_by_timeframe: Mapping[Any, Iterable[Any]],
        overrides: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """
        Normalize caller-supplied candles and analyze them.

        Args:
            instrument: Instrument symbol
            series_by_timeframe: Raw candles keyed by Timeframe or its value ("2h", "15m", "5m")
            overrides: Per-call parameter overrides, highest precedence
            now: Analysis time

        Raises:
            MalformedDataError: If the overrides fail validation
        """
        if overrides:
            errors = ConfigValidator.validate_config(overrides)
            if errors:
                raise MalformedDataError(
                    f"Invalid configuration overrides: {errors[0].field}: {errors[0].message}",
                    raw_data=str(overrides),
                    expected_format="validated parameter overrides",
                )

        config = self.loader.load(instrument, overrides)
        profile = resolve_profile(instrument, self.loader.load_instrument_profile(instrument))
        normalizer = CandleNormalizer(config.window)

        series = {}
        for key, payload in series_by_timeframe.items():
            timeframe = Timeframe(key)
            try:
                series[timeframe] = normalizer.normalize(payload, timeframe=timeframe).candles
            except GracefulDegradationError as e:
                # Treated as a missing timeframe; analysis reports insufficient data
                logger.warning("Timeframe payload unusable", instrument=instrument,
                               timeframe=timeframe.value, error=str(e))
                series[timeframe] = ()

        result = run_analysis(instrument, series, config=config, profile=profile, now=now)
        logger.info("Analysis complete", instrument=result.instrument,
                    decision=result.final_decision.value, reason=result.reason)
        return result

    # Signal lifecycle

    def add_to_watchlist(self, owner: str, instrument: str,
                         now: Optional[datetime] = None) -> OperationOutcome:
        return self.lifecycle.add_to_watchlist(owner, instrument, now)

    def _transition(self, signal: WatchlistSignal,
                    apply: Callable[[WatchlistSignal], WatchlistSignal]) -> WatchlistSignal:
        """
        Apply ``apply`` to the stored copy of ``signal`` under its instrument lock.

        A signal the store already holds as closed is returned unchanged, so
        a stale caller copy can never reopen or re-exit it.
        """
        with self.lifecycle.instrument_locks.hold(signal.instrument):
            stored = self.store.get_signal(signal.id) or signal
            if stored.is_terminal:
                return stored
            updated = apply(stored)
            self.store.save_signal(updated)
            return updated

    def advance_signal(self, signal: WatchlistSignal, result: AnalysisResult,
                       now: Optional[datetime] = None) -> WatchlistSignal:
        return self._transition(signal, lambda stored: machine.advance_signal(stored, result, now))

    def activate_signal(self, signal_id: str, now: Optional[datetime] = None) -> OperationOutcome:
        """Mark a stored ``signal_ready`` signal as active."""
        signal = self.store.get_signal(signal_id)
        if signal is None:
            return OperationOutcome.failure("Signal not found")

        try:
            updated = self._transition(signal, lambda stored: machine.activate_signal(stored, now))
        except StateTransitionError as e:
            return OperationOutcome.failure(str(e))
        if updated.is_terminal:
            return OperationOutcome.failure(f"Signal already closed ({updated.status.value})")

        return OperationOutcome.success("Signal activated", signal=updated)

    def evaluate_exit(self, signal: WatchlistSignal, price: float,
                      now: Optional[datetime] = None) -> WatchlistSignal:
        return self._transition(signal, lambda stored: machine.evaluate_exit(stored, price, now))

    def run_reanalysis(self, owner: str, signal_id: Optional[str] = None,
                       now: Optional[datetime] = None) -> dict[str, OperationOutcome]:
        return self.lifecycle.run_reanalysis(owner, signal_id, now)

    def run_price_tick(self, owner: str, signal_ids: Optional[Iterable[str]] = None,
                       now: Optional[datetime] = None) -> dict[str, OperationOutcome]:
        return self.lifecycle.run_price_tick(owner, signal_ids, now)

    # Trades and cooldowns

    def close_trades(
        self,
        owner: str,
        trade_ids: Optional[Iterable[str]] = None,
        close_filter: CloseFilter = CloseFilter.ALL,
        now: Optional[datetime] = None,
    ) -> BatchCloseResult:
        return self.cooldowns.close_trades(owner, trade_ids, close_filter, now)

    def can_open_trade(self, owner: str, now: Optional[datetime] = None) -> OperationOutcome:
        return self.cooldowns.can_open_trade(owner, now)

    def create_trade(self, owner: str, instrument: str, direction: TradeDirection,
                     entry_price: float, **kwargs: Any) -> OperationOutcome:
        return self.cooldowns.create_trade(owner, instrument, direction, entry_price, **kwargs)

    def execute_trade(self, owner: str, trade_id: str,
                      now: Optional[datetime] = None) -> OperationOutcome:
        return self.cooldowns.execute_trade(owner, trade_id, now)
