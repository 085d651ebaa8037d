"""
Signal lifecycle orchestration.

Ties the pure transition functions to the store and the upstream feeds:
re-analysis passes refresh every open signal from fresh candles, price
ticks move active signals to their exits.
"""

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Optional

from ..analysis.composer import run_analysis
from ..analysis.instruments import resolve_profile
from ..config.loader import ConfigLoader
from ..data.models import Timeframe
from ..data.normalizer import CandleNormalizer
from ..errors import (
    DataQualityError,
    GracefulDegradationError,
    InsufficientDataError,
    PersistenceError,
    RecoverableError,
)
from ..feeds.base import ResilientFeed
from ..logging.config import get_logger
from ..models.analysis import AnalysisResult
from ..persistence.store import SignalStore, new_id
from ..utils.locks import KeyedLocks
from ..utils.time import now_utc
from .machine import advance_signal, evaluate_exit
from .models import OperationOutcome, SignalStatus, WatchlistSignal

logger = get_logger(__name__)

OPEN_SIGNAL_STATUSES = (SignalStatus.WATCHING, SignalStatus.SIGNAL_READY, SignalStatus.ACTIVE)
TIMEFRAMES = (Timeframe.H2, Timeframe.M15, Timeframe.M5)


class SignalLifecycleManager:
    """Runs re-analysis and price-tick passes over an owner's watchlist."""

    def __init__(
        self,
        store: SignalStore,
        feed: Optional[ResilientFeed] = None,
        loader: Optional[ConfigLoader] = None,
        apply_window: bool = True,
    ):
        self.store = store
        self.loader = loader or ConfigLoader.create()
        self.feed = feed or ResilientFeed(params=self.loader.defaults.feeds)
        self.apply_window = apply_window
        self.instrument_locks = KeyedLocks()

    def add_to_watchlist(self, owner: str, instrument: str,
                         now: Optional[datetime] = None) -> OperationOutcome:
        """Start watching an instrument; one open signal per owner and instrument."""
        now = now_utc(now)
        instrument = instrument.upper()

        existing = self.store.list_signals(owner=owner, statuses=OPEN_SIGNAL_STATUSES,
                                           instrument=instrument)
        if existing:
            return OperationOutcome.failure(f"{instrument} is already on the watchlist",
                                            signal=existing[0])

        signal = WatchlistSignal(id=new_id(), owner=owner, instrument=instrument, created_at=now)
        self.store.save_signal(signal)
        logger.info("Instrument added to watchlist", owner=owner, instrument=instrument,
                    signal_id=signal.id)
        return OperationOutcome.success("Added to watchlist", signal=signal)

    def analyze_instrument(self, instrument: str, now: Optional[datetime] = None) -> AnalysisResult:
        """
        Fetch, normalize and analyze the three timeframes of one instrument.

        Raises:
            UpstreamUnavailableError: If a timeframe could not be fetched
            InsufficientDataError: If the provider returned no candles for a timeframe
            GracefulDegradationError: If a payload held no usable candle
        """
        now = now_utc(now)
        config = self.loader.load(instrument)
        profile = resolve_profile(instrument, self.loader.load_instrument_profile(instrument))
        normalizer = CandleNormalizer(config.window)

        series = {}
        for timeframe in TIMEFRAMES:
            payload = self.feed.fetch(instrument, timeframe)
            if not payload:
                raise InsufficientDataError(
                    f"No {timeframe.value} candles for {instrument}",
                    required_count=1,
                    available_count=0,
                )
            normalized = normalizer.normalize(payload, timeframe=timeframe, now=now,
                                              apply_window=self.apply_window)
            series[timeframe] = normalized.candles

        return run_analysis(instrument, series, config=config, profile=profile, now=now)

    def _open_signals(self, owner: str, signal_ids: Optional[Iterable[str]]) -> tuple[
            list[WatchlistSignal], dict[str, OperationOutcome]]:
        """Open signals to process plus failure outcomes for requested IDs that cannot be."""
        if signal_ids is None:
            return self.store.list_signals(owner=owner, statuses=OPEN_SIGNAL_STATUSES), {}

        signals, outcomes = [], {}
        for signal_id in signal_ids:
            signal = self.store.get_signal(signal_id)
            if signal is None or signal.owner != owner:
                outcomes[signal_id] = OperationOutcome.failure("Signal not found")
            elif signal.is_terminal:
                outcomes[signal_id] = OperationOutcome.failure(
                    f"Signal already closed ({signal.status.value})")
            else:
                signals.append(signal)
        return signals, outcomes

    def run_reanalysis(
        self,
        owner: str,
        signal_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, OperationOutcome]:
        """
        Re-analyze an owner's open signals, or a single one.

        Each instrument is analyzed once per pass. An instrument whose data
        cannot be fetched or normalized is skipped and its signals keep
        their state.

        Returns:
            Outcome per signal ID
        """
        now = now_utc(now)
        signals, outcomes = self._open_signals(owner, None if signal_id is None else [signal_id])

        by_instrument: dict[str, list[WatchlistSignal]] = {}
        for signal in signals:
            by_instrument.setdefault(signal.instrument, []).append(signal)

        for instrument, members in by_instrument.items():
            try:
                result = self.analyze_instrument(instrument, now)
                run_id = self.store.save_analysis_run(result)
            except (DataQualityError, RecoverableError, GracefulDegradationError,
                    PersistenceError) as e:
                logger.warning("Re-analysis skipped", instrument=instrument, error=str(e),
                               error_type=type(e).__name__)
                for signal in members:
                    outcomes[signal.id] = OperationOutcome.failure(f"Analysis unavailable: {e}")
                continue

            with self.instrument_locks.hold(instrument):
                for signal in members:
                    outcomes[signal.id] = self._apply_analysis(signal.id, result, run_id, now)

        return outcomes

    def _apply_analysis(self, signal_id: str, result: AnalysisResult, run_id: str,
                        now: datetime) -> OperationOutcome:
        # Reload under the instrument lock so a concurrent tick is not overwritten
        signal = self.store.get_signal(signal_id)
        if signal is None or signal.is_terminal:
            return OperationOutcome.failure("Signal closed during analysis")

        updated = advance_signal(signal, replace(result, id=run_id), now)
        try:
            self.store.save_signal(updated, analysis_run_id=run_id)
        except PersistenceError as e:
            logger.error("Failed to store signal", signal_id=signal_id, error=str(e))
            return OperationOutcome.failure(f"Failed to store signal: {e}")

        return OperationOutcome(
            ok=True,
            reason=result.reason,
            state_unchanged=updated.status == signal.status,
            data={"status": updated.status.value, "decision": result.final_decision.value,
                  "analysis_run_id": run_id},
        )

    def run_price_tick(
        self,
        owner: str,
        signal_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, OperationOutcome]:
        """
        Fetch one price per instrument and apply it to the owner's open signals.

        Prices are fetched concurrently; each instrument's signals are then
        evaluated under that instrument's lock.

        Returns:
            Outcome per signal ID
        """
        now = now_utc(now)
        signals, outcomes = self._open_signals(owner, signal_ids)

        by_instrument: dict[str, list[str]] = {}
        for signal in signals:
            by_instrument.setdefault(signal.instrument, []).append(signal.id)
        if not by_instrument:
            return outcomes

        max_workers = max(1, min(self.feed.params.max_workers, len(by_instrument)))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                instrument: executor.submit(self.feed.current_price, instrument)
                for instrument in by_instrument
            }
            prices: dict[str, float] = {}
            for instrument, future in futures.items():
                try:
                    prices[instrument] = future.result()
                except RecoverableError as e:
                    logger.warning("Price unavailable, skipping instrument",
                                   instrument=instrument, error=str(e))
                    for signal_id in by_instrument[instrument]:
                        outcomes[signal_id] = OperationOutcome.failure(f"Price unavailable: {e}")

        for instrument, price in prices.items():
            with self.instrument_locks.hold(instrument):
                for signal_id in by_instrument[instrument]:
                    outcomes[signal_id] = self._apply_price(signal_id, price, now)

        return outcomes

    def _apply_price(self, signal_id: str, price: float, now: datetime) -> OperationOutcome:
        signal = self.store.get_signal(signal_id)
        if signal is None or signal.is_terminal:
            return OperationOutcome.failure("Signal already closed")

        updated = evaluate_exit(signal, price, now)
        try:
            self.store.save_signal(updated)
        except PersistenceError as e:
            logger.error("Failed to store signal", signal_id=signal_id, error=str(e))
            return OperationOutcome.failure(f"Failed to store signal: {e}")

        data = {"status": updated.status.value, "price": price}
        if updated.exit_reason is not None:
            data["exit_reason"] = updated.exit_reason.value
        return OperationOutcome(ok=True, state_unchanged=updated.status == signal.status, data=data)
