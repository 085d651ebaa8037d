"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import pytest

from smc_app.config.defaults import FeedParams
from smc_app.data.models import Candle, Timeframe
from smc_app.feeds.base import BrokerFacade, FeedError, MarketDataProvider, PermanentFeedError
from smc_app.persistence.store import SignalStore

BASE_TIME = 1_700_000_000


def build_series(rows, step, start=BASE_TIME):
    """Candles from ``(open, high, low, close)`` rows spaced ``step`` seconds apart."""
    return tuple(
        Candle(time=start + i * step, open=o, high=h, low=l, close=c)
        for i, (o, h, l, c) in enumerate(rows)
    )


@pytest.fixture
def candle_factory():
    """Build a candle series from OHLC rows."""
    def factory(rows, step=300, start=BASE_TIME):
        return build_series(rows, step, start)
    return factory


@pytest.fixture
def bullish_2h():
    """Rising 2h structure with equal lows at 99.0 (buy-side liquidity)."""
    return build_series([
        (100.0, 101.0, 99.0, 100.5),
        (100.5, 101.5, 99.0, 101.0),
        (101.0, 102.0, 100.0, 101.8),
        (101.8, 103.0, 101.0, 102.5),
        (102.5, 104.0, 102.0, 103.5),
        (103.5, 105.0, 103.0, 104.5),
        (104.5, 106.0, 104.0, 105.5),
        (105.5, 107.0, 105.0, 106.5),
    ], Timeframe.H2.seconds)


@pytest.fixture
def sweep_15m():
    """15m bars sweeping 99.0 on bar 1, then leaving a bullish FVG (100.0-100.5)."""
    return build_series([
        (100.0, 100.5, 99.5, 100.2),
        (100.2, 100.3, 98.5, 99.5),
        (99.5, 100.0, 99.2, 99.9),
        (99.9, 101.5, 99.8, 101.4),
        (101.4, 102.0, 100.5, 101.8),
    ], Timeframe.M15.seconds)


@pytest.fixture
def execution_5m():
    """5m bars with a confirmed bullish MSS at bar 3 and an unfilled FVG (100.8-101.2)."""
    return build_series([
        (100.0, 100.5, 99.8, 100.2),
        (100.2, 101.0, 100.0, 100.6),
        (100.6, 100.8, 100.1, 100.3),
        (100.3, 102.0, 100.2, 101.9),
        (101.9, 101.95, 101.2, 101.5),
        (101.5, 101.9, 101.3, 101.7),
        (101.7, 101.9, 101.4, 101.8),
        (101.8, 101.95, 101.5, 101.9),
    ], Timeframe.M5.seconds)


@pytest.fixture
def setup_series(bullish_2h, sweep_15m, execution_5m):
    """All three frames of a complete bullish setup."""
    return {
        Timeframe.H2: bullish_2h,
        Timeframe.M15: sweep_15m,
        Timeframe.M5: execution_5m,
    }


@pytest.fixture
def london_time():
    """A time inside the London open window."""
    return datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def asian_time():
    """A time before London open."""
    return datetime(2024, 3, 5, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store():
    """In-memory signal store, closed after the test."""
    store = SignalStore(":memory:")
    yield store
    store.close()


class FakeBroker(BrokerFacade):
    """Broker with settable prices and switchable failures."""

    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.down = set()
        self.fail_close = False
        self.reject_open = False
        self.opened = []
        self.closed = []

    def current_price(self, instrument):
        if instrument in self.down:
            raise FeedError(f"no quote for {instrument}")
        return self.prices[instrument]

    def open_position(self, instrument, direction, lot_size, stop_loss=None, take_profit=None):
        if self.reject_open:
            raise PermanentFeedError("order rejected")
        self.opened.append((instrument, direction, lot_size))
        return f"C-{len(self.opened)}"

    def close_position(self, instrument, contract_id):
        if self.fail_close:
            raise FeedError("close failed")
        self.closed.append((instrument, contract_id))
        return self.current_price(instrument)


class FakeProvider(MarketDataProvider):
    """Provider serving the same series for every instrument."""

    def __init__(self, series):
        self.series = series
        self.down = set()
        self.calls = []

    def fetch(self, instrument, timeframe):
        self.calls.append((instrument, timeframe))
        if instrument in self.down:
            raise FeedError(f"no candles for {instrument}")
        return list(self.series[timeframe])


@pytest.fixture
def fast_feed_params():
    """Feed limits without retries or waits."""
    return FeedParams(timeout_seconds=5.0, max_retries=0, retry_delay_seconds=0.0)


@pytest.fixture
def fake_broker():
    return FakeBroker()


@pytest.fixture
def fake_provider(setup_series):
    return FakeProvider(setup_series)
