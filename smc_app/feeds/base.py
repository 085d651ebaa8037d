"""Base classes for market data and broker access."""

import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional, TypeVar

import structlog

from ..config.defaults import FeedParams
from ..data.models import Timeframe
from ..errors import UpstreamUnavailableError
from ..models.analysis import TradeDirection

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class FeedError(Exception):
    """Retryable failure reported by a provider or broker."""
    pass


class PermanentFeedError(FeedError):
    """Failure that should not be retried (bad symbol, rejected order)."""
    pass


class MarketDataProvider(ABC):
    """Source of candle series."""

    @abstractmethod
    def fetch(self, instrument: str, timeframe: Timeframe) -> list[Any]:
        """
        Fetch candles covering at least the configured lookback window.

        Returns:
            Candles or raw candle dicts, in any order; may be shorter than requested
        """
        pass


class BrokerFacade(ABC):
    """Price source and order execution. Each call is all-or-nothing."""

    @abstractmethod
    def current_price(self, instrument: str) -> float:
        pass

    @abstractmethod
    def open_position(
        self,
        instrument: str,
        direction: TradeDirection,
        lot_size: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> str:
        """Open a position and return the broker contract ID."""
        pass

    def close_position(self, instrument: str, contract_id: Optional[str]) -> float:
        """Close a position and return the fill price; defaults to the current price."""
        return self.current_price(instrument)


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    timeout: float = 10.0,
    max_retries: int = 2,
    retry_delay: float = 0.5,
    source: str = "upstream",
    instrument: Optional[str] = None,
    **kwargs: Any,
) -> T:
    """
    Call ``func`` with a per-attempt timeout and a fixed retry budget.

    Args:
        func: Outbound call
        timeout: Seconds allowed per attempt
        max_retries: Retries after the first attempt
        retry_delay: Seconds to wait between attempts
        source: Name used in logs and the raised error
        instrument: Instrument the call concerns

    Returns:
        The call's result

    Raises:
        UpstreamUnavailableError: When every attempt failed or timed out, or
            on a PermanentFeedError
    """
    attempt = 0
    last_error: Optional[BaseException] = None
    last_error_text = ""

    while attempt <= max_retries:
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(func, *args, **kwargs)
            return future.result(timeout=timeout)
        except PermanentFeedError as e:
            raise UpstreamUnavailableError(
                f"{source} rejected call: {e}",
                source=source,
                instrument=instrument,
                retry_count=attempt,
                max_retries=max_retries,
            ) from e
        except FutureTimeoutError as e:
            last_error = e
            last_error_text = f"timed out after {timeout}s"
        except Exception as e:
            # Unknown provider errors are treated as retryable
            last_error = e
            last_error_text = str(e)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        attempt += 1
        if attempt <= max_retries:
            logger.warning(
                "Upstream call failed, retrying",
                source=source,
                instrument=instrument,
                attempt=attempt,
                error=last_error_text,
            )
            time.sleep(retry_delay)

    raise UpstreamUnavailableError(
        f"{source} unavailable after {max_retries + 1} attempts: {last_error_text}",
        source=source,
        instrument=instrument,
        retry_count=attempt,
        max_retries=max_retries,
    ) from last_error


def _as_price(func: Callable[..., Any]) -> Callable[..., float]:
    """Wrap a broker call so a malformed quote fails inside the retried call."""
    def call(*args: Any) -> float:
        value = func(*args)
        try:
            price = float(value)
        except (TypeError, ValueError) as e:
            raise PermanentFeedError(f"Malformed price {value!r}") from e
        if not math.isfinite(price) or price <= 0:
            raise PermanentFeedError(f"Malformed price {value!r}")
        return price
    return call


class ResilientFeed:
    """Provider and broker access with timeouts and retries from FeedParams."""

    def __init__(
        self,
        provider: Optional[MarketDataProvider] = None,
        broker: Optional[BrokerFacade] = None,
        params: Optional[FeedParams] = None,
    ):
        self.provider = provider
        self.broker = broker
        self.params = params or FeedParams()

    def _call(self, func: Callable[..., T], *args: Any, source: str,
              instrument: Optional[str], **kwargs: Any) -> T:
        return call_with_retry(
            func, *args,
            timeout=self.params.timeout_seconds,
            max_retries=self.params.max_retries,
            retry_delay=self.params.retry_delay_seconds,
            source=source,
            instrument=instrument,
            **kwargs,
        )

    def fetch(self, instrument: str, timeframe: Timeframe) -> list[Any]:
        if self.provider is None:
            raise UpstreamUnavailableError("No market data provider configured",
                                           source="market_data", instrument=instrument)
        return self._call(self.provider.fetch, instrument, timeframe,
                          source="market_data", instrument=instrument)

    def current_price(self, instrument: str) -> float:
        if self.broker is None:
            raise UpstreamUnavailableError("No broker configured", source="broker",
                                           instrument=instrument)
        return self._call(_as_price(self.broker.current_price), instrument,
                          source="broker", instrument=instrument)

    def open_position(self, instrument: str, direction: TradeDirection, lot_size: float,
                      stop_loss: Optional[float] = None,
                      take_profit: Optional[float] = None) -> str:
        if self.broker is None:
            raise UpstreamUnavailableError("No broker configured", source="broker",
                                           instrument=instrument)
        return self._call(self.broker.open_position, instrument, direction, lot_size,
                          stop_loss, take_profit, source="broker", instrument=instrument)

    def close_position(self, instrument: str, contract_id: Optional[str]) -> float:
        if self.broker is None:
            raise UpstreamUnavailableError("No broker configured", source="broker",
                                           instrument=instrument)
        return self._call(_as_price(self.broker.close_position), instrument, contract_id,
                          source="broker", instrument=instrument)
