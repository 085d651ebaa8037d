"""
Candle invariant checks.

Each check raises a data quality error naming the offending field; the
normalizer turns those into per-candle rejections rather than failing the
whole payload.
"""

from collections.abc import Sequence

from ..errors import MalformedDataError, TemporalDataError
from .models import Candle


def validate_candle(candle: Candle) -> None:
    """
    Validate OHLC bounds of a single candle.

    Raises:
        MalformedDataError: If a price is non-positive or the bounds
            low <= min(open, close) <= max(open, close) <= high fail
        TemporalDataError: If the timestamp is not a positive epoch
    """
    if candle.time <= 0:
        raise TemporalDataError(f"Invalid candle time {candle.time}", timestamp=candle.time)

    prices = (candle.open, candle.high, candle.low, candle.close)
    if not all(price > 0 for price in prices):
        raise MalformedDataError(
            "All candle prices must be positive",
            raw_data=repr(candle),
            expected_format="positive OHLC",
        )

    if candle.high < candle.low:
        raise MalformedDataError(
            f"High {candle.high} below low {candle.low}",
            raw_data=repr(candle),
            expected_format="high >= low",
        )

    if candle.low > min(candle.open, candle.close):
        raise MalformedDataError(
            f"Low {candle.low} must be <= min(open {candle.open}, close {candle.close})",
            raw_data=repr(candle),
            expected_format="low <= min(open, close)",
        )

    if candle.high < max(candle.open, candle.close):
        raise MalformedDataError(
            f"High {candle.high} must be >= max(open {candle.open}, close {candle.close})",
            raw_data=repr(candle),
            expected_format="high >= max(open, close)",
        )

    if candle.volume is not None and candle.volume < 0:
        raise MalformedDataError(
            f"Negative volume {candle.volume}",
            raw_data=repr(candle),
            expected_format="volume >= 0",
        )


def validate_series(candles: Sequence[Candle]) -> None:
    """
    Validate every candle and strict chronological ordering.

    Raises:
        MalformedDataError: On the first candle violating OHLC bounds
        TemporalDataError: On the first out-of-order or duplicate timestamp
    """
    previous = None
    for candle in candles:
        validate_candle(candle)
        if previous is not None and candle.time <= previous.time:
            raise TemporalDataError(
                f"Candle at {candle.time} not after {previous.time}",
                timestamp=candle.time,
                previous_timestamp=previous.time,
            )
        previous = candle


def is_valid_series(candles: Sequence[Candle]) -> bool:
    """Boolean form of validate_series."""
    try:
        validate_series(candles)
    except (MalformedDataError, TemporalDataError):
        return False
    return True
