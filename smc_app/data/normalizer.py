"""
Candle payload normalization.

Market data providers hand back lists of loosely shaped dicts: the time may
be called ``time``, ``timestamp`` or ``epoch`` (seconds, milliseconds or an
ISO string) and prices may use long or single-letter keys. The normalizer
maps every item to a Candle, drops invalid ones with a recorded reason,
sorts chronologically and removes duplicate timestamps. Payloads that
arrive as JSON text are decoded with orjson first.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Optional, Union

import orjson
import structlog

from ..config.defaults import WindowParams
from ..errors import (
    DataQualityError,
    GracefulDegradationError,
    MalformedDataError,
    MissingDataError,
    TemporalDataError,
)
from ..utils.time import coerce_epoch_seconds, datetime_to_epoch, now_utc
from .models import Candle, NormalizationResult, Series, Timeframe
from .validators import validate_candle

logger = structlog.get_logger(__name__)

TIME_KEYS = ("time", "timestamp", "epoch")
PRICE_KEYS = {
    "open": ("open", "O", "o"),
    "high": ("high", "H", "h"),
    "low": ("low", "L", "l"),
    "close": ("close", "C", "c"),
}
VOLUME_KEYS = ("volume", "V", "v")

RawCandle = Union[Candle, Mapping[str, Any]]
RawPayload = Union[str, bytes, Iterable[RawCandle]]


def parse_json_payload(raw: Union[str, bytes]) -> list[Any]:
    """
    Decode a JSON payload into a list of raw candles.

    Accepts either a bare array or an object carrying the array under
    ``candles``.

    Raises:
        MalformedDataError: If the text is not JSON or holds no candle array
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise MalformedDataError(f"Invalid JSON: {e}", raw_data=str(raw)[:100],
                                 expected_format="json") from e

    if isinstance(data, Mapping):
        data = data.get("candles")
    if not isinstance(data, list):
        raise MalformedDataError("JSON payload holds no candle array", raw_data=str(raw)[:100],
                                 expected_format="[candle, ...] or {\"candles\": [...]}")
    return data


def _first_present(item: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = item.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_time(value: Any) -> int:
    """
    Parse a raw timestamp into epoch seconds.

    Raises:
        TemporalDataError: If the value is not a number, datetime or ISO string
    """
    if isinstance(value, bool):
        raise TemporalDataError(f"Invalid timestamp {value!r}")

    if isinstance(value, (int, float)):
        return coerce_epoch_seconds(value)

    if isinstance(value, datetime):
        return datetime_to_epoch(value)

    if isinstance(value, str):
        try:
            return coerce_epoch_seconds(float(value))
        except ValueError:
            pass
        try:
            return datetime_to_epoch(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError as e:
            raise TemporalDataError(f"Unparseable timestamp {value!r}") from e

    raise TemporalDataError(f"Unsupported timestamp type {type(value).__name__}")


def parse_candle(item: RawCandle) -> Candle:
    """
    Map one raw item to a validated Candle.

    Raises:
        MissingDataError: If the time or a price field is absent
        MalformedDataError: If a field is not numeric or OHLC bounds fail
        TemporalDataError: If the timestamp cannot be parsed
    """
    if isinstance(item, Candle):
        validate_candle(item)
        return item

    if not isinstance(item, Mapping):
        raise MalformedDataError(
            f"Expected a mapping, got {type(item).__name__}",
            raw_data=str(item)[:100],
            expected_format="dict",
        )

    raw_time = _first_present(item, TIME_KEYS)
    if raw_time is None:
        raise MissingDataError("Candle missing timestamp", data_type="time")

    prices = {}
    for name, keys in PRICE_KEYS.items():
        raw = _first_present(item, keys)
        if raw is None:
            raise MissingDataError(f"Candle missing {name}", data_type=name)
        try:
            prices[name] = float(raw)
        except (TypeError, ValueError) as e:
            raise MalformedDataError(
                f"Non-numeric {name}: {raw!r}",
                raw_data=str(item)[:100],
                expected_format="float",
            ) from e

    volume = None
    raw_volume = _first_present(item, VOLUME_KEYS)
    if raw_volume is not None:
        try:
            volume = float(raw_volume)
        except (TypeError, ValueError) as e:
            raise MalformedDataError(
                f"Non-numeric volume: {raw_volume!r}",
                raw_data=str(item)[:100],
                expected_format="float",
            ) from e

    candle = Candle(time=parse_time(raw_time), volume=volume, **prices)
    validate_candle(candle)
    return candle


def enforce_window(candles: Series, now: datetime, hours: int) -> Series:
    """Keep only candles opened within the last ``hours`` before ``now``."""
    cutoff = datetime_to_epoch(now) - hours * 60 * 60
    return tuple(c for c in candles if c.time >= cutoff)


def tail(candles: Series, max_bars: int) -> Series:
    """Keep the most recent ``max_bars`` candles."""
    if max_bars <= 0:
        return ()
    return tuple(candles[-max_bars:])


class CandleNormalizer:
    """
    Turns raw provider payloads into analysis-ready series.

    Handles the complete flow from loosely shaped dicts to a sorted,
    duplicate-free tuple of candles, reporting what was dropped and why.
    """

    def __init__(self, window: Optional[WindowParams] = None):
        self.window = window or WindowParams()

    def max_bars_for(self, timeframe: Timeframe) -> int:
        """Bar cap of the analysis window for a timeframe."""
        return {
            Timeframe.H2: self.window.max_bars_2h,
            Timeframe.M15: self.window.max_bars_15m,
            Timeframe.M5: self.window.max_bars_5m,
        }[timeframe]

    def normalize(
        self,
        payload: Optional[RawPayload],
        timeframe: Optional[Timeframe] = None,
        now: Optional[datetime] = None,
        apply_window: bool = False,
    ) -> NormalizationResult:
        """
        Normalize a raw payload.

        Args:
            payload: Raw candles from a provider (dicts or Candle objects), or
                the provider's JSON text
            timeframe: Timeframe of the payload; enables the bar cap
            now: Reference time for the age window
            apply_window: Drop candles older than the configured window

        Returns:
            NormalizationResult with the cleaned series

        Raises:
            MalformedDataError: If a JSON payload cannot be decoded
            GracefulDegradationError: If the payload had items but none survived
        """
        if isinstance(payload, (str, bytes)):
            payload = parse_json_payload(payload)
        items = list(payload or [])
        parsed: list[Candle] = []
        rejected: list[str] = []

        for index, item in enumerate(items):
            try:
                parsed.append(parse_candle(item))
            except DataQualityError as e:
                rejected.append(f"item {index}: {e}")

        if rejected:
            logger.warning(
                "Rejected invalid candles",
                timeframe=timeframe.value if timeframe else None,
                rejected=len(rejected),
                total=len(items),
            )

        if items and not parsed:
            raise GracefulDegradationError(
                f"Failed to normalize {len(items)} candles",
                degraded_functionality="candle_series",
                fallback_strategy="empty_series",
            )

        # Stable sort, later duplicates win
        by_time: dict[int, Candle] = {}
        for candle in sorted(parsed, key=lambda c: c.time):
            by_time[candle.time] = candle
        duplicates = len(parsed) - len(by_time)
        candles: Series = tuple(by_time[t] for t in sorted(by_time))

        out_of_window = 0
        if apply_window:
            windowed = enforce_window(candles, now_utc(now), self.window.hours)
            out_of_window = len(candles) - len(windowed)
            candles = windowed

        if timeframe is not None:
            candles = tail(candles, self.max_bars_for(timeframe))

        return NormalizationResult(
            candles=candles,
            rejected=tuple(rejected),
            duplicates_removed=duplicates,
            out_of_window=out_of_window,
            timeframe=timeframe,
        )


def normalize_candles(
    payload: Optional[RawPayload],
    timeframe: Optional[Timeframe] = None,
) -> Series:
    """Normalize a payload with default window settings and return the series."""
    return CandleNormalizer().normalize(payload, timeframe=timeframe).candles
