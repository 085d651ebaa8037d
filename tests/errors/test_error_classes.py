"""
Error classification tests.

Covers the three error families and checks that the data layer, feeds and
store raise the class their callers expect to handle.
"""

import pytest

from smc_app.data.normalizer import CandleNormalizer, parse_candle
from smc_app.errors import (
    ConcurrentConflictError,
    DataQualityError,
    GracefulDegradationError,
    InsufficientDataError,
    MalformedDataError,
    MissingDataError,
    PersistenceError,
    RecoverableError,
    StateTransitionError,
    SystemFailureError,
    TemporalDataError,
    UpstreamUnavailableError,
)
from smc_app.feeds.base import FeedError, call_with_retry
from smc_app.persistence.store import SignalStore


class TestErrorClassification:
    """Test error classification system."""

    def test_data_quality_error_hierarchy(self):
        """Data quality errors are recoverable and carry their context."""
        base_error = DataQualityError("base error")
        assert base_error.recoverable is True
        assert base_error.context == {}

        temporal_error = TemporalDataError("out of order", timestamp=300, previous_timestamp=600)
        assert isinstance(temporal_error, DataQualityError)
        assert temporal_error.previous_timestamp == 600

        missing_error = MissingDataError("no close", data_type="close")
        assert missing_error.data_type == "close"

        malformed_error = MalformedDataError("bad high", raw_data="{}", expected_format="float")
        assert malformed_error.expected_format == "float"

        insufficient_error = InsufficientDataError("too short", required_count=3, available_count=1)
        assert isinstance(insufficient_error, DataQualityError)
        assert insufficient_error.required_count == 3
        assert insufficient_error.available_count == 1

    def test_system_failure_error_hierarchy(self):
        """System failures are not recoverable."""
        state_error = StateTransitionError("not ready", current_state="watching",
                                           attempted_transition="active",
                                           context={"signal_id": "s1"})
        assert isinstance(state_error, SystemFailureError)
        assert state_error.recoverable is False
        assert state_error.context == {"signal_id": "s1"}

        persistence_error = PersistenceError("locked", operation="insert", target="db.sqlite")
        assert persistence_error.operation == "insert"

        conflict_error = ConcurrentConflictError("busy", resource="u1")
        assert isinstance(conflict_error, SystemFailureError)
        assert conflict_error.resource == "u1"

    def test_recovery_categories(self):
        upstream_error = UpstreamUnavailableError("down", source="broker", instrument="R_50",
                                                  retry_count=3, max_retries=2)
        assert isinstance(upstream_error, RecoverableError)
        assert upstream_error.recoverable is True
        assert upstream_error.source == "broker"
        assert upstream_error.retry_count == 3

        degraded = GracefulDegradationError("empty", degraded_functionality="candle_series",
                                            fallback_strategy="empty_series")
        assert degraded.allows_degradation is True
        assert not isinstance(degraded, DataQualityError)


class TestRaisedByComponents:
    """Test that components raise the class their callers catch."""

    def test_bad_candle_is_data_quality(self):
        with pytest.raises(DataQualityError):
            parse_candle({"time": 1_700_000_000, "open": "x", "high": 1, "low": 1, "close": 1})

    def test_unusable_payload_degrades(self):
        with pytest.raises(GracefulDegradationError) as exc_info:
            CandleNormalizer().normalize([{"open": 1.0}])

        assert exc_info.value.fallback_strategy == "empty_series"

    def test_exhausted_retries_are_recoverable(self):
        def always_down():
            raise FeedError("connection reset")

        with pytest.raises(RecoverableError) as exc_info:
            call_with_retry(always_down, timeout=1.0, max_retries=1, retry_delay=0.0,
                            source="provider", instrument="R_50")

        assert isinstance(exc_info.value, UpstreamUnavailableError)
        assert exc_info.value.instrument == "R_50"
        assert "connection reset" in str(exc_info.value)

    def test_store_failure_is_system_failure(self):
        store = SignalStore(":memory:")
        store.close()

        with pytest.raises(SystemFailureError) as exc_info:
            store.get_signal("missing")

        assert isinstance(exc_info.value, PersistenceError)
