"""End-to-end tests through the SignalEngine facade."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from smc_app.config.loader import ConfigLoader
from smc_app.data.models import Timeframe
from smc_app.engine import SignalEngine
from smc_app.errors import MalformedDataError
from smc_app.models.analysis import Decision, TradeDirection
from smc_app.state.models import CooldownKind, SignalStatus, TradeStatus, WatchlistSignal

# Two hours after the last 2h fixture bar, inside the 48h window
NOW = datetime.fromtimestamp(1_700_000_000 + 16 * 60 * 60, tz=timezone.utc)


@pytest.fixture
def engine(memory_store, fake_provider, fake_broker, tmp_path):
    return SignalEngine(store=memory_store, provider=fake_provider, broker=fake_broker,
                        loader=ConfigLoader.create(tmp_path))


def _as_payload(candles):
    return [
        {"timestamp": c.time * 1000, "O": str(c.open), "H": str(c.high),
         "L": str(c.low), "C": str(c.close)}
        for c in reversed(candles)
    ]


class TestRunAnalysis:
    """Test analysis of caller-supplied candles."""

    def test_raw_payloads(self, engine, setup_series):
        payloads = {tf.value: _as_payload(candles) for tf, candles in setup_series.items()}

        result = engine.run_analysis("R_50", payloads, now=NOW)

        assert result.final_decision == Decision.TRADE_SETUP
        assert result.timeframe_5m.entry_price == pytest.approx(101.0)

    def test_valid_overrides(self, engine, setup_series):
        result = engine.run_analysis("R_50", setup_series,
                                     overrides={"execution": {"target_risk_multiple": 3.0}}, now=NOW)

        assert result.timeframe_5m.risk_reward_ratio == pytest.approx(3.0)

    def test_invalid_overrides_rejected(self, engine, setup_series):
        with pytest.raises(MalformedDataError, match="stop_buffer_pct"):
            engine.run_analysis("R_50", setup_series, overrides={"execution": {"stop_buffer_pct": 2}})

    def test_unknown_timeframe_key(self, engine, setup_series):
        with pytest.raises(ValueError):
            engine.run_analysis("R_50", {"1h": setup_series[Timeframe.H2]})

    def test_unusable_timeframe_gives_no_trade(self, engine, setup_series):
        payloads = {tf.value: _as_payload(candles) for tf, candles in setup_series.items()}
        payloads["5m"] = [{"time": 1_700_000_000, "open": 1.0, "high": 0.5, "low": 1.2, "close": 1.0}]

        result = engine.run_analysis("R_50", payloads, now=NOW)

        assert result.final_decision == Decision.NO_TRADE
        assert result.reason == "Insufficient lower timeframe data"


class TestSignalFlow:
    """Test a signal from watchlist to exit."""

    def test_watch_to_take_profit(self, engine, fake_broker):
        signal = engine.add_to_watchlist("u1", "R_50", NOW).data["signal"]

        outcome = engine.run_reanalysis("u1", now=NOW)[signal.id]
        assert outcome.data["status"] == "signal_ready"

        activated = engine.activate_signal(signal.id, NOW)
        assert activated.ok
        assert activated.data["signal"].status == SignalStatus.ACTIVE

        ready = engine.store.get_signal(signal.id)
        fake_broker.prices["R_50"] = ready.take_profit[0] + 0.5
        tick = engine.run_price_tick("u1", now=NOW + timedelta(minutes=5))[signal.id]

        assert tick.data["status"] == "hit_tp"
        assert engine.store.get_signal(signal.id).is_terminal

    def test_activate_requires_ready_signal(self, engine):
        signal = engine.add_to_watchlist("u1", "R_50", NOW).data["signal"]

        outcome = engine.activate_signal(signal.id, NOW)

        assert not outcome.ok
        assert "from watching" in outcome.reason
        assert engine.activate_signal("missing", NOW).reason == "Signal not found"

    def test_direct_transitions_are_stored(self, engine, setup_series):
        signal = engine.add_to_watchlist("u1", "R_50", NOW).data["signal"]
        result = engine.run_analysis("R_50", setup_series, now=NOW)

        ready = engine.advance_signal(signal, result, NOW)
        stored = engine.store.get_signal(signal.id)
        assert stored.status == SignalStatus.SIGNAL_READY

        closed = engine.evaluate_exit(engine.activate_signal(ready.id, NOW).data["signal"],
                                      ready.stop_loss - 1.0, NOW)
        assert closed.status == SignalStatus.HIT_SL
        assert engine.store.get_signal(signal.id).status == SignalStatus.HIT_SL

    def test_stale_copy_cannot_reopen_exit(self, engine, memory_store):
        active = WatchlistSignal(
            id="s1", owner="u1", instrument="R_50", status=SignalStatus.ACTIVE,
            direction=TradeDirection.LONG, entry_price=100.0, stop_loss=99.0, take_profit=(104.0,),
            created_at=NOW - timedelta(hours=1),
        )
        memory_store.save_signal(active)

        assert engine.evaluate_exit(active, 98.0, NOW).status == SignalStatus.HIT_SL

        later = engine.evaluate_exit(active, 100.5, NOW + timedelta(minutes=1))

        assert later.status == SignalStatus.HIT_SL
        stored = memory_store.get_signal("s1")
        assert stored.status == SignalStatus.HIT_SL
        assert stored.exit_price == 98.0

    def test_stale_copy_cannot_advance_closed_signal(self, engine, memory_store, setup_series):
        signal = engine.add_to_watchlist("u1", "R_50", NOW).data["signal"]
        memory_store.save_signal(replace(signal, status=SignalStatus.HIT_TP))
        result = engine.run_analysis("R_50", setup_series, now=NOW)

        assert engine.advance_signal(signal, result, NOW).status == SignalStatus.HIT_TP
        assert memory_store.get_signal(signal.id).status == SignalStatus.HIT_TP


class TestTradesAndCooldowns:

    def test_loss_blocks_new_trades(self, engine, fake_broker):
        created = engine.create_trade("u1", "R_50", TradeDirection.LONG, 100.0, now=NOW)
        assert created.ok

        fake_broker.prices["R_50"] = 97.0
        result = engine.close_trades("u1", now=NOW + timedelta(minutes=1))

        assert result.cooldown.kind == CooldownKind.LOSS
        assert engine.store.get_trade(created.data["trade"].id).status == TradeStatus.CLOSED

        refused = engine.create_trade("u1", "R_50", TradeDirection.LONG, 100.0,
                                      now=NOW + timedelta(minutes=2))
        assert not refused.ok
        assert refused.remaining_minutes == 12
        assert not engine.can_open_trade("u1", NOW + timedelta(minutes=13)).ok
        assert engine.can_open_trade("u1", NOW + timedelta(minutes=14)).ok

    def test_created_trade_is_pending_until_executed(self, engine):
        created = engine.create_trade("u1", "R_50", TradeDirection.LONG, 100.0, now=NOW)
        trade_id = created.data["trade"].id
        assert engine.store.get_trade(trade_id).status == TradeStatus.PENDING

        executed = engine.execute_trade("u1", trade_id, NOW)

        assert executed.ok
        assert engine.store.get_trade(trade_id).status == TradeStatus.ACTIVE
        assert engine.store.get_trade(trade_id).contract_id == "C-1"
