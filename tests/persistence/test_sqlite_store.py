"""Tests for the SQLite signal store."""

import os
import shutil
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from smc_app.analysis.composer import run_analysis
from smc_app.errors import PersistenceError
from smc_app.models.analysis import Decision, TradeDirection
from smc_app.persistence.store import SignalStore, new_id
from smc_app.state.models import (
    CooldownKind,
    CooldownPeriod,
    ExitReason,
    SignalStatus,
    Trade,
    TradeStatus,
    WatchlistSignal,
)

NOW = datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)


def _signal(signal_id, owner="u1", instrument="R_50", status=SignalStatus.WATCHING, minutes=0):
    return WatchlistSignal(id=signal_id, owner=owner, instrument=instrument, status=status,
                           created_at=NOW + timedelta(minutes=minutes))


def _cooldown(owner="u1", kind=CooldownKind.LOSS, minutes=13, started=NOW):
    return CooldownPeriod(id=new_id(), owner=owner, kind=kind, started_at=started,
                          ends_at=started + timedelta(minutes=minutes))


class TestFileStore:
    """Test the file-backed store."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "nested", "signals.db")
        self.store = SignalStore(self.db_path)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir)

    def test_init_database(self):
        assert Path(self.db_path).exists()

        with self.store._get_connection() as conn:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in cursor.fetchall()}

        assert {"analysis_runs", "watchlist_signals", "cooldown_periods", "trades"} <= tables

    def test_records_survive_reopen(self):
        self.store.save_signal(_signal("s1"))

        reopened = SignalStore(self.db_path)

        assert reopened.get_signal("s1") == _signal("s1")

    def test_thread_safety(self):
        errors = []

        def save_trades(thread_id):
            try:
                for i in range(10):
                    self.store.save_trade(Trade(
                        id=f"t-{thread_id}-{i}", owner="u1", instrument="R_50",
                        direction=TradeDirection.LONG, entry_price=100.0 + i,
                    ))
            except PersistenceError as e:
                errors.append(e)

        threads = [threading.Thread(target=save_trades, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(self.store.list_trades(owner="u1")) == 50


class TestSignals:
    """Test watchlist signal persistence."""

    def test_missing_signal(self, memory_store):
        assert memory_store.get_signal("nope") is None

    def test_round_trip_with_levels_and_exit(self, memory_store):
        signal = replace(
            _signal("s1", status=SignalStatus.HIT_TP),
            direction=TradeDirection.SHORT,
            entry_price=100.0,
            stop_loss=102.0,
            take_profit=(96.0, 94.0),
            current_price=95.5,
            signal_generated_at=NOW,
            price_updated_at=NOW,
            exit_price=95.5,
            exit_reason=ExitReason.TP,
            trade_closed_at=NOW,
        )

        memory_store.save_signal(signal)

        assert memory_store.get_signal("s1") == signal

    def test_snapshot_round_trip(self, memory_store, setup_series):
        result = run_analysis("R_50", setup_series, now=NOW)
        run_id = memory_store.save_analysis_run(result)
        signal = _signal("s1").with_snapshot(replace(result, id=run_id), NOW)

        memory_store.save_signal(signal, analysis_run_id=run_id)
        stored = memory_store.get_signal("s1")

        assert stored.analysis_snapshot.id == run_id
        assert stored.analysis_snapshot.final_decision == Decision.TRADE_SETUP
        assert stored.analysis_snapshot == replace(result, id=run_id)
        assert stored.last_analyzed_at == NOW

    def test_save_replaces(self, memory_store):
        memory_store.save_signal(_signal("s1"))
        memory_store.save_signal(_signal("s1", status=SignalStatus.SIGNAL_READY))

        assert memory_store.get_signal("s1").status == SignalStatus.SIGNAL_READY
        assert len(memory_store.list_signals()) == 1

    def test_list_filters(self, memory_store):
        memory_store.save_signal(_signal("s1", minutes=0))
        memory_store.save_signal(_signal("s2", instrument="R_75", status=SignalStatus.ACTIVE, minutes=1))
        memory_store.save_signal(_signal("s3", status=SignalStatus.HIT_SL, minutes=2))
        memory_store.save_signal(_signal("s4", owner="u2", minutes=3))

        def ids(**filters):
            return [s.id for s in memory_store.list_signals(**filters)]

        assert ids(owner="u1") == ["s1", "s2", "s3"]
        assert ids(owner="u1", statuses=[SignalStatus.WATCHING, SignalStatus.ACTIVE]) == ["s1", "s2"]
        assert ids(instrument="R_50") == ["s1", "s3", "s4"]
        assert ids(statuses=[]) == []


class TestAnalysisRuns:

    def test_round_trip(self, memory_store, setup_series):
        result = run_analysis("R_50", setup_series, now=NOW)

        run_id = memory_store.save_analysis_run(result)

        assert memory_store.get_analysis_run(run_id) == replace(result, id=run_id)

    def test_existing_id_kept(self, memory_store, setup_series):
        result = replace(run_analysis("R_50", setup_series, now=NOW), id="run-1")

        assert memory_store.save_analysis_run(result) == "run-1"

    def test_missing_run(self, memory_store):
        assert memory_store.get_analysis_run("nope") is None


class TestCooldowns:
    """Test cooldown persistence."""

    def test_round_trip(self, memory_store):
        cooldown = _cooldown()

        memory_store.create_cooldown(cooldown)

        assert memory_store.get_cooldown(cooldown.id) == cooldown

    def test_supersede_deactivates_earlier(self, memory_store):
        first = _cooldown()
        second = _cooldown(kind=CooldownKind.WIN, minutes=10, started=NOW + timedelta(minutes=1))

        memory_store.create_cooldown(first)
        memory_store.create_cooldown(second)

        assert memory_store.active_cooldowns("u1") == [second]
        assert not memory_store.get_cooldown(first.id).is_active

    def test_without_supersede_latest_end_first(self, memory_store):
        short = _cooldown(kind=CooldownKind.WIN, minutes=10)
        long = _cooldown(minutes=13)

        memory_store.create_cooldown(short, supersede=False)
        memory_store.create_cooldown(long, supersede=False)

        assert memory_store.active_cooldowns("u1") == [long, short]

    def test_supersede_is_per_owner(self, memory_store):
        other = _cooldown(owner="u2")
        memory_store.create_cooldown(other)
        memory_store.create_cooldown(_cooldown())

        assert memory_store.active_cooldowns("u2") == [other]

    def test_deactivate(self, memory_store):
        cooldown = _cooldown()
        memory_store.create_cooldown(cooldown)

        memory_store.deactivate_cooldown(cooldown.id)

        assert memory_store.active_cooldowns("u1") == []


class TestTrades:
    """Test trade persistence."""

    def test_round_trip(self, memory_store):
        trade = Trade(
            id="t1", owner="u1", instrument="R_50", direction=TradeDirection.LONG,
            entry_price=100.0, stop_loss=98.0, target_price=104.0, lot_size=0.5,
            number_of_positions=2, contract_id="C-9", signal_id="s1", created_at=NOW,
        ).closed(103.0, "Manually closed", NOW)

        memory_store.save_trade(trade)

        stored = memory_store.get_trade("t1")
        assert stored == trade
        assert stored.pnl == pytest.approx(3.0)

    def test_list_filters(self, memory_store):
        for i, status in enumerate([TradeStatus.ACTIVE, TradeStatus.PENDING, TradeStatus.CLOSED]):
            memory_store.save_trade(Trade(
                id=f"t{i}", owner="u1", instrument="R_50", direction=TradeDirection.LONG,
                entry_price=100.0, status=status, created_at=NOW + timedelta(minutes=i),
            ))

        open_trades = memory_store.list_trades(owner="u1",
                                               statuses=[TradeStatus.ACTIVE, TradeStatus.PENDING])

        assert [t.id for t in open_trades] == ["t0", "t1"]
        assert memory_store.list_trades(owner="u2") == []
        assert memory_store.get_trade("nope") is None


class TestErrors:

    def test_sqlite_errors_become_persistence_errors(self):
        store = SignalStore(":memory:")
        store.close()

        # A fresh in-memory connection has no schema
        with pytest.raises(PersistenceError) as exc_info:
            store.get_signal("s1")

        assert exc_info.value.target == ":memory:"
