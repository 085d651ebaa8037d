"""Tests for batch closes and post-close cooldowns."""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from smc_app.config.defaults import CooldownParams
from smc_app.errors import ConcurrentConflictError
from smc_app.feeds.base import ResilientFeed
from smc_app.models.analysis import TradeDirection
from smc_app.state.cooldown import CooldownGate, cooldown_kind_for, matches_filter
from smc_app.state.models import CloseFilter, CooldownKind, Trade, TradeStatus

NOW = datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def gate(memory_store, fake_broker, fast_feed_params):
    feed = ResilientFeed(broker=fake_broker, params=fast_feed_params)
    return CooldownGate(memory_store, feed)


def _save_trade(store, trade_id, instrument, entry=100.0, direction=TradeDirection.LONG,
                current=None, owner="u1", order=0):
    trade = Trade(
        id=trade_id, owner=owner, instrument=instrument, direction=direction,
        entry_price=entry, current_price=current, created_at=NOW - timedelta(hours=1, minutes=-order),
    )
    store.save_trade(trade)
    return trade


class TestHelpers:

    def test_cooldown_kind(self):
        assert cooldown_kind_for(-0.01) == CooldownKind.LOSS
        assert cooldown_kind_for(5.0) == CooldownKind.WIN
        assert cooldown_kind_for(0.0) is None

    def test_filters_use_last_known_price(self):
        losing = Trade(id="a", owner="u1", instrument="AAA", direction=TradeDirection.SHORT,
                       entry_price=100.0, current_price=101.0)
        unknown = Trade(id="b", owner="u1", instrument="AAA", direction=TradeDirection.LONG,
                        entry_price=100.0)

        assert matches_filter(losing, CloseFilter.LOSING)
        assert not matches_filter(losing, CloseFilter.PROFITABLE)
        assert not matches_filter(unknown, CloseFilter.LOSING)
        assert not matches_filter(unknown, CloseFilter.PROFITABLE)
        assert matches_filter(unknown, CloseFilter.ALL)


class TestCloseTrades:
    """Test batch closing and the cooldown it starts."""

    def test_net_win_starts_win_cooldown(self, gate, memory_store, fake_broker):
        fake_broker.prices.update({"AAA": 150.0, "BBB": 90.0})
        _save_trade(memory_store, "t1", "AAA", order=0)
        _save_trade(memory_store, "t2", "BBB", order=1)

        result = gate.close_trades("u1", now=NOW)

        assert result.closed_count == 2
        assert result.failed_count == 0
        assert result.net_pnl == pytest.approx(40.0)
        assert result.cooldown.kind == CooldownKind.WIN
        assert result.cooldown.ends_at == NOW + timedelta(minutes=10)
        assert result.cooldown.trade_id == "t1"

        stored = memory_store.get_trade("t1")
        assert stored.status == TradeStatus.CLOSED
        assert stored.pnl == pytest.approx(50.0)
        assert stored.close_reason == "Manually closed"
        assert stored.closed_at == NOW

    def test_net_loss_blocks_for_thirteen_minutes(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")

        result = gate.close_trades("u1", now=NOW)

        assert result.cooldown.kind == CooldownKind.LOSS

        blocked = gate.can_open_trade("u1", NOW + timedelta(minutes=12, seconds=59))
        assert not blocked.ok
        assert blocked.state_unchanged
        assert blocked.remaining_minutes == 1
        assert blocked.reason == "Cooldown active after loss: 1 minute(s) remaining"
        assert blocked.data["cooldown_id"] == result.cooldown.id

        assert gate.can_open_trade("u1", NOW + timedelta(minutes=13)).ok

    def test_remaining_minutes_round_up(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")
        gate.close_trades("u1", now=NOW)

        outcome = gate.can_open_trade("u1", NOW + timedelta(seconds=30))

        assert outcome.remaining_minutes == 13

    def test_short_pnl_is_mirrored(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 90.0
        _save_trade(memory_store, "t1", "AAA", direction=TradeDirection.SHORT)

        result = gate.close_trades("u1", now=NOW)

        assert result.net_pnl == pytest.approx(10.0)
        assert result.cooldown.kind == CooldownKind.WIN

    def test_flat_batch_starts_no_cooldown(self, gate, memory_store, fake_broker):
        fake_broker.prices.update({"AAA": 110.0, "BBB": 90.0})
        _save_trade(memory_store, "t1", "AAA", order=0)
        _save_trade(memory_store, "t2", "BBB", order=1)

        result = gate.close_trades("u1", now=NOW)

        assert result.closed_count == 2
        assert result.cooldown is None
        assert memory_store.active_cooldowns("u1") == []
        assert gate.can_open_trade("u1", NOW).ok

    def test_nothing_to_close(self, gate):
        result = gate.close_trades("u1", now=NOW)

        assert result.outcomes == ()
        assert result.cooldown is None

    def test_other_owners_untouched(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA", owner="u2")

        result = gate.close_trades("u1", now=NOW)

        assert result.outcomes == ()
        assert memory_store.get_trade("t1").status == TradeStatus.ACTIVE

    def test_new_cooldown_supersedes_earlier(self, gate, memory_store, fake_broker):
        fake_broker.prices.update({"AAA": 95.0, "BBB": 120.0})
        _save_trade(memory_store, "t1", "AAA")
        first = gate.close_trades("u1", now=NOW).cooldown

        _save_trade(memory_store, "t2", "BBB", order=1)
        second = gate.close_trades("u1", trade_ids=["t2"], now=NOW + timedelta(minutes=1)).cooldown

        assert second.kind == CooldownKind.WIN
        assert memory_store.active_cooldowns("u1") == [second]
        assert not memory_store.get_cooldown(first.id).is_active
        # The earlier loss window would still run until 13 minutes
        assert gate.can_open_trade("u1", NOW + timedelta(minutes=12)).ok

    def test_expired_cooldown_deactivated_on_check(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")
        cooldown = gate.close_trades("u1", now=NOW).cooldown

        assert gate.can_open_trade("u1", NOW + timedelta(minutes=20)).ok
        assert not memory_store.get_cooldown(cooldown.id).is_active
        assert memory_store.active_cooldowns("u1") == []

    def test_losing_filter(self, gate, memory_store, fake_broker):
        fake_broker.prices.update({"AAA": 94.0, "BBB": 106.0, "CCC": 100.0})
        _save_trade(memory_store, "t1", "AAA", current=95.0, order=0)
        _save_trade(memory_store, "t2", "BBB", current=105.0, order=1)
        _save_trade(memory_store, "t3", "CCC", order=2)

        result = gate.close_trades("u1", close_filter="losing", now=NOW)

        assert [t.id for t in result.closed_trades] == ["t1"]
        assert result.closed_trades[0].close_reason == "Closed via losing filter"
        assert result.net_pnl == pytest.approx(-6.0)
        assert result.cooldown.kind == CooldownKind.LOSS
        assert memory_store.get_trade("t2").status == TradeStatus.ACTIVE
        assert memory_store.get_trade("t3").status == TradeStatus.ACTIVE

    def test_profitable_filter(self, gate, memory_store, fake_broker):
        fake_broker.prices.update({"AAA": 94.0, "BBB": 106.0})
        _save_trade(memory_store, "t1", "AAA", current=95.0, order=0)
        _save_trade(memory_store, "t2", "BBB", current=105.0, order=1)

        result = gate.close_trades("u1", close_filter=CloseFilter.PROFITABLE, now=NOW)

        assert [t.id for t in result.closed_trades] == ["t2"]
        assert result.cooldown.kind == CooldownKind.WIN

    def test_losing_filter_uses_fresh_price(self, gate, memory_store, fake_broker):
        created = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW).data["trade"]
        fake_broker.prices["AAA"] = 90.0

        result = gate.close_trades("u1", close_filter=CloseFilter.LOSING,
                                   now=NOW + timedelta(minutes=1))

        assert result.closed_count == 1
        assert result.closed_trades[0].id == created.id
        assert result.net_pnl == pytest.approx(-10.0)
        assert result.cooldown.kind == CooldownKind.LOSS

    def test_filter_keeps_stored_price_when_quote_unavailable(self, gate, memory_store, fake_broker):
        fake_broker.down.add("AAA")
        fake_broker.fail_close = True
        _save_trade(memory_store, "t1", "AAA", current=96.0)

        result = gate.close_trades("u1", close_filter=CloseFilter.LOSING, now=NOW)

        assert [o.close_price for o in result.outcomes] == [96.0]
        assert result.cooldown.kind == CooldownKind.LOSS

    def test_broker_failure_falls_back_to_last_price(self, gate, memory_store, fake_broker):
        fake_broker.fail_close = True
        _save_trade(memory_store, "t1", "AAA", current=97.0, order=0)
        _save_trade(memory_store, "t2", "BBB", order=1)

        result = gate.close_trades("u1", now=NOW)

        prices = {o.trade_id: o.close_price for o in result.outcomes}
        assert prices == {"t1": 97.0, "t2": 100.0}
        assert result.net_pnl == pytest.approx(-3.0)
        assert result.cooldown.kind == CooldownKind.LOSS


class TestCreateTrade:
    """Test opening trades through the gate."""

    def test_records_trade(self, gate, memory_store):
        outcome = gate.create_trade("u1", "aaa", "long", 100.0, stop_loss=98.0,
                                    target_price=104.0, now=NOW)

        assert outcome.ok
        trade = outcome.data["trade"]
        assert trade.instrument == "AAA"
        assert trade.direction == TradeDirection.LONG
        assert trade.current_price == 100.0
        assert trade.status == TradeStatus.PENDING
        assert trade.contract_id is None
        assert memory_store.get_trade(trade.id) == trade

    def test_refused_during_cooldown(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")
        gate.close_trades("u1", now=NOW)

        outcome = gate.create_trade("u1", "BBB", TradeDirection.LONG, 100.0,
                                    now=NOW + timedelta(minutes=1))

        assert not outcome.ok
        assert outcome.remaining_minutes == 12
        assert memory_store.list_trades(owner="u1", statuses=[TradeStatus.ACTIVE]) == []

    def test_cooldown_is_per_owner(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")
        gate.close_trades("u1", now=NOW)

        assert gate.create_trade("u2", "BBB", TradeDirection.LONG, 100.0, now=NOW).ok

    def test_execute_stores_contract_id(self, gate, fake_broker):
        outcome = gate.create_trade("u1", "AAA", TradeDirection.SHORT, 100.0, execute=True, now=NOW)

        assert outcome.ok
        assert outcome.data["trade"].contract_id == "C-1"
        assert outcome.data["trade"].status == TradeStatus.ACTIVE
        assert fake_broker.opened == [("AAA", TradeDirection.SHORT, 1.0)]

    def test_broker_rejection_stores_nothing(self, gate, memory_store, fake_broker):
        fake_broker.reject_open = True

        outcome = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, execute=True, now=NOW)

        assert not outcome.ok
        assert outcome.reason.startswith("Broker unavailable:")
        assert memory_store.list_trades(owner="u1") == []

    def test_owner_lock_timeout(self, memory_store, fake_broker, fast_feed_params):
        feed = ResilientFeed(broker=fake_broker, params=fast_feed_params)
        gate = CooldownGate(memory_store, feed, CooldownParams(lock_timeout_seconds=0.05))
        gate._owner_locks.lock_for("u1").acquire()

        outcome = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW)

        assert not outcome.ok
        assert outcome.reason.startswith("Another operation is in progress:")
        assert memory_store.list_trades(owner="u1") == []
        with pytest.raises(ConcurrentConflictError):
            gate.close_trades("u1", now=NOW)


class TestExecuteTrade:
    """Test promoting pending trades once the broker confirms them."""

    def test_pending_becomes_active(self, gate, memory_store, fake_broker):
        pending = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW).data["trade"]

        outcome = gate.execute_trade("u1", pending.id, now=NOW)

        assert outcome.ok
        stored = memory_store.get_trade(pending.id)
        assert stored.status == TradeStatus.ACTIVE
        assert stored.contract_id == "C-1"
        assert outcome.data["trade"] == stored

    def test_broker_failure_leaves_trade_pending(self, gate, memory_store, fake_broker):
        pending = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW).data["trade"]
        fake_broker.reject_open = True

        outcome = gate.execute_trade("u1", pending.id, now=NOW)

        assert outcome.reason.startswith("Broker unavailable:")
        assert memory_store.get_trade(pending.id).status == TradeStatus.PENDING

    def test_only_pending_trades(self, gate, memory_store):
        _save_trade(memory_store, "t1", "AAA")
        pending = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW).data["trade"]

        assert gate.execute_trade("u1", "t1", now=NOW).reason == "Trade is active, not pending"
        assert gate.execute_trade("u2", pending.id, now=NOW).reason == "Trade not found"
        assert gate.execute_trade("u1", "missing", now=NOW).reason == "Trade not found"

    def test_refused_during_cooldown(self, gate, memory_store, fake_broker):
        pending = gate.create_trade("u1", "AAA", TradeDirection.LONG, 100.0, now=NOW).data["trade"]
        fake_broker.prices["BBB"] = 95.0
        _save_trade(memory_store, "t1", "BBB")
        gate.close_trades("u1", trade_ids=["t1"], now=NOW)

        outcome = gate.execute_trade("u1", pending.id, now=NOW + timedelta(minutes=1))

        assert not outcome.ok
        assert outcome.remaining_minutes == 12
        assert fake_broker.opened == []
        assert memory_store.get_trade(pending.id).status == TradeStatus.PENDING


class TestConcurrentCloseAndCreate:

    def test_create_during_close_sees_cooldown(self, gate, memory_store, fake_broker):
        fake_broker.prices["AAA"] = 95.0
        _save_trade(memory_store, "t1", "AAA")
        entered = threading.Event()
        release = threading.Event()
        close_position = fake_broker.close_position

        def slow_close(instrument, contract_id):
            entered.set()
            release.wait(timeout=2)
            return close_position(instrument, contract_id)

        fake_broker.close_position = slow_close
        closes = []
        creates = []
        barrier = threading.Barrier(4)

        def create():
            barrier.wait()
            creates.append(gate.create_trade("u1", "BBB", TradeDirection.LONG, 100.0, now=NOW))

        closer = threading.Thread(target=lambda: closes.append(gate.close_trades("u1", now=NOW)))
        closer.start()
        assert entered.wait(timeout=5)

        creators = [threading.Thread(target=create) for _ in range(3)]
        for thread in creators:
            thread.start()
        barrier.wait()
        time.sleep(0.05)
        release.set()
        for thread in [closer, *creators]:
            thread.join(timeout=10)

        assert closes[0].cooldown.kind == CooldownKind.LOSS
        assert len(creates) == 3
        assert all(not outcome.ok for outcome in creates)
        assert all(outcome.remaining_minutes == 13 for outcome in creates)
        open_trades = memory_store.list_trades(owner="u1",
                                               statuses=[TradeStatus.ACTIVE, TradeStatus.PENDING])
        assert open_trades == []
