"""SQLite persistence for analysis runs, watchlist signals, cooldowns and trades."""

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..errors import PersistenceError
from ..models.analysis import AnalysisResult, TradeDirection
from ..state.models import (
    CooldownKind,
    CooldownPeriod,
    ExitReason,
    SignalStatus,
    Trade,
    TradeStatus,
    WatchlistSignal,
)
from ..utils.time import now_utc

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS analysis_runs (
        id TEXT PRIMARY KEY,
        instrument TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        final_decision TEXT NOT NULL,
        result_data TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS watchlist_signals (
        id TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        instrument TEXT NOT NULL,
        status TEXT NOT NULL,
        direction TEXT,
        entry_price REAL,
        stop_loss REAL,
        take_profit TEXT NOT NULL DEFAULT '[]',
        current_price REAL,
        analysis_run_id TEXT,
        analysis_snapshot TEXT,
        created_at TEXT,
        signal_generated_at TEXT,
        last_analyzed_at TEXT,
        price_updated_at TEXT,
        exit_price REAL,
        exit_reason TEXT,
        trade_closed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS cooldown_periods (
        id TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        kind TEXT NOT NULL,
        started_at TEXT NOT NULL,
        ends_at TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        trade_id TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trades (
        id TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        instrument TEXT NOT NULL,
        direction TEXT NOT NULL,
        entry_price REAL NOT NULL,
        stop_loss REAL,
        target_price REAL,
        lot_size REAL NOT NULL,
        number_of_positions INTEGER NOT NULL,
        current_price REAL,
        status TEXT NOT NULL,
        pnl REAL,
        close_price REAL,
        close_reason TEXT,
        closed_at TEXT,
        contract_id TEXT,
        signal_id TEXT,
        created_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_signals_owner_status ON watchlist_signals(owner, status)",
    "CREATE INDEX IF NOT EXISTS idx_cooldowns_owner_active ON cooldown_periods(owner, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_trades_owner_status ON trades(owner, status)",
    "CREATE INDEX IF NOT EXISTS idx_runs_instrument ON analysis_runs(instrument)",
)


def new_id() -> str:
    return uuid.uuid4().hex


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SignalStore:
    """
    SQLite-backed store keyed by opaque string IDs.

    Supports create/read/update by ID and filter-by-status queries for each
    record type. ``":memory:"`` keeps one shared connection for the lifetime
    of the store.
    """

    def __init__(self, db_path: str = "smc_signals.db"):
        self.db_path = db_path
        self.logger = logging.getLogger("smc.store")
        self._lock = threading.RLock()
        self._memory_conn: Optional[sqlite3.Connection] = None

        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._memory_conn.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection, converting sqlite errors to PersistenceError."""
        if self._memory_conn is not None:
            with self._lock:
                try:
                    yield self._memory_conn
                except sqlite3.Error as e:
                    self._memory_conn.rollback()
                    self.logger.error("Database error: %s", e)
                    raise PersistenceError(str(e), operation="query", target=self.db_path) from e
            return

        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error("Database error: %s", e)
            raise PersistenceError(str(e), operation="query", target=self.db_path) from e
        finally:
            if conn:
                conn.close()

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> None:
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(sql, tuple(params))
                conn.commit()

    def _fetch(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._get_connection() as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    # Analysis runs

    def save_analysis_run(self, result: AnalysisResult) -> str:
        """Persist an analysis result and return its run ID."""
        run_id = result.id or new_id()
        self._execute("""
            INSERT OR REPLACE INTO analysis_runs (
                id, instrument, timestamp, final_decision, result_data, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
        """, (
            run_id,
            result.instrument,
            result.timestamp,
            result.final_decision.value,
            json.dumps(result.to_dict()),
            now_utc().isoformat(),
        ))
        self.logger.info("Analysis run stored: %s %s %s", run_id, result.instrument,
                         result.final_decision.value)
        return run_id

    def get_analysis_run(self, run_id: str) -> Optional[AnalysisResult]:
        rows = self._fetch("SELECT * FROM analysis_runs WHERE id = ?", (run_id,))
        if not rows:
            return None
        data = json.loads(rows[0]["result_data"])
        data["id"] = run_id
        return AnalysisResult.from_dict(data)

    # Watchlist signals

    def save_signal(self, signal: WatchlistSignal, analysis_run_id: Optional[str] = None) -> str:
        """Insert or replace a watchlist signal."""
        snapshot = json.dumps(signal.analysis_snapshot.to_dict()) if signal.analysis_snapshot else None
        if analysis_run_id is None and signal.analysis_snapshot is not None:
            analysis_run_id = signal.analysis_snapshot.id

        self._execute("""
            INSERT OR REPLACE INTO watchlist_signals (
                id, owner, instrument, status, direction, entry_price, stop_loss,
                take_profit, current_price, analysis_run_id, analysis_snapshot,
                created_at, signal_generated_at, last_analyzed_at, price_updated_at,
                exit_price, exit_reason, trade_closed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            signal.id,
            signal.owner,
            signal.instrument,
            signal.status.value,
            signal.direction.value if signal.direction else None,
            signal.entry_price,
            signal.stop_loss,
            json.dumps(list(signal.take_profit)),
            signal.current_price,
            analysis_run_id,
            snapshot,
            _iso(signal.created_at),
            _iso(signal.signal_generated_at),
            _iso(signal.last_analyzed_at),
            _iso(signal.price_updated_at),
            signal.exit_price,
            signal.exit_reason.value if signal.exit_reason else None,
            _iso(signal.trade_closed_at),
        ))
        return signal.id

    def get_signal(self, signal_id: str) -> Optional[WatchlistSignal]:
        rows = self._fetch("SELECT * FROM watchlist_signals WHERE id = ?", (signal_id,))
        return self._row_to_signal(rows[0]) if rows else None

    def list_signals(
        self,
        owner: Optional[str] = None,
        statuses: Optional[Iterable[SignalStatus]] = None,
        instrument: Optional[str] = None,
    ) -> list[WatchlistSignal]:
        """Signals filtered by owner, status set and instrument, oldest first."""
        clauses, params = [], []
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            clauses.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if instrument is not None:
            clauses.append("instrument = ?")
            params.append(instrument)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch(f"SELECT * FROM watchlist_signals {where} ORDER BY created_at, id", params)
        return [self._row_to_signal(row) for row in rows]

    def _row_to_signal(self, row: sqlite3.Row) -> WatchlistSignal:
        snapshot = None
        if row["analysis_snapshot"]:
            data = json.loads(row["analysis_snapshot"])
            if row["analysis_run_id"] and not data.get("id"):
                data["id"] = row["analysis_run_id"]
            snapshot = AnalysisResult.from_dict(data)

        return WatchlistSignal(
            id=row["id"],
            owner=row["owner"],
            instrument=row["instrument"],
            status=SignalStatus(row["status"]),
            direction=TradeDirection(row["direction"]) if row["direction"] else None,
            entry_price=row["entry_price"],
            stop_loss=row["stop_loss"],
            take_profit=tuple(json.loads(row["take_profit"] or "[]")),
            current_price=row["current_price"],
            analysis_snapshot=snapshot,
            created_at=_parse_ts(row["created_at"]),
            signal_generated_at=_parse_ts(row["signal_generated_at"]),
            last_analyzed_at=_parse_ts(row["last_analyzed_at"]),
            price_updated_at=_parse_ts(row["price_updated_at"]),
            exit_price=row["exit_price"],
            exit_reason=ExitReason(row["exit_reason"]) if row["exit_reason"] else None,
            trade_closed_at=_parse_ts(row["trade_closed_at"]),
        )

    # Cooldowns

    def create_cooldown(self, cooldown: CooldownPeriod, supersede: bool = True) -> str:
        """
        Insert a cooldown; by default deactivates the owner's earlier active
        cooldowns in the same transaction.
        """
        with self._lock:
            with self._get_connection() as conn:
                if supersede:
                    conn.execute(
                        "UPDATE cooldown_periods SET is_active = 0 WHERE owner = ? AND is_active = 1",
                        (cooldown.owner,),
                    )
                conn.execute("""
                    INSERT INTO cooldown_periods (
                        id, owner, kind, started_at, ends_at, is_active, trade_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    cooldown.id,
                    cooldown.owner,
                    cooldown.kind.value,
                    cooldown.started_at.isoformat(),
                    cooldown.ends_at.isoformat(),
                    1 if cooldown.is_active else 0,
                    cooldown.trade_id,
                ))
                conn.commit()
        self.logger.info("Cooldown stored: %s %s until %s", cooldown.owner, cooldown.kind.value,
                         cooldown.ends_at.isoformat())
        return cooldown.id

    def get_cooldown(self, cooldown_id: str) -> Optional[CooldownPeriod]:
        rows = self._fetch("SELECT * FROM cooldown_periods WHERE id = ?", (cooldown_id,))
        return self._row_to_cooldown(rows[0]) if rows else None

    def active_cooldowns(self, owner: str) -> list[CooldownPeriod]:
        """Cooldowns flagged active for an owner, latest end first."""
        rows = self._fetch("""
            SELECT * FROM cooldown_periods WHERE owner = ? AND is_active = 1
            ORDER BY ends_at DESC
        """, (owner,))
        return [self._row_to_cooldown(row) for row in rows]

    def deactivate_cooldown(self, cooldown_id: str) -> None:
        self._execute("UPDATE cooldown_periods SET is_active = 0 WHERE id = ?", (cooldown_id,))

    def _row_to_cooldown(self, row: sqlite3.Row) -> CooldownPeriod:
        return CooldownPeriod(
            id=row["id"],
            owner=row["owner"],
            kind=CooldownKind(row["kind"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            ends_at=datetime.fromisoformat(row["ends_at"]),
            is_active=bool(row["is_active"]),
            trade_id=row["trade_id"],
        )

    # Trades

    def save_trade(self, trade: Trade) -> str:
        """Insert or replace a trade."""
        self._execute("""
            INSERT OR REPLACE INTO trades (
                id, owner, instrument, direction, entry_price, stop_loss, target_price,
                lot_size, number_of_positions, current_price, status, pnl, close_price,
                close_reason, closed_at, contract_id, signal_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            trade.id,
            trade.owner,
            trade.instrument,
            trade.direction.value,
            trade.entry_price,
            trade.stop_loss,
            trade.target_price,
            trade.lot_size,
            trade.number_of_positions,
            trade.current_price,
            trade.status.value,
            trade.pnl,
            trade.close_price,
            trade.close_reason,
            _iso(trade.closed_at),
            trade.contract_id,
            trade.signal_id,
            _iso(trade.created_at),
        ))
        return trade.id

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        rows = self._fetch("SELECT * FROM trades WHERE id = ?", (trade_id,))
        return self._row_to_trade(rows[0]) if rows else None

    def list_trades(
        self,
        owner: Optional[str] = None,
        statuses: Optional[Iterable[TradeStatus]] = None,
    ) -> list[Trade]:
        clauses, params = [], []
        if owner is not None:
            clauses.append("owner = ?")
            params.append(owner)
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            clauses.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch(f"SELECT * FROM trades {where} ORDER BY created_at, id", params)
        return [self._row_to_trade(row) for row in rows]

    def _row_to_trade(self, row: sqlite3.Row) -> Trade:
        return Trade(
            id=row["id"],
            owner=row["owner"],
            instrument=row["instrument"],
            direction=TradeDirection(row["direction"]),
            entry_price=row["entry_price"],
            stop_loss=row["stop_loss"],
            target_price=row["target_price"],
            lot_size=row["lot_size"],
            number_of_positions=row["number_of_positions"],
            current_price=row["current_price"],
            status=TradeStatus(row["status"]),
            pnl=row["pnl"],
            close_price=row["close_price"],
            close_reason=row["close_reason"],
            closed_at=_parse_ts(row["closed_at"]),
            contract_id=row["contract_id"],
            signal_id=row["signal_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
