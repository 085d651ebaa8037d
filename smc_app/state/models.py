"""
Lifecycle data models for watchlist signals, trades and cooldowns.

All records are immutable; transitions return new instances via the
``with_*`` helpers.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..models.analysis import AnalysisResult, TradeDirection


class SignalStatus(str, Enum):
    """Watchlist signal lifecycle states."""
    WATCHING = "watching"
    SIGNAL_READY = "signal_ready"
    ACTIVE = "active"
    HIT_SL = "hit_sl"
    HIT_TP = "hit_tp"

    @property
    def is_terminal(self) -> bool:
        return self in (SignalStatus.HIT_SL, SignalStatus.HIT_TP)


class ExitReason(str, Enum):
    SL = "sl"
    TP = "tp"


class TradeStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"


class CooldownKind(str, Enum):
    WIN = "win"
    LOSS = "loss"


class CloseFilter(str, Enum):
    """Which open trades a batch close applies to."""
    ALL = "all"
    LOSING = "losing"
    PROFITABLE = "profitable"


@dataclass(frozen=True)
class WatchlistSignal:
    """Instrument under watch, mutated only by lifecycle transitions."""

    id: str
    owner: str
    instrument: str
    status: SignalStatus = SignalStatus.WATCHING

    # Trade levels captured from the execution stage
    direction: Optional[TradeDirection] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: tuple[float, ...] = ()

    current_price: Optional[float] = None
    analysis_snapshot: Optional[AnalysisResult] = None

    # Timestamps
    created_at: Optional[datetime] = None
    signal_generated_at: Optional[datetime] = None
    last_analyzed_at: Optional[datetime] = None
    price_updated_at: Optional[datetime] = None

    # Exit
    exit_price: Optional[float] = None
    exit_reason: Optional[ExitReason] = None
    trade_closed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_snapshot(self, result: AnalysisResult, timestamp: datetime) -> "WatchlistSignal":
        """Refresh the stored analysis without touching status."""
        return replace(self, analysis_snapshot=result, last_analyzed_at=timestamp)

    def with_levels(self, direction: TradeDirection, entry: float, stop: float,
                    targets: tuple[float, ...]) -> "WatchlistSignal":
        return replace(self, direction=direction, entry_price=entry,
                       stop_loss=stop, take_profit=targets)

    def with_status(self, status: SignalStatus) -> "WatchlistSignal":
        return replace(self, status=status)

    def with_price(self, price: float, timestamp: datetime) -> "WatchlistSignal":
        return replace(self, current_price=price, price_updated_at=timestamp)

    def with_exit(self, status: SignalStatus, reason: ExitReason, price: float,
                  timestamp: datetime) -> "WatchlistSignal":
        return replace(self, status=status, exit_reason=reason, exit_price=price,
                       trade_closed_at=timestamp)


@dataclass(frozen=True)
class Trade:
    """Broker-side position owned by one account."""

    id: str
    owner: str
    instrument: str
    direction: TradeDirection
    entry_price: float
    stop_loss: Optional[float] = None
    target_price: Optional[float] = None
    lot_size: float = 1.0
    number_of_positions: int = 1
    current_price: Optional[float] = None
    status: TradeStatus = TradeStatus.ACTIVE
    pnl: Optional[float] = None
    close_price: Optional[float] = None
    close_reason: Optional[str] = None
    closed_at: Optional[datetime] = None
    contract_id: Optional[str] = None
    signal_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def unrealized_pnl(self, price: float) -> float:
        """PnL if the trade closed at ``price``; shorts are mirrored."""
        move = price - self.entry_price
        if self.direction == TradeDirection.SHORT:
            move = -move
        return move * self.lot_size * self.number_of_positions

    def closed(self, price: float, reason: str, timestamp: datetime) -> "Trade":
        return replace(
            self,
            status=TradeStatus.CLOSED,
            close_price=price,
            current_price=price,
            pnl=self.unrealized_pnl(price),
            close_reason=reason,
            closed_at=timestamp,
        )


@dataclass(frozen=True)
class CooldownPeriod:
    """Window after a batch close during which new trades are refused."""

    id: str
    owner: str
    kind: CooldownKind
    started_at: datetime
    ends_at: datetime
    is_active: bool = True
    trade_id: Optional[str] = None

    def is_in_effect(self, now: datetime) -> bool:
        return self.is_active and self.ends_at > now


@dataclass(frozen=True)
class OperationOutcome:
    """User-visible result of a lifecycle or cooldown operation."""

    ok: bool
    reason: str = ""
    state_unchanged: bool = False
    remaining_minutes: Optional[int] = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, reason: str = "", **data: Any) -> "OperationOutcome":
        return cls(ok=True, reason=reason, data=data)

    @classmethod
    def failure(cls, reason: str, state_unchanged: bool = True, **data: Any) -> "OperationOutcome":
        return cls(ok=False, reason=reason, state_unchanged=state_unchanged, data=data)


@dataclass(frozen=True)
class TradeCloseOutcome:
    """Per-trade result inside a batch close."""

    trade_id: str
    ok: bool
    pnl: Optional[float] = None
    close_price: Optional[float] = None
    reason: str = ""


@dataclass(frozen=True)
class BatchCloseResult:
    """Outcome of closing a batch of trades."""

    outcomes: tuple[TradeCloseOutcome, ...] = ()
    closed_trades: tuple[Trade, ...] = ()
    net_pnl: float = 0.0
    cooldown: Optional[CooldownPeriod] = None

    @property
    def closed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)
