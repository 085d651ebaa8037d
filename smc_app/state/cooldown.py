"""
Trade closing and post-close cooldowns.

A batch close nets the PnL of every trade it closed. A net loss starts a
loss cooldown, a net win starts a win cooldown, and a flat batch starts
none. While a cooldown is in effect the owner cannot open new trades.
"""

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from ..config.defaults import CooldownParams
from ..errors import ConcurrentConflictError, PersistenceError, UpstreamUnavailableError
from ..feeds.base import ResilientFeed
from ..logging.config import get_logger, get_state_logger, log_state_transition
from ..models.analysis import TradeDirection
from ..persistence.store import SignalStore, new_id
from ..utils.locks import KeyedLocks
from ..utils.time import minutes_remaining, now_utc
from .models import (
    BatchCloseResult,
    CloseFilter,
    CooldownKind,
    CooldownPeriod,
    OperationOutcome,
    Trade,
    TradeCloseOutcome,
    TradeStatus,
)

logger = get_logger(__name__)
state_logger = get_state_logger(__name__)

OPEN_STATUSES = (TradeStatus.ACTIVE, TradeStatus.PENDING)


def matches_filter(trade: Trade, close_filter: CloseFilter) -> bool:
    """Whether a trade's last known PnL puts it in the filter's bucket."""
    if close_filter == CloseFilter.ALL:
        return True
    if trade.current_price is None:
        return False

    pnl = trade.unrealized_pnl(trade.current_price)
    if close_filter == CloseFilter.LOSING:
        return pnl < 0
    return pnl > 0


def close_reason_for(close_filter: Optional[CloseFilter]) -> str:
    if close_filter is None or close_filter == CloseFilter.ALL:
        return "Manually closed"
    return f"Closed via {close_filter.value} filter"


def cooldown_kind_for(net_pnl: float) -> Optional[CooldownKind]:
    if net_pnl < 0:
        return CooldownKind.LOSS
    if net_pnl > 0:
        return CooldownKind.WIN
    return None


class CooldownGate:
    """
    Closes trades, records cooldowns and answers "may this owner trade?".

    Check-then-create sequences for one owner run under that owner's lock,
    so a trade cannot slip in between a close and its cooldown.
    """

    def __init__(
        self,
        store: SignalStore,
        feed: Optional[ResilientFeed] = None,
        params: Optional[CooldownParams] = None,
    ):
        self.store = store
        self.feed = feed or ResilientFeed()
        self.params = params or CooldownParams()
        self._owner_locks = KeyedLocks(timeout=self.params.lock_timeout_seconds)

    def _cooldown_minutes(self, kind: CooldownKind) -> int:
        if kind == CooldownKind.LOSS:
            return self.params.loss_minutes
        return self.params.win_minutes

    def _close_price(self, trade: Trade) -> float:
        """Broker fill price, falling back to the last known then the entry price."""
        try:
            return self.feed.close_position(trade.instrument, trade.contract_id)
        except UpstreamUnavailableError as e:
            fallback = trade.current_price if trade.current_price is not None else trade.entry_price
            logger.warning(
                "Broker close failed, using fallback price",
                trade_id=trade.id,
                instrument=trade.instrument,
                fallback_price=fallback,
                error=str(e),
            )
            return fallback

    def _refresh_prices(self, trades: list[Trade]) -> list[Trade]:
        """Latest broker price per instrument; the stored price stays when none is available."""
        prices: dict[str, float] = {}
        for instrument in dict.fromkeys(t.instrument for t in trades):
            try:
                prices[instrument] = self.feed.current_price(instrument)
            except UpstreamUnavailableError as e:
                logger.warning("Price refresh failed, filtering on stored price",
                               instrument=instrument, error=str(e))
        return [
            replace(t, current_price=prices[t.instrument]) if t.instrument in prices else t
            for t in trades
        ]

    def _select_trades(self, owner: str, trade_ids: Optional[Iterable[str]]) -> list[Trade]:
        open_trades = self.store.list_trades(owner=owner, statuses=OPEN_STATUSES)
        if trade_ids is None:
            return open_trades

        wanted = set(trade_ids)
        return [t for t in open_trades if t.id in wanted]

    def close_trades(
        self,
        owner: str,
        trade_ids: Optional[Iterable[str]] = None,
        close_filter: CloseFilter = CloseFilter.ALL,
        now: Optional[datetime] = None,
    ) -> BatchCloseResult:
        """
        Close an owner's open trades and start the resulting cooldown.

        Args:
            owner: Account whose trades are closed
            trade_ids: Restrict to these trades; None means every open trade
            close_filter: Further restrict to losing or profitable trades, judged
                on a fresh broker price per instrument
            now: Close time

        Returns:
            BatchCloseResult with one outcome per selected trade. Trades that
            failed to persist are reported and skipped; nothing is rolled back.

        Raises:
            ConcurrentConflictError: If another close or create for the owner
                holds the owner lock past the configured timeout
        """
        now = now_utc(now)
        close_filter = CloseFilter(close_filter)
        reason = close_reason_for(close_filter)

        with self._owner_locks.hold(owner):
            candidates = self._select_trades(owner, trade_ids)
            if close_filter != CloseFilter.ALL:
                candidates = [t for t in self._refresh_prices(candidates)
                              if matches_filter(t, close_filter)]

            outcomes: list[TradeCloseOutcome] = []
            closed: list[Trade] = []
            net_pnl = 0.0

            for trade in candidates:
                price = self._close_price(trade)
                closed_trade = trade.closed(price, reason, now)
                try:
                    self.store.save_trade(closed_trade)
                except PersistenceError as e:
                    logger.error("Failed to close trade", trade_id=trade.id, error=str(e))
                    outcomes.append(TradeCloseOutcome(trade_id=trade.id, ok=False, reason=str(e)))
                    continue

                net_pnl += closed_trade.pnl
                closed.append(closed_trade)
                outcomes.append(TradeCloseOutcome(
                    trade_id=trade.id,
                    ok=True,
                    pnl=closed_trade.pnl,
                    close_price=price,
                    reason=reason,
                ))
                logger.info(
                    "Trade closed",
                    trade_id=trade.id,
                    instrument=trade.instrument,
                    direction=trade.direction.value,
                    close_price=price,
                    pnl=closed_trade.pnl,
                )

            cooldown = None
            kind = cooldown_kind_for(net_pnl) if closed else None
            if kind is not None:
                cooldown = CooldownPeriod(
                    id=new_id(),
                    owner=owner,
                    kind=kind,
                    started_at=now,
                    ends_at=now + timedelta(minutes=self._cooldown_minutes(kind)),
                    trade_id=closed[0].id,
                )
                self.store.create_cooldown(cooldown, supersede=True)
                log_state_transition(
                    state_logger,
                    signal_id=owner,
                    from_state="trading",
                    to_state=f"cooldown_{kind.value}",
                    trigger="batch_close",
                    context={
                        "net_pnl": net_pnl,
                        "closed": len(closed),
                        "ends_at": cooldown.ends_at.isoformat(),
                    },
                )

        return BatchCloseResult(
            outcomes=tuple(outcomes),
            closed_trades=tuple(closed),
            net_pnl=net_pnl,
            cooldown=cooldown,
        )

    def _blocking_cooldown(self, owner: str, now: datetime) -> Optional[CooldownPeriod]:
        """Latest-ending cooldown still in effect; expired ones are deactivated."""
        blocking = None
        for cooldown in self.store.active_cooldowns(owner):
            if not cooldown.is_in_effect(now):
                self.store.deactivate_cooldown(cooldown.id)
                logger.debug("Expired cooldown deactivated", cooldown_id=cooldown.id, owner=owner)
                continue
            if blocking is None or cooldown.ends_at > blocking.ends_at:
                blocking = cooldown
        return blocking

    def can_open_trade(self, owner: str, now: Optional[datetime] = None) -> OperationOutcome:
        """Allowed, or refused with the minutes left on the blocking cooldown."""
        now = now_utc(now)
        cooldown = self._blocking_cooldown(owner, now)
        if cooldown is None:
            return OperationOutcome.success()

        remaining = minutes_remaining(cooldown.ends_at, now)
        return OperationOutcome(
            ok=False,
            reason=f"Cooldown active after {cooldown.kind.value}: {remaining} minute(s) remaining",
            state_unchanged=True,
            remaining_minutes=remaining,
            data={"cooldown_id": cooldown.id, "ends_at": cooldown.ends_at.isoformat()},
        )

    def create_trade(
        self,
        owner: str,
        instrument: str,
        direction: TradeDirection,
        entry_price: float,
        stop_loss: Optional[float] = None,
        target_price: Optional[float] = None,
        lot_size: float = 1.0,
        number_of_positions: int = 1,
        signal_id: Optional[str] = None,
        execute: bool = False,
        now: Optional[datetime] = None,
    ) -> OperationOutcome:
        """
        Record a new pending trade unless a cooldown is in effect.

        With ``execute`` the position is opened at the broker first; the trade
        is then stored active with the returned contract ID.
        """
        now = now_utc(now)
        trade = Trade(
            id=new_id(),
            owner=owner,
            instrument=instrument.upper(),
            direction=TradeDirection(direction),
            entry_price=entry_price,
            stop_loss=stop_loss,
            target_price=target_price,
            lot_size=lot_size,
            number_of_positions=number_of_positions,
            current_price=entry_price,
            status=TradeStatus.PENDING,
            signal_id=signal_id,
            created_at=now,
        )

        try:
            with self._owner_locks.hold(owner):
                return self._open_trade(trade, execute, now)
        except ConcurrentConflictError as e:
            logger.warning("Trade creation timed out on owner lock", owner=owner, error=str(e))
            return OperationOutcome.failure(f"Another operation is in progress: {e}")

    def _open_trade(self, trade: Trade, execute: bool, now: datetime) -> OperationOutcome:
        allowed = self.can_open_trade(trade.owner, now)
        if not allowed.ok:
            logger.info("Trade refused during cooldown", owner=trade.owner,
                        instrument=trade.instrument, remaining_minutes=allowed.remaining_minutes)
            return allowed

        if execute:
            try:
                trade = self._open_at_broker(trade)
            except UpstreamUnavailableError as e:
                logger.error("Broker rejected trade", owner=trade.owner,
                             instrument=trade.instrument, error=str(e))
                return OperationOutcome.failure(f"Broker unavailable: {e}")

        try:
            self.store.save_trade(trade)
        except PersistenceError as e:
            logger.error("Failed to store trade", owner=trade.owner, instrument=trade.instrument,
                         error=str(e))
            return OperationOutcome.failure(f"Failed to store trade: {e}")

        logger.info("Trade created", trade_id=trade.id, owner=trade.owner,
                    instrument=trade.instrument, direction=trade.direction.value,
                    entry_price=trade.entry_price)
        return OperationOutcome.success("Trade created", trade=trade)

    def _open_at_broker(self, trade: Trade) -> Trade:
        contract_id = self.feed.open_position(
            trade.instrument, trade.direction, trade.lot_size,
            trade.stop_loss, trade.target_price,
        )
        return replace(trade, status=TradeStatus.ACTIVE, contract_id=contract_id)

    def execute_trade(self, owner: str, trade_id: str,
                      now: Optional[datetime] = None) -> OperationOutcome:
        """
        Open a pending trade at the broker and mark it active.

        The cooldown is checked again, so a trade recorded before a losing
        close cannot be executed while the resulting cooldown runs. A broker
        failure leaves the trade pending.
        """
        now = now_utc(now)
        try:
            with self._owner_locks.hold(owner):
                trade = self.store.get_trade(trade_id)
                if trade is None or trade.owner != owner:
                    return OperationOutcome.failure("Trade not found")
                if trade.status != TradeStatus.PENDING:
                    return OperationOutcome.failure(f"Trade is {trade.status.value}, not pending")

                allowed = self.can_open_trade(owner, now)
                if not allowed.ok:
                    return allowed

                try:
                    executed = self._open_at_broker(trade)
                except UpstreamUnavailableError as e:
                    logger.error("Broker rejected trade", trade_id=trade.id,
                                 instrument=trade.instrument, error=str(e))
                    return OperationOutcome.failure(f"Broker unavailable: {e}")

                try:
                    self.store.save_trade(executed)
                except PersistenceError as e:
                    logger.error("Failed to store executed trade", trade_id=trade.id,
                                 contract_id=executed.contract_id, error=str(e))
                    return OperationOutcome.failure(f"Failed to store trade: {e}")
        except ConcurrentConflictError as e:
            logger.warning("Trade execution timed out on owner lock", owner=owner, error=str(e))
            return OperationOutcome.failure(f"Another operation is in progress: {e}")

        log_state_transition(
            state_logger,
            signal_id=trade_id,
            from_state=TradeStatus.PENDING.value,
            to_state=TradeStatus.ACTIVE.value,
            trigger="broker_open",
            context={"contract_id": executed.contract_id},
        )
        return OperationOutcome.success("Trade executed", trade=executed)
