"""Ledger reconciler: full replay of an owner's trade history.

Design invariants
-----------------
1. **Full replay**: every snapshot is derived from the complete history.
   Removing a trade never "subtracts" its effect; the remaining records are
   replayed from scratch.
2. **Deterministic order**: trades are replayed by ``(executed_at, seq)``;
   records that tie on both keep their input order (``sorted`` is stable).
   The same history therefore always yields the same snapshot.
3. **Two independent folds**: cash walks ``initial_capital`` forward by
   ``-quantity*price`` per buy and ``+quantity*price`` per sell, separately
   from the per-symbol :class:`PositionAccumulator` folds.  For any history
   the service would have accepted, ``cash + sum(cost_basis)`` equals
   ``initial_capital + total_realized_pnl``.
4. **No silent skips**: a malformed record raises
   :class:`DataIntegrityViolation` naming the record; no snapshot is produced.

Usage::

    snapshot = reconcile(store.list_trades(owner), Decimal("10000"), owner=owner)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from .errors import DataIntegrityViolation
from .position import Position, PositionAccumulator, check_trade_integrity
from .records import Side, TradeRecord

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Immutable result of one replay.

    ``positions`` includes closed positions (``net_quantity == 0``) so that
    realized P&L stays attributable per symbol.
    """

    owner: Optional[str]
    initial_capital: Decimal
    cash: Decimal
    positions: dict[str, Position] = field(default_factory=dict)
    total_realized_pnl: Decimal = _ZERO
    trade_count: int = 0
    clamped_trade_ids: tuple[str, ...] = ()

    def position(self, symbol: str) -> Optional[Position]:
        return self.positions.get(symbol)

    def held_quantity(self, symbol: str) -> int:
        pos = self.positions.get(symbol)
        return pos.net_quantity if pos is not None else 0

    def open_positions(self) -> list[Position]:
        """Positions with shares held, sorted by symbol."""
        return [self.positions[s] for s in sorted(self.positions) if self.positions[s].is_open]

    @property
    def total_cost_basis(self) -> Decimal:
        return sum((p.cost_basis for p in self.positions.values()), _ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "initial_capital": str(self.initial_capital),
            "cash": str(self.cash),
            "positions": {s: self.positions[s].to_dict() for s in sorted(self.positions)},
            "total_realized_pnl": str(self.total_realized_pnl),
            "trade_count": self.trade_count,
            "clamped_trade_ids": list(self.clamped_trade_ids),
        }


def replay_order(trades: Iterable[TradeRecord]) -> list[TradeRecord]:
    """Return *trades* in replay order: ``executed_at``, then store ``seq``."""
    return sorted(trades, key=_replay_key)


def _replay_key(trade: TradeRecord) -> tuple[datetime, int]:
    return (trade.executed_at, trade.seq)


def reconcile(
    trades: Iterable[TradeRecord],
    initial_capital: Decimal,
    owner: Optional[str] = None,
) -> PortfolioSnapshot:
    """Replay *trades* (any order) into a fresh :class:`PortfolioSnapshot`.

    Args:
        trades:          Complete trade history for one owner.
        initial_capital: Starting cash.
        owner:           When given, every record must belong to this owner;
                         a foreign record is a data integrity violation.

    Raises:
        DataIntegrityViolation: a record is malformed, belongs to another
            owner, or records cannot be ordered.
    """
    records = list(trades)
    for trade in records:
        if owner is not None and trade.owner != owner:
            logger.error("Foreign trade %s in history of %s", trade.trade_id, owner)
            raise DataIntegrityViolation(
                trade.trade_id, f"owner {trade.owner!r} does not match {owner!r}"
            )
        check_trade_integrity(trade)

    try:
        ordered = replay_order(records)
    except TypeError as exc:
        # naive and aware datetimes mixed in one history
        raise DataIntegrityViolation(None, f"unorderable executed_at values: {exc}") from exc

    cash = _fold_cash(ordered, initial_capital)

    accumulators: dict[str, PositionAccumulator] = {}
    for trade in ordered:
        acc = accumulators.get(trade.symbol)
        if acc is None:
            acc = accumulators[trade.symbol] = PositionAccumulator(trade.symbol)
        acc.apply(trade)

    positions = {symbol: acc.position() for symbol, acc in accumulators.items()}
    clamped = tuple(tid for acc in accumulators.values() for tid in acc.clamped_trade_ids)
    total_realized = sum((p.realized_pnl for p in positions.values()), _ZERO)

    logger.debug(
        "Replayed %d trades for %s: cash=%s realized=%s symbols=%d",
        len(ordered), owner, cash, total_realized, len(positions),
    )

    return PortfolioSnapshot(
        owner=owner,
        initial_capital=initial_capital,
        cash=cash,
        positions=positions,
        total_realized_pnl=total_realized,
        trade_count=len(ordered),
        clamped_trade_ids=clamped,
    )


def _fold_cash(ordered: list[TradeRecord], initial_capital: Decimal) -> Decimal:
    cash = initial_capital
    for trade in ordered:
        if trade.side == Side.BUY:
            cash -= trade.notional
        else:
            cash += trade.notional
    return cash


def empty_snapshot(initial_capital: Decimal, owner: Optional[str] = None) -> PortfolioSnapshot:
    return PortfolioSnapshot(owner=owner, initial_capital=initial_capital, cash=initial_capital)
