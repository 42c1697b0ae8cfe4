"""Per-symbol position accumulator using weighted-average cost basis.

Every buy blends into one running average cost per share.  A sell realizes
``(sell_price - average_cost_basis) * quantity`` and leaves the average of the
remaining shares untouched.  Closing a position (net quantity reaches zero)
discards the basis, so a later buy starts a fresh average.

The accumulator is a pure fold: it never performs I/O and never reorders
input.  Callers feed trades oldest first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from .errors import DataIntegrityViolation
from .records import Side, TradeRecord

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass(frozen=True)
class Position:
    """Terminal state of one symbol after replay."""

    symbol: str
    net_quantity: int
    average_cost_basis: Decimal
    realized_pnl: Decimal

    @property
    def cost_basis(self) -> Decimal:
        """Total cost of the shares currently held."""
        return self.average_cost_basis * self.net_quantity

    @property
    def is_open(self) -> bool:
        return self.net_quantity > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "net_quantity": self.net_quantity,
            "average_cost_basis": str(self.average_cost_basis),
            "cost_basis": str(self.cost_basis),
            "realized_pnl": str(self.realized_pnl),
        }


def check_trade_integrity(trade: TradeRecord) -> None:
    """Raise :class:`DataIntegrityViolation` if *trade* breaks a record invariant."""
    if not trade.symbol:
        raise DataIntegrityViolation(trade.trade_id, "empty symbol")
    if not Side.is_valid(trade.side):
        raise DataIntegrityViolation(trade.trade_id, f"unknown side {trade.side!r}")
    if isinstance(trade.quantity, bool) or not isinstance(trade.quantity, int):
        raise DataIntegrityViolation(
            trade.trade_id, f"quantity must be an integer, got {trade.quantity!r}"
        )
    if trade.quantity <= 0:
        raise DataIntegrityViolation(
            trade.trade_id, f"quantity must be positive, got {trade.quantity}"
        )
    if not isinstance(trade.price, Decimal) or not trade.price.is_finite():
        raise DataIntegrityViolation(trade.trade_id, f"price is not a Decimal: {trade.price!r}")
    if trade.price <= _ZERO:
        raise DataIntegrityViolation(trade.trade_id, f"price must be positive, got {trade.price}")


class PositionAccumulator:
    """Folds one symbol's trades into a :class:`Position`.

    Thread-safety: not thread-safe; one instance per replay.
    """

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        self.net_quantity: int = 0
        self.average_cost_basis: Decimal = _ZERO
        self.realized_pnl: Decimal = _ZERO
        # trade ids whose sell quantity exceeded the holding and was clamped
        self.clamped_trade_ids: list[str] = []

    def apply(self, trade: TradeRecord) -> None:
        """Fold one trade into the running position.

        Raises:
            DataIntegrityViolation: the record is malformed or for another symbol.
        """
        check_trade_integrity(trade)
        if trade.symbol != self.symbol:
            raise DataIntegrityViolation(
                trade.trade_id,
                f"symbol {trade.symbol!r} fed to accumulator for {self.symbol!r}",
            )

        if trade.side == Side.BUY:
            self._buy(trade.quantity, trade.price)
        else:
            self._sell(trade.quantity, trade.price, trade.trade_id)

        logger.debug(
            "%s %s %d@%s -> net=%d avg=%s realized=%s",
            self.symbol, trade.side, trade.quantity, trade.price,
            self.net_quantity, self.average_cost_basis, self.realized_pnl,
        )

    def apply_all(self, trades: Iterable[TradeRecord]) -> "PositionAccumulator":
        for trade in trades:
            self.apply(trade)
        return self

    def position(self) -> Position:
        return Position(
            symbol=self.symbol,
            net_quantity=self.net_quantity,
            average_cost_basis=self.average_cost_basis,
            realized_pnl=self.realized_pnl,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _buy(self, quantity: int, price: Decimal) -> None:
        total_cost = self.average_cost_basis * self.net_quantity + price * quantity
        self.net_quantity += quantity
        self.average_cost_basis = total_cost / self.net_quantity

    def _sell(self, quantity: int, price: Decimal, trade_id: Optional[str]) -> None:
        if quantity > self.net_quantity:
            logger.warning(
                "SELL of %d %s exceeds holding of %d (trade %s) - clamping",
                quantity, self.symbol, self.net_quantity, trade_id,
            )
            self.clamped_trade_ids.append(str(trade_id))
            quantity = self.net_quantity

        self.realized_pnl += (price - self.average_cost_basis) * quantity
        self.net_quantity -= quantity

        if self.net_quantity <= 0:
            self.net_quantity = 0
            self.average_cost_basis = _ZERO
