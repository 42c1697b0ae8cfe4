"""Mark-to-market valuation of a portfolio snapshot.

Open positions are marked at the last quote for their symbol.  A missing,
stale, zero or negative quote makes the symbol *price unavailable*:

- its unrealized P&L is reported as ``0`` **and** the holding is flagged
  (``price_available = False``, symbol listed in ``unavailable_symbols``);
- it contributes nothing to ``holdings_value``, so ``total_value``
  understates the true portfolio value until a quote arrives.

:func:`value_portfolio` is a pure function of ``(snapshot, quotes)``; it can
be re-run on every quote refresh without replaying the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from .position import Position
from .reconciler import PortfolioSnapshot
from .records import parse_quote

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class HoldingValuation:
    """One open position marked at its quote (or flagged unavailable)."""

    symbol: str
    net_quantity: int
    average_cost_basis: Decimal
    quote_price: Optional[Decimal]
    market_value: Optional[Decimal]
    unrealized_pnl: Decimal
    change_pct: Optional[Decimal]

    @property
    def price_available(self) -> bool:
        return self.quote_price is not None

    @property
    def price_change(self) -> Optional[Decimal]:
        """Quote minus average cost, per share."""
        if self.quote_price is None:
            return None
        return self.quote_price - self.average_cost_basis

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "net_quantity": self.net_quantity,
            "average_cost_basis": str(self.average_cost_basis),
            "quote_price": _opt_str(self.quote_price),
            "market_value": _opt_str(self.market_value),
            "unrealized_pnl": str(self.unrealized_pnl),
            "price_change": _opt_str(self.price_change),
            "change_pct": _opt_str(self.change_pct),
            "price_available": self.price_available,
        }


@dataclass(frozen=True)
class Valuation:
    """Snapshot marked to market."""

    cash: Decimal
    initial_capital: Decimal
    holdings: list[HoldingValuation] = field(default_factory=list)
    holdings_value: Decimal = _ZERO
    total_unrealized_pnl: Decimal = _ZERO
    total_realized_pnl: Decimal = _ZERO
    unavailable_symbols: tuple[str, ...] = ()

    @property
    def total_value(self) -> Decimal:
        """Cash plus the marked value of holdings with an available quote."""
        return self.cash + self.holdings_value

    @property
    def total_pnl(self) -> Decimal:
        return self.total_realized_pnl + self.total_unrealized_pnl

    @property
    def change(self) -> Decimal:
        """Total value minus initial capital."""
        return self.total_value - self.initial_capital

    @property
    def change_pct(self) -> Optional[Decimal]:
        if self.initial_capital <= _ZERO:
            return None
        return self.change / self.initial_capital * _HUNDRED

    @property
    def is_complete(self) -> bool:
        """True when every open position had a usable quote."""
        return not self.unavailable_symbols

    def to_dict(self) -> dict[str, Any]:
        return {
            "cash": str(self.cash),
            "initial_capital": str(self.initial_capital),
            "holdings": [h.to_dict() for h in self.holdings],
            "holdings_value": str(self.holdings_value),
            "total_value": str(self.total_value),
            "total_unrealized_pnl": str(self.total_unrealized_pnl),
            "total_realized_pnl": str(self.total_realized_pnl),
            "total_pnl": str(self.total_pnl),
            "change": str(self.change),
            "change_pct": _opt_str(self.change_pct),
            "unavailable_symbols": list(self.unavailable_symbols),
            "is_complete": self.is_complete,
        }


def mark_position(position: Position, raw_quote: Any) -> HoldingValuation:
    """Mark one open position at *raw_quote* (any numeric, ``None`` = unavailable).

        >>> from decimal import Decimal
        >>> pos = Position("AAPL", 10, Decimal("150"), Decimal("0"))
        >>> mark_position(pos, 160).unrealized_pnl
        Decimal('100')
    """
    quote = parse_quote(raw_quote)
    if quote is None:
        return HoldingValuation(
            symbol=position.symbol,
            net_quantity=position.net_quantity,
            average_cost_basis=position.average_cost_basis,
            quote_price=None,
            market_value=None,
            unrealized_pnl=_ZERO,
            change_pct=None,
        )

    change_pct: Optional[Decimal] = None
    if position.average_cost_basis > _ZERO:
        change_pct = (quote - position.average_cost_basis) / position.average_cost_basis * _HUNDRED

    return HoldingValuation(
        symbol=position.symbol,
        net_quantity=position.net_quantity,
        average_cost_basis=position.average_cost_basis,
        quote_price=quote,
        market_value=quote * position.net_quantity,
        unrealized_pnl=(quote - position.average_cost_basis) * position.net_quantity,
        change_pct=change_pct,
    )


def value_portfolio(
    snapshot: PortfolioSnapshot,
    quotes: Mapping[str, Any],
) -> Valuation:
    """Combine *snapshot* with a ``symbol -> price`` mapping.

    Symbols absent from *quotes* are treated exactly like an unavailable
    quote.  Closed positions are not marked.
    """
    holdings: list[HoldingValuation] = []
    unavailable: list[str] = []
    holdings_value = _ZERO
    unrealized = _ZERO

    for position in snapshot.open_positions():
        hv = mark_position(position, quotes.get(position.symbol))
        holdings.append(hv)
        if hv.market_value is None:
            unavailable.append(hv.symbol)
            continue
        holdings_value += hv.market_value
        unrealized += hv.unrealized_pnl

    return Valuation(
        cash=snapshot.cash,
        initial_capital=snapshot.initial_capital,
        holdings=holdings,
        holdings_value=holdings_value,
        total_unrealized_pnl=unrealized,
        total_realized_pnl=snapshot.total_realized_pnl,
        unavailable_symbols=tuple(unavailable),
    )


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half up (presentation only; the ledger keeps full precision)."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_money(value: Optional[Decimal], currency_symbol: str = "$") -> str:
    """``Decimal("-12.345")`` -> ``"-$12.35"``; ``None`` -> ``"N/A"``."""
    if value is None:
        return "N/A"
    q = quantize_money(value)
    sign = "-" if q < _ZERO else ""
    return f"{sign}{currency_symbol}{abs(q):,.2f}"


def _opt_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None
