"""Trade records and boundary parsers for the paper-trading ledger.

All monetary values use Decimal.  Quantities are whole shares (``int``).
Raw user / wire input is coerced here, once, so the reconciler and the
valuator only ever see well-typed values:

- ``parse_quantity``  -> positive ``int`` or :class:`ValidationError`
- ``parse_price``     -> positive ``Decimal`` or :class:`ValidationError`
- ``parse_quote``     -> positive ``Decimal`` or ``None`` (unavailable)
- ``normalize_symbol`` / ``parse_side``
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .errors import ValidationError

_ZERO = Decimal("0")
_SYMBOL_RE = re.compile(r"^[A-Z0-9][A-Z0-9.\-]{0,14}$")
# ASCII digits only; the length bound keeps int() away from huge strings
_QUANTITY_RE = re.compile(r"-?[0-9]{1,19}")

#: Largest quantity a trade may carry (the SQLite INTEGER range).
MAX_QUANTITY = 2**63 - 1


class Side:
    """Trade sides."""

    BUY = "BUY"
    SELL = "SELL"

    _ALL = frozenset({BUY, SELL})

    @classmethod
    def is_valid(cls, side: str) -> bool:
        return side in cls._ALL


@dataclass(frozen=True)
class TradeRecord:
    """One executed market fill.

    ``trade_id`` and ``seq`` are assigned by the trade store; ``seq`` is the
    insertion sequence used to break ``executed_at`` ties during replay.
    Records are never mutated: a correction is a revoke plus a new submit.
    """

    trade_id: str
    owner: str
    symbol: str
    side: str
    quantity: int
    price: Decimal
    executed_at: datetime
    seq: int = 0

    @property
    def notional(self) -> Decimal:
        """``quantity * price``: cash out for a buy, cash in for a sell."""
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe dict (Decimals serialised as strings)."""
        return {
            "trade_id": self.trade_id,
            "owner": self.owner,
            "symbol": self.symbol,
            "side": self.side,
            "quantity": self.quantity,
            "price": str(self.price),
            "executed_at": self.executed_at.isoformat(),
            "seq": self.seq,
        }


@dataclass(frozen=True)
class TradeDraft:
    """A validated trade that has not been persisted yet."""

    owner: str
    symbol: str
    side: str
    quantity: int
    price: Decimal
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def notional(self) -> Decimal:
        return self.price * self.quantity


def normalize_symbol(raw: Any) -> str:
    """Return the uppercase ticker for *raw*.

    Raises:
        ValidationError: empty or malformed symbol.
    """
    text = str(raw or "").strip().upper()
    if not text:
        raise ValidationError("symbol", "symbol is required")
    if not _SYMBOL_RE.match(text):
        raise ValidationError("symbol", f"malformed symbol: {text!r}")
    return text


def parse_side(raw: Any) -> str:
    """Accept ``buy``/``sell`` in any case."""
    text = str(raw or "").strip().upper()
    if not Side.is_valid(text):
        raise ValidationError("side", f"side must be BUY or SELL, got {raw!r}")
    return text


def parse_quantity(raw: Any) -> int:
    """Return a positive whole number of shares, at most :data:`MAX_QUANTITY`.

    Accepts ints and ASCII integral strings (``"10"``).  Floats with a
    fractional part, bools, zero, negatives and non-ASCII digits are rejected.
    """
    if isinstance(raw, bool):
        raise ValidationError("quantity", "quantity must be a whole number of shares")
    if isinstance(raw, int):
        qty = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError("quantity", f"quantity must be a whole number, got {raw}")
        qty = int(raw)
    else:
        text = str(raw or "").strip()
        if not _QUANTITY_RE.fullmatch(text):
            shown = text if len(text) <= 32 else text[:32] + "..."
            raise ValidationError("quantity", f"quantity must be a whole number, got {shown!r}")
        qty = int(text)
    if qty <= 0:
        raise ValidationError("quantity", f"quantity must be positive, got {qty}")
    if qty > MAX_QUANTITY:
        raise ValidationError("quantity", f"quantity must not exceed {MAX_QUANTITY}")
    return qty


def _to_decimal(raw: Any) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            # str() first so floats keep their shortest repr, not binary noise
            value = Decimal(text)
        except InvalidOperation:
            return None
    if not value.is_finite():
        return None
    return value


def parse_price(raw: Any) -> Decimal:
    """Return a positive Decimal execution price.

    Raises:
        ValidationError: missing, non-numeric, zero or negative price.
    """
    value = _to_decimal(raw)
    if value is None:
        raise ValidationError("price", f"price must be a number, got {raw!r}")
    if value <= _ZERO:
        raise ValidationError("price", f"price must be positive, got {value}")
    return value


def parse_quote(raw: Any) -> Optional[Decimal]:
    """Coerce a raw quote into ``Decimal`` or ``None`` (unavailable).

    Zero, negative, missing and non-numeric quotes are all unavailable.

        >>> parse_quote(187.5)
        Decimal('187.5')
        >>> parse_quote(0) is None
        True
    """
    value = _to_decimal(raw)
    if value is None or value <= _ZERO:
        return None
    return value
