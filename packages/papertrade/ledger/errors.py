"""Error taxonomy for the paper-trading ledger.

Two kinds of failure exist:

- **Exceptions** raised inside the core.  :class:`DataIntegrityViolation` is
  fatal for the owner whose history is being replayed; :class:`StoreUnavailable`
  marks a transient I/O failure at the trade-store boundary;
  :class:`ValidationError` comes out of the boundary parsers.
- **Rejections** returned by the trade mutation service.  Business-rule and
  input failures never cross that boundary as exceptions; callers receive a
  :class:`Rejection` carrying the numbers needed to explain it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for ledger errors."""


class ValidationError(LedgerError, ValueError):
    """Bad input: the named field violates a constraint."""

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(message)
        self.field = field_name
        self.message = message


class StoreUnavailable(LedgerError):
    """The trade store could not complete an operation.

    The operation must not be assumed to have taken effect.
    """


class DataIntegrityViolation(LedgerError):
    """A persisted trade record breaks a ledger invariant.

    The reconciler refuses to produce a snapshot rather than skip the record.
    """

    def __init__(self, trade_id: Optional[str], reason: str) -> None:
        super().__init__(f"trade {trade_id!r}: {reason}")
        self.trade_id = trade_id
        self.reason = reason


class RejectReason:
    """Rejection reasons (string constants)."""

    VALIDATION = "validation_error"
    INSUFFICIENT_CAPITAL = "insufficient_capital"
    INSUFFICIENT_SHARES = "insufficient_shares"
    QUOTE_UNAVAILABLE = "quote_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Rejection:
    """Why a mutation was refused.

    ``details`` holds JSON-safe values (Decimals as strings), e.g.
    ``{"required": "1500.00", "available": "1200.00"}``.
    """

    reason: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": self.message, "details": dict(self.details)}
