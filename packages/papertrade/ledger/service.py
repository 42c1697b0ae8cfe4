"""Trade mutation service: the only writer of trade records.

Every mutation follows the same shape:

  1. **Validate** input at the boundary (symbol, side, quantity, price).
  2. **Replay** the owner's current history from the store and check the
     business rules against that fresh snapshot (cash for buys, shares for
     sells).
  3. **Write** one record (insert or delete); the store write is atomic and
     is the serialization point between racing mutations.
  4. **Replay** again and return the authoritative snapshot; refresh the
     cached cash figure.

Nothing is applied optimistically.  If step 4 fails after a successful
write, the result still reports success (the write is durable) with
``snapshot=None``; the store's ledger version has moved on, so the stale
cache is ignored and the next read replays.

``submit_trade`` / ``revoke_trade`` return :class:`MutationResult` for every
business-rule, validation, quote or store failure.  Only
:class:`DataIntegrityViolation` propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from ..store import TradeStore
from ..symbols import SymbolDirectory
from .errors import Rejection, RejectReason, StoreUnavailable, ValidationError
from .reconciler import PortfolioSnapshot, reconcile
from .records import (
    Side,
    TradeDraft,
    TradeRecord,
    normalize_symbol,
    parse_price,
    parse_quantity,
    parse_quote,
    parse_side,
)

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_CAPITAL = Decimal("10000")


@dataclass(frozen=True)
class MutationResult:
    """Outcome of ``submit_trade`` / ``revoke_trade``.

    ``trade`` is the record written (or removed).  ``snapshot`` is the replay
    after the write, or, on rejection, the snapshot the request was
    checked against (None if the history could not be read).
    """

    ok: bool
    trade: Optional[TradeRecord] = None
    snapshot: Optional[PortfolioSnapshot] = None
    rejection: Optional[Rejection] = None

    @classmethod
    def rejected(
        cls,
        reason: str,
        message: str,
        snapshot: Optional[PortfolioSnapshot] = None,
        **details: Any,
    ) -> "MutationResult":
        return cls(ok=False, snapshot=snapshot, rejection=Rejection(reason, message, details))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "trade": self.trade.to_dict() if self.trade is not None else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "rejection": self.rejection.to_dict() if self.rejection is not None else None,
        }


class TradeMutationService:
    """Validates, persists and replays trades for any number of owners.

    Args:
        store:           Persistent trade store.
        initial_capital: Starting cash of every ledger.
        quote_source:    Prices market orders submitted without a price.
        directory:       Tradable symbols; empty/None accepts all symbols.
        clock:           Execution timestamp source (UTC).
    """

    def __init__(
        self,
        store: TradeStore,
        initial_capital: Decimal = DEFAULT_INITIAL_CAPITAL,
        quote_source: Optional[Any] = None,
        directory: Optional[SymbolDirectory] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if initial_capital < 0:
            raise ValueError(f"initial_capital must be non-negative; got {initial_capital}")
        self.store = store
        self.initial_capital = initial_capital
        self.quote_source = quote_source
        self.directory = directory or SymbolDirectory()
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, owner: str) -> PortfolioSnapshot:
        """Replay *owner*'s full history.

        Raises:
            StoreUnavailable: history could not be read.
            DataIntegrityViolation: a stored record is invalid.
        """
        version = self.store.ledger_version(owner)
        snap = reconcile(self.store.list_trades(owner), self.initial_capital, owner=owner)
        self._write_cash_cache(owner, snap.cash, version)
        return snap

    def history(self, owner: str) -> list[TradeRecord]:
        """Trades newest first (display order)."""
        return sorted(
            self.store.list_trades(owner),
            key=lambda t: (t.executed_at, t.seq),
            reverse=True,
        )

    def cached_cash(self, owner: str) -> Decimal:
        """Cash from the cache when current, otherwise from a fresh replay."""
        version = self.store.ledger_version(owner)
        cached = self.store.load_cached_cash(owner)
        if cached is not None and cached[1] == version:
            logger.debug("Cash cache hit for %s at version %d", owner, version)
            return cached[0]
        return self.snapshot(owner).cash

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit_trade(
        self,
        owner: str,
        symbol: Any,
        side: Any,
        quantity: Any,
        price: Any = None,
    ) -> MutationResult:
        """Execute a market fill for *owner*.

        *price* defaults to the quote source's current price for the symbol.
        """
        try:
            owner = _require_owner(owner)
            symbol = normalize_symbol(symbol)
            side = parse_side(side)
            quantity = parse_quantity(quantity)
            if price is not None:
                price = parse_price(price)
        except ValidationError as exc:
            return MutationResult.rejected(
                RejectReason.VALIDATION, exc.message, field=exc.field
            )

        if not self.directory.is_valid(symbol):
            return MutationResult.rejected(
                RejectReason.VALIDATION,
                f"unknown symbol: {symbol}",
                field="symbol",
                symbol=symbol,
            )

        if price is None:
            price = self._market_price(symbol)
            if price is None:
                return MutationResult.rejected(
                    RejectReason.QUOTE_UNAVAILABLE,
                    f"no current price available for {symbol}",
                    symbol=symbol,
                )

        try:
            current = self.snapshot(owner)
        except StoreUnavailable as exc:
            return MutationResult.rejected(RejectReason.STORE_UNAVAILABLE, str(exc))

        draft = TradeDraft(
            owner=owner,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            executed_at=self._clock(),
        )

        if side == Side.BUY:
            if draft.notional > current.cash:
                return MutationResult.rejected(
                    RejectReason.INSUFFICIENT_CAPITAL,
                    f"buying {quantity} {symbol} @ {price} costs {draft.notional}, "
                    f"available cash is {current.cash}",
                    snapshot=current,
                    required=str(draft.notional),
                    available=str(current.cash),
                )
        else:
            held = current.held_quantity(symbol)
            if quantity > held:
                return MutationResult.rejected(
                    RejectReason.INSUFFICIENT_SHARES,
                    f"cannot sell {quantity} {symbol}, holding {held}",
                    snapshot=current,
                    requested=quantity,
                    held=held,
                )

        try:
            record = self.store.insert_trade(draft)
        except StoreUnavailable as exc:
            logger.warning("Trade insert failed for %s: %s", owner, exc)
            return MutationResult.rejected(
                RejectReason.STORE_UNAVAILABLE, str(exc), snapshot=current
            )

        logger.info(
            "Accepted %s %d %s @ %s for %s (trade %s)",
            side, quantity, symbol, price, owner, record.trade_id,
        )
        return MutationResult(ok=True, trade=record, snapshot=self._replay_after_write(owner))

    def revoke_trade(self, owner: str, trade_id: str) -> MutationResult:
        """Delete one of *owner*'s trades and replay the remaining history."""
        try:
            owner = _require_owner(owner)
        except ValidationError as exc:
            return MutationResult.rejected(RejectReason.VALIDATION, exc.message, field=exc.field)

        trade_id = str(trade_id or "").strip()
        if not trade_id:
            return MutationResult.rejected(
                RejectReason.VALIDATION, "trade_id is required", field="trade_id"
            )

        try:
            existing = next(
                (t for t in self.store.list_trades(owner) if t.trade_id == trade_id), None
            )
            deleted = existing is not None and self.store.delete_trade(owner, trade_id)
        except StoreUnavailable as exc:
            logger.warning("Trade delete failed for %s: %s", owner, exc)
            return MutationResult.rejected(RejectReason.STORE_UNAVAILABLE, str(exc))

        if not deleted:
            return MutationResult.rejected(
                RejectReason.NOT_FOUND,
                f"trade {trade_id!r} not found",
                trade_id=trade_id,
            )

        logger.info("Revoked trade %s for %s; replaying", trade_id, owner)
        return MutationResult(ok=True, trade=existing, snapshot=self._replay_after_write(owner))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _market_price(self, symbol: str) -> Optional[Decimal]:
        if self.quote_source is None:
            return None
        try:
            return parse_quote(self.quote_source.get_price(symbol))
        except Exception as exc:
            logger.warning("Quote lookup failed for %s: %s", symbol, exc)
            return None

    def _replay_after_write(self, owner: str) -> Optional[PortfolioSnapshot]:
        try:
            return self.snapshot(owner)
        except StoreUnavailable as exc:
            logger.warning(
                "Replay after committed mutation failed for %s: %s; next read will replay",
                owner, exc,
            )
            return None

    def _write_cash_cache(self, owner: str, cash: Decimal, version: int) -> None:
        try:
            self.store.save_cached_cash(owner, cash, version)
        except StoreUnavailable as exc:
            logger.warning("Could not cache cash for %s: %s", owner, exc)


def _require_owner(owner: Any) -> str:
    # opaque identifier: compared verbatim, only blank values are refused
    if not isinstance(owner, str) or not owner.strip():
        raise ValidationError("owner", "an authenticated owner is required")
    return owner
