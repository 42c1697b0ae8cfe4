"""Per-owner watchlist of symbols to keep quoted."""

from __future__ import annotations

import logging
from typing import Optional

from .ledger.errors import ValidationError
from .ledger.records import normalize_symbol
from .store import SqliteTradeStore
from .symbols import SymbolDirectory

logger = logging.getLogger(__name__)


class WatchlistError(ValueError):
    """Raised when a watchlist change is refused."""


class Watchlist:
    def __init__(self, store: SqliteTradeStore, directory: Optional[SymbolDirectory] = None) -> None:
        self.store = store
        self.directory = directory or SymbolDirectory()

    def symbols(self, owner: str) -> list[str]:
        return self.store.list_watchlist(owner)

    def add(self, owner: str, symbol: str) -> str:
        """Add *symbol* and return its normalized form.

        Raises:
            WatchlistError: malformed, unknown, or already watched symbol.
        """
        try:
            normalized = normalize_symbol(symbol)
        except ValidationError as exc:
            raise WatchlistError(exc.message) from exc
        if not self.directory.is_valid(normalized):
            raise WatchlistError(f"unknown symbol: {normalized}")
        if not self.store.add_watchlist_symbol(owner, normalized):
            raise WatchlistError(f"'{normalized}' is already in your watchlist.")
        logger.info("Watchlist %s: added %s", owner, normalized)
        return normalized

    def remove(self, owner: str, symbol: str) -> bool:
        """Remove *symbol*; False when it was not watched."""
        removed = self.store.remove_watchlist_symbol(owner, str(symbol or "").strip().upper())
        if removed:
            logger.info("Watchlist %s: removed %s", owner, symbol)
        return removed
