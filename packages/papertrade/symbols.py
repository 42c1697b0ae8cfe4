"""Symbol directory: the flat set of tradable tickers.

When the directory is empty (the upstream list could not be loaded) every
symbol is accepted.  That fallback is logged once per directory rather than
blocking all trading.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class SymbolSource(Protocol):
    def list_symbols(self, exchange: str = "US") -> list[str]:
        ...


class SymbolDirectory:
    def __init__(self, symbols: Optional[Iterable[str]] = None) -> None:
        self._symbols = frozenset(s.strip().upper() for s in (symbols or ()) if s and s.strip())
        self._fallback_logged = False

    @classmethod
    def from_source(cls, source: SymbolSource, exchange: str = "US") -> "SymbolDirectory":
        symbols = source.list_symbols(exchange)
        logger.info("Loaded %d tradable symbols for %s", len(symbols), exchange)
        return cls(symbols)

    @property
    def available(self) -> bool:
        return bool(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)

    def is_valid(self, symbol: str) -> bool:
        if not self._symbols:
            if not self._fallback_logged:
                logger.warning("Symbol directory unavailable; accepting all symbols")
                self._fallback_logged = True
            return True
        return symbol in self._symbols
