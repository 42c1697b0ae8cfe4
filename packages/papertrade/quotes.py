"""Shared quote map with whole-entry replacement and staleness.

Writers (the periodic refresh) replace complete :class:`QuoteEntry` values;
an entry is never mutated in place.  Readers receive plain ``dict`` copies,
so a valuation in progress is unaffected by a concurrent refresh.

Entries older than ``max_age_seconds`` read as unavailable (``None``).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from .ledger.records import parse_quote

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class QuoteSource(Protocol):
    """Protocol for price providers."""

    def get_price(self, symbol: str) -> Optional[Decimal]:
        """Positive price for *symbol* or None when unavailable."""
        ...


@dataclass(frozen=True)
class QuoteEntry:
    symbol: str
    price: Optional[Decimal]
    fetched_at: float


class QuoteBook:
    """Thread-safe ``symbol -> QuoteEntry`` map."""

    def __init__(
        self,
        max_age_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._entries: dict[str, QuoteEntry] = {}
        self._lock = threading.Lock()

    def update(self, prices: Mapping[str, Any]) -> None:
        """Replace entries for every symbol in *prices* (``None`` = unavailable)."""
        now = self._clock()
        fresh = {
            symbol: QuoteEntry(symbol, parse_quote(raw), now)
            for symbol, raw in prices.items()
        }
        with self._lock:
            self._entries.update(fresh)

    def discard(self, symbol: str) -> None:
        with self._lock:
            self._entries.pop(symbol, None)

    def entry(self, symbol: str) -> Optional[QuoteEntry]:
        with self._lock:
            return self._entries.get(symbol)

    def get(self, symbol: str) -> Optional[Decimal]:
        """Fresh price for *symbol*, or None if missing, unavailable or stale."""
        entry = self.entry(symbol)
        if entry is None or self._is_stale(entry):
            return None
        return entry.price

    def prices(self) -> dict[str, Optional[Decimal]]:
        """Copy of all entries, stale ones reported as None."""
        with self._lock:
            entries = list(self._entries.values())
        return {e.symbol: (None if self._is_stale(e) else e.price) for e in entries}

    def refresh(
        self,
        source: QuoteSource,
        symbols: Iterable[str],
        max_workers: int = DEFAULT_MAX_WORKERS,
        min_interval_seconds: Optional[float] = None,
    ) -> dict[str, Optional[Decimal]]:
        """Fetch *symbols* concurrently from *source* and store the results.

        A failure for one symbol records it as unavailable and does not affect
        the others.  Symbols fetched less than *min_interval_seconds* ago are
        skipped.  Returns the fetched ``symbol -> price`` mapping.
        """
        unique = sorted({s for s in symbols if s})
        if min_interval_seconds is not None:
            now = self._clock()
            unique = [s for s in unique if not self._fetched_within(s, now, min_interval_seconds)]
        if not unique:
            return {}

        fetched: dict[str, Optional[Decimal]] = {}
        workers = max(1, min(max_workers, len(unique)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(source.get_price, symbol): symbol for symbol in unique}
            for future in as_completed(futures):
                symbol = futures[future]
                try:
                    fetched[symbol] = parse_quote(future.result())
                except Exception as exc:
                    logger.warning("Quote source error for %s: %s", symbol, exc)
                    fetched[symbol] = None

        self.update(fetched)
        missing = sorted(s for s, p in fetched.items() if p is None)
        if missing:
            logger.info("Quotes unavailable for %d symbol(s): %s", len(missing), ", ".join(missing))
        return fetched

    def _fetched_within(self, symbol: str, now: float, seconds: float) -> bool:
        entry = self.entry(symbol)
        return entry is not None and now - entry.fetched_at < seconds

    def _is_stale(self, entry: QuoteEntry) -> bool:
        if self.max_age_seconds is None:
            return False
        return self._clock() - entry.fetched_at > self.max_age_seconds


class StaticQuoteSource:
    """Quote source over a fixed mapping (offline runs and tests)."""

    def __init__(self, prices: Mapping[str, Any]) -> None:
        self._prices = {symbol: parse_quote(raw) for symbol, raw in prices.items()}

    def get_price(self, symbol: str) -> Optional[Decimal]:
        return self._prices.get(symbol)
