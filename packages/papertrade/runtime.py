"""Wiring shared by the HTTP service and the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Protocol

from .alphavantage import AlphaVantageClient, DailyClose
from .config import LedgerSettings
from .finnhub import FinnhubClient
from .ledger.mark import Valuation, value_portfolio
from .ledger.reconciler import PortfolioSnapshot
from .ledger.service import TradeMutationService
from .quotes import QuoteBook, QuoteSource
from .store import SqliteTradeStore
from .symbols import SymbolDirectory
from .watchlist import Watchlist

logger = logging.getLogger(__name__)


class ProfileSource(Protocol):
    def get_profile(self, symbol: str) -> Optional[dict[str, Any]]:
        ...


class HistorySource(Protocol):
    def get_daily_closes(
        self, symbol: str, outputsize: str = "compact", since: Optional[date] = None
    ) -> list[DailyClose]:
        ...


@dataclass
class Runtime:
    settings: LedgerSettings
    store: SqliteTradeStore
    quote_source: QuoteSource
    quotes: QuoteBook
    directory: SymbolDirectory
    service: TradeMutationService
    watchlist: Watchlist
    profiles: Optional[ProfileSource] = None
    history: Optional[HistorySource] = None

    def quoted_symbols(self, owner: str, snapshot: Optional[PortfolioSnapshot] = None) -> list[str]:
        """Symbols held or watched by *owner*."""
        snap = snapshot or self.service.snapshot(owner)
        held = [p.symbol for p in snap.open_positions()]
        return sorted(set(held) | set(self.watchlist.symbols(owner)))

    def valuation(self, owner: str, refresh: bool = True) -> tuple[PortfolioSnapshot, Valuation]:
        """Replay *owner*'s ledger and mark it at current quotes."""
        snap = self.service.snapshot(owner)
        if refresh:
            self.quotes.refresh(
                self.quote_source,
                self.quoted_symbols(owner, snap),
                max_workers=self.settings.quote_max_workers,
                min_interval_seconds=self.settings.quote_refresh_seconds,
            )
        return snap, value_portfolio(snap, self.quotes.prices())

    def profile(self, symbol: str) -> Optional[dict[str, Any]]:
        if self.profiles is None:
            return None
        return self.profiles.get_profile(symbol)

    def daily_closes(
        self, symbol: str, outputsize: str = "compact", since: Optional[date] = None
    ) -> list[DailyClose]:
        if self.history is None:
            return []
        return self.history.get_daily_closes(symbol, outputsize=outputsize, since=since)


def build_runtime(
    settings: LedgerSettings,
    *,
    store: Optional[SqliteTradeStore] = None,
    quote_source: Optional[QuoteSource] = None,
    directory: Optional[SymbolDirectory] = None,
    profiles: Optional[ProfileSource] = None,
    history: Optional[HistorySource] = None,
    offline: bool = False,
) -> Runtime:
    """Assemble collaborators from *settings*; explicit arguments win.

    With ``offline=True`` no provider client is created for profiles or
    daily history, so only explicitly passed sources are used.
    """
    finnhub: Optional[FinnhubClient] = None
    if quote_source is None or directory is None or (profiles is None and not offline):
        finnhub = FinnhubClient(
            settings.finnhub_api_key,
            base_url=settings.finnhub_base_url,
            timeout=settings.http_timeout_seconds,
        )
    if quote_source is None:
        quote_source = finnhub
    if directory is None:
        directory = SymbolDirectory.from_source(finnhub) if finnhub.enabled else SymbolDirectory()
    if profiles is None and not offline and finnhub.enabled:
        profiles = finnhub
    if history is None and not offline:
        alpha_vantage = AlphaVantageClient(
            settings.alpha_vantage_api_key,
            base_url=settings.alpha_vantage_base_url,
            timeout=settings.http_timeout_seconds,
        )
        if alpha_vantage.enabled:
            history = alpha_vantage
        else:
            logger.info("No usable Alpha Vantage key; daily history disabled")

    store = store if store is not None else SqliteTradeStore(settings.db_path)
    service = TradeMutationService(
        store,
        initial_capital=settings.initial_capital,
        quote_source=quote_source,
        directory=directory,
    )
    return Runtime(
        settings=settings,
        store=store,
        quote_source=quote_source,
        quotes=QuoteBook(max_age_seconds=settings.quote_max_age_seconds),
        directory=directory,
        service=service,
        watchlist=Watchlist(store, directory),
        profiles=profiles,
        history=history,
    )
