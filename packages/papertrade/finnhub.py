"""Finnhub REST adapter: quotes, the US symbol directory and company profiles.

Endpoints used:

- ``GET /quote?symbol=AAPL`` -> ``{"c": 187.44, "pc": 185.1, ...}``; ``c`` is
  the current price and ``c == 0`` means Finnhub has no quote.
- ``GET /stock/symbol?exchange=US`` -> ``[{"symbol": "AAPL", "type": "Common Stock"}, ...]``
- ``GET /stock/profile2?symbol=AAPL`` -> ``{"name": "Apple Inc", "exchange": ..., ...}``

Every failure degrades to "unavailable" (``None`` / empty list) with a
warning; callers never see transport exceptions.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

import requests

from .http_client import HttpClient
from .ledger.records import parse_quote

logger = logging.getLogger(__name__)

DEFAULT_FINNHUB_API_BASE = "https://finnhub.io/api/v1"

#: Instrument types kept from the US symbol list.
TRADABLE_TYPES = frozenset({"Common Stock", "ADR", "REIT", "ETP", "ETF"})

_PLACEHOLDER_KEYS = frozenset({"YOUR_FINNHUB_API_KEY_HERE", "YOUR_ALPHA_VANTAGE_API_KEY"})


def is_invalid_api_key(key: Optional[str]) -> bool:
    """True for empty, placeholder, or implausibly short keys."""
    trimmed = (key or "").strip()
    return not trimmed or trimmed in _PLACEHOLDER_KEYS or len(trimmed) < 10


class FinnhubClient:
    """Quote source + symbol directory backed by Finnhub."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_FINNHUB_API_BASE,
        timeout: float = 20.0,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.client = HttpClient(
            base_url=base_url,
            timeout=timeout,
            default_params={"token": self.api_key} if self.api_key else None,
        )

    @property
    def enabled(self) -> bool:
        return not is_invalid_api_key(self.api_key)

    def get_price(self, symbol: str) -> Optional[Decimal]:
        """Current price for *symbol*, or None when unavailable."""
        if not self.enabled:
            return None
        try:
            data = self.client.get_json("/quote", params={"symbol": symbol})
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Quote fetch failed for %s: %s", symbol, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Unexpected quote payload for %s: %r", symbol, type(data).__name__)
            return None
        return parse_quote(data.get("c"))

    def get_profile(self, symbol: str) -> Optional[dict[str, Any]]:
        """Company profile for *symbol*, or None when unavailable.

        Finnhub answers unknown symbols with ``{}``; that is unavailable too.
        """
        if not self.enabled:
            return None
        try:
            data = self.client.get_json("/stock/profile2", params={"symbol": symbol})
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Profile fetch failed for %s: %s", symbol, exc)
            return None
        if not isinstance(data, dict) or not data:
            logger.info("No company profile for %s", symbol)
            return None
        return normalize_profile(data)

    def list_symbols(self, exchange: str = "US") -> list[str]:
        """Sorted tradable symbols for *exchange*; empty list when unavailable."""
        if not self.enabled:
            logger.warning("Finnhub API key missing or invalid; symbol list unavailable")
            return []
        try:
            data = self.client.get_json("/stock/symbol", params={"exchange": exchange})
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Symbol list fetch failed for %s: %s", exchange, exc)
            return []
        return filter_tradable_symbols(data if isinstance(data, list) else [])


def filter_tradable_symbols(rows: Iterable[Any]) -> list[str]:
    symbols: set[str] = set()
    for row in rows:
        if not isinstance(row, dict):
            continue
        if row.get("type") not in TRADABLE_TYPES:
            continue
        symbol = str(row.get("symbol") or "").strip().upper()
        if symbol:
            symbols.add(symbol)
    return sorted(symbols)


def normalize_profile(data: dict[str, Any]) -> dict[str, Any]:
    """Keep the displayed ``/stock/profile2`` fields.

    ``marketCapitalization`` is reported by Finnhub in millions; it is kept as
    a Decimal string under ``market_cap_millions``.
    """
    market_cap = parse_quote(data.get("marketCapitalization"))
    return {
        "symbol": str(data.get("ticker") or "").upper() or None,
        "name": data.get("name") or None,
        "exchange": data.get("exchange") or None,
        "industry": data.get("finnhubIndustry") or None,
        "country": data.get("country") or None,
        "currency": data.get("currency") or None,
        "ipo": data.get("ipo") or None,
        "market_cap_millions": str(market_cap) if market_cap is not None else None,
        "logo": data.get("logo") or None,
        "weburl": data.get("weburl") or None,
    }
