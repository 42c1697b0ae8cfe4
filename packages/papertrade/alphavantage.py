"""Alpha Vantage adapter: daily closing prices for a symbol.

``GET /query?function=TIME_SERIES_DAILY&symbol=AAPL&outputsize=compact``::

    {"Time Series (Daily)": {"2024-03-01": {"4. close": "179.6600", ...}, ...}}

Alpha Vantage reports problems in a 200 body (``"Error Message"``, or
``"Note"`` / ``"Information"`` when rate limited).  All of these, like
transport failures, yield an empty series with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import requests

from .finnhub import is_invalid_api_key
from .http_client import HttpClient
from .ledger.records import parse_quote

logger = logging.getLogger(__name__)

DEFAULT_ALPHA_VANTAGE_API_BASE = "https://www.alphavantage.co"

#: ``compact`` is the latest 100 points; ``full`` is the whole history.
OUTPUT_SIZES = ("compact", "full")

_SERIES_KEY = "Time Series (Daily)"
_PROVIDER_MESSAGE_KEYS = ("Error Message", "Note", "Information")


@dataclass(frozen=True)
class DailyClose:
    day: date
    close: Decimal

    def to_dict(self) -> dict[str, str]:
        return {"date": self.day.isoformat(), "close": str(self.close)}


class AlphaVantageClient:
    """Daily price history backed by Alpha Vantage."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_ALPHA_VANTAGE_API_BASE,
        timeout: float = 20.0,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.client = HttpClient(
            base_url=base_url,
            timeout=timeout,
            default_params={"apikey": self.api_key} if self.api_key else None,
        )

    @property
    def enabled(self) -> bool:
        return not is_invalid_api_key(self.api_key)

    def get_daily_closes(
        self,
        symbol: str,
        outputsize: str = "compact",
        since: Optional[date] = None,
    ) -> list[DailyClose]:
        """Closing prices for *symbol*, oldest first; empty when unavailable.

        Args:
            symbol:     Ticker.
            outputsize: ``compact`` or ``full``.
            since:      Drop days before this date.
        """
        if outputsize not in OUTPUT_SIZES:
            raise ValueError(f"outputsize must be one of {OUTPUT_SIZES}, got {outputsize!r}")
        if not self.enabled:
            return []
        try:
            data = self.client.get_json(
                "/query",
                params={"function": "TIME_SERIES_DAILY", "symbol": symbol, "outputsize": outputsize},
            )
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Daily series fetch failed for %s: %s", symbol, exc)
            return []
        if not isinstance(data, dict):
            return []
        for key in _PROVIDER_MESSAGE_KEYS:
            if key in data:
                logger.warning("Alpha Vantage %s for %s: %s", key, symbol, data[key])
                return []
        return parse_daily_series(data.get(_SERIES_KEY), since=since)


def parse_daily_series(series: Any, since: Optional[date] = None) -> list[DailyClose]:
    """``{"YYYY-MM-DD": {"4. close": "..."}}`` -> sorted :class:`DailyClose` list.

    Rows with an unparseable date or a missing / non-positive close are skipped.
    """
    if not isinstance(series, dict):
        return []
    closes: list[DailyClose] = []
    for raw_day, fields in series.items():
        try:
            day = date.fromisoformat(str(raw_day))
        except ValueError:
            continue
        if since is not None and day < since:
            continue
        close = parse_quote(fields.get("4. close")) if isinstance(fields, dict) else None
        if close is None:
            continue
        closes.append(DailyClose(day, close))
    closes.sort(key=lambda c: c.day)
    return closes
