"""Settings for the paper-trading ledger.

Resolution order: JSON config file (if given) > environment > defaults.
JSON files may carry a UTF-8 BOM (PowerShell ``Out-File`` writes one).

Example ``papertool.json``::

    {"initial_capital": "25000", "db_path": "data/ledger.sqlite3"}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .alphavantage import DEFAULT_ALPHA_VANTAGE_API_BASE
from .finnhub import DEFAULT_FINNHUB_API_BASE


class ConfigLoadError(ValueError):
    """Raised when config loading or parsing fails."""


# setting name -> environment variable
_ENV_VARS = {
    "initial_capital": "PAPERTOOL_INITIAL_CAPITAL",
    "currency_symbol": "PAPERTOOL_CURRENCY_SYMBOL",
    "db_path": "PAPERTOOL_DB_PATH",
    "finnhub_api_key": "FINNHUB_API_KEY",
    "finnhub_base_url": "FINNHUB_API_BASE",
    "alpha_vantage_api_key": "ALPHA_VANTAGE_API_KEY",
    "alpha_vantage_base_url": "ALPHA_VANTAGE_API_BASE",
    "http_timeout_seconds": "HTTP_TIMEOUT_SECONDS",
    "quote_max_age_seconds": "QUOTE_MAX_AGE_SECONDS",
    "quote_refresh_seconds": "QUOTE_REFRESH_SECONDS",
    "quote_max_workers": "QUOTE_MAX_WORKERS",
}


@dataclass(frozen=True)
class LedgerSettings:
    initial_capital: Decimal = Decimal("10000")
    currency_symbol: str = "$"
    db_path: str = "data/papertool.sqlite3"
    finnhub_api_key: str = ""
    finnhub_base_url: str = DEFAULT_FINNHUB_API_BASE
    alpha_vantage_api_key: str = ""
    alpha_vantage_base_url: str = DEFAULT_ALPHA_VANTAGE_API_BASE
    http_timeout_seconds: float = 20.0
    quote_max_age_seconds: float = 60.0
    quote_refresh_seconds: float = 20.0
    quote_max_workers: int = 8

    @classmethod
    def load(
        cls,
        config_path: Union[str, Path, None] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "LedgerSettings":
        """Build settings from defaults, then *environ*, then *config_path*."""
        env = os.environ if environ is None else environ
        raw: dict[str, Any] = {
            name: env[var] for name, var in _ENV_VARS.items() if env.get(var, "").strip()
        }
        if config_path is not None:
            raw.update(_read_config_file(config_path))
        return cls().with_overrides(raw)

    def with_overrides(self, raw: Mapping[str, Any]) -> "LedgerSettings":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigLoadError(f"unknown config key(s): {', '.join(unknown)}")
        coerced = {name: _coerce(name, value) for name, value in raw.items()}
        return replace(self, **coerced)


def _coerce(name: str, value: Any) -> Any:
    if name == "initial_capital":
        try:
            capital = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ConfigLoadError(f"{name} must be a number, got {value!r}") from exc
        if not capital.is_finite() or capital < 0:
            raise ConfigLoadError(f"{name} must be a non-negative number, got {value!r}")
        return capital
    if name in ("http_timeout_seconds", "quote_max_age_seconds", "quote_refresh_seconds"):
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigLoadError(f"{name} must be a number, got {value!r}") from exc
        if number <= 0:
            raise ConfigLoadError(f"{name} must be positive, got {value!r}")
        return number
    if name == "quote_max_workers":
        try:
            workers = int(str(value).strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} must be an integer, got {value!r}") from exc
        if workers < 1:
            raise ConfigLoadError(f"{name} must be at least 1, got {value!r}")
        return workers
    return str(value)


def _read_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """Settings overrides from a JSON config file (a UTF-8 BOM is tolerated)."""
    source = Path(path)
    if not source.is_file():
        raise ConfigLoadError(f"no config file at {source}")
    try:
        overrides = json.loads(source.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigLoadError(f"cannot read settings from {source}: {exc}") from exc
    if isinstance(overrides, dict):
        return overrides
    raise ConfigLoadError(
        f"{source} must hold a mapping of setting names, not a JSON {type(overrides).__name__}"
    )
