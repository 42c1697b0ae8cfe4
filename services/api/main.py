"""Papertool API: trades, portfolio valuation, watchlists and symbol market data.

Every request is scoped to the owner named in the ``X-User-Id`` header, as
supplied by the identity provider in front of this service.

Usage:
    uvicorn services.api.main:app --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, Optional, Union

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from packages.papertrade.config import LedgerSettings
from packages.papertrade.ledger.errors import (
    DataIntegrityViolation,
    RejectReason,
    StoreUnavailable,
    ValidationError,
)
from packages.papertrade.ledger.records import normalize_symbol
from packages.papertrade.ledger.service import MutationResult
from packages.papertrade.runtime import Runtime, build_runtime
from packages.papertrade.watchlist import WatchlistError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("PAPERTOOL_CONFIG")

_REJECTION_STATUS = {
    RejectReason.VALIDATION: 422,
    RejectReason.INSUFFICIENT_CAPITAL: 409,
    RejectReason.INSUFFICIENT_SHARES: 409,
    RejectReason.QUOTE_UNAVAILABLE: 503,
    RejectReason.STORE_UNAVAILABLE: 503,
    RejectReason.NOT_FOUND: 404,
}


# Request/Response models
class SubmitTradeRequest(BaseModel):
    """Request body for POST /api/trades."""

    symbol: str = Field(..., description="Ticker, e.g. AAPL")
    side: str = Field(..., description="BUY or SELL")
    quantity: Union[int, str] = Field(..., description="Whole number of shares")
    price: Optional[Union[str, float]] = Field(
        default=None, description="Execution price; omitted means the current quote"
    )


class WatchlistRequest(BaseModel):
    """Request body for POST /api/watchlist."""

    symbol: str


def _runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="ledger runtime not initialised")
    return runtime


def _owner(x_user_id: Optional[str] = Header(default=None)) -> str:
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id


def _path_symbol(symbol: str) -> str:
    try:
        return normalize_symbol(symbol)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.message)


def _mutation_response(result: MutationResult) -> dict[str, Any]:
    if result.ok:
        return result.to_dict()
    rejection = result.rejection
    status = _REJECTION_STATUS.get(rejection.reason, 400)
    raise HTTPException(status_code=status, detail=result.to_dict())


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the API.  Without *runtime*, one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "runtime", None) is None:
            settings = LedgerSettings.load(CONFIG_PATH)
            app.state.runtime = build_runtime(settings)
            logger.info("Ledger store at %s", settings.db_path)
        yield
        app.state.runtime.store.close()

    app = FastAPI(
        title="Papertool API",
        description="Paper-trading ledger: trades, positions, P&L",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    @app.exception_handler(DataIntegrityViolation)
    async def _integrity_handler(request: Request, exc: DataIntegrityViolation):
        logger.error("Data integrity violation: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": {"error": "data_integrity_violation",
                                "trade_id": exc.trade_id, "reason": exc.reason}},
        )

    @app.exception_handler(StoreUnavailable)
    async def _store_handler(request: Request, exc: StoreUnavailable):
        return JSONResponse(
            status_code=503,
            content={"detail": {"error": RejectReason.STORE_UNAVAILABLE, "message": str(exc)}},
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "papertool-api"}

    @app.get("/api/trades")
    def list_trades(owner: str = Depends(_owner), rt: Runtime = Depends(_runtime)):
        """Trade history, newest first."""
        return {"trades": [t.to_dict() for t in rt.service.history(owner)]}

    @app.post("/api/trades")
    def submit_trade(
        body: SubmitTradeRequest,
        owner: str = Depends(_owner),
        rt: Runtime = Depends(_runtime),
    ):
        result = rt.service.submit_trade(owner, body.symbol, body.side, body.quantity, body.price)
        return _mutation_response(result)

    @app.delete("/api/trades/{trade_id}")
    def revoke_trade(trade_id: str, owner: str = Depends(_owner), rt: Runtime = Depends(_runtime)):
        return _mutation_response(rt.service.revoke_trade(owner, trade_id))

    @app.get("/api/portfolio")
    def portfolio(
        refresh: bool = True,
        owner: str = Depends(_owner),
        rt: Runtime = Depends(_runtime),
    ):
        """Replayed snapshot plus mark-to-market valuation."""
        snap, valuation = rt.valuation(owner, refresh=refresh)
        return {
            "snapshot": snap.to_dict(),
            "valuation": valuation.to_dict(),
            "currency_symbol": rt.settings.currency_symbol,
        }

    @app.get("/api/cash")
    def cash(owner: str = Depends(_owner), rt: Runtime = Depends(_runtime)):
        return {"cash": str(rt.service.cached_cash(owner))}

    @app.get("/api/watchlist")
    def get_watchlist(owner: str = Depends(_owner), rt: Runtime = Depends(_runtime)):
        symbols = rt.watchlist.symbols(owner)
        prices = rt.quotes.prices()
        return {
            "symbols": symbols,
            "quotes": {s: (str(prices[s]) if prices.get(s) is not None else None) for s in symbols},
        }

    @app.post("/api/watchlist")
    def add_watchlist(
        body: WatchlistRequest,
        owner: str = Depends(_owner),
        rt: Runtime = Depends(_runtime),
    ):
        try:
            symbol = rt.watchlist.add(owner, body.symbol)
        except WatchlistError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        rt.quotes.refresh(rt.quote_source, [symbol])
        return {"symbol": symbol, "symbols": rt.watchlist.symbols(owner)}

    @app.delete("/api/watchlist/{symbol}")
    def remove_watchlist(symbol: str, owner: str = Depends(_owner), rt: Runtime = Depends(_runtime)):
        if not rt.watchlist.remove(owner, symbol):
            raise HTTPException(status_code=404, detail=f"{symbol.upper()} is not in your watchlist")
        return {"symbols": rt.watchlist.symbols(owner)}

    @app.get("/api/symbols/{symbol}")
    def check_symbol(symbol: str, rt: Runtime = Depends(_runtime)):
        normalized = _path_symbol(symbol)
        return {
            "symbol": normalized,
            "valid": rt.directory.is_valid(normalized),
            "directory_available": rt.directory.available,
        }

    @app.get("/api/symbols/{symbol}/profile")
    def symbol_profile(symbol: str, rt: Runtime = Depends(_runtime)):
        normalized = _path_symbol(symbol)
        profile = rt.profile(normalized)
        if profile is None:
            raise HTTPException(status_code=404, detail=f"no company profile for {normalized}")
        rt.quotes.refresh(rt.quote_source, [normalized])
        price = rt.quotes.get(normalized)
        return {"profile": profile, "quote": str(price) if price is not None else None}

    @app.get("/api/symbols/{symbol}/history")
    def symbol_history(
        symbol: str,
        outputsize: str = Query("compact", pattern="^(compact|full)$"),
        days: Optional[int] = Query(None, ge=1, le=7300),
        rt: Runtime = Depends(_runtime),
    ):
        normalized = _path_symbol(symbol)
        since = date.today() - timedelta(days=days) if days is not None else None
        closes = rt.daily_closes(normalized, outputsize=outputsize, since=since)
        return {
            "symbol": normalized,
            "history_available": rt.history is not None,
            "closes": [c.to_dict() for c in closes],
        }

    return app


# ---------------------------------------------------------------------------
# Module-level app instance (for `uvicorn services.api.main:app`)
# ---------------------------------------------------------------------------

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
