"""HTTP API tests over an injected in-memory runtime (no network, no files)."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from packages.papertrade.alphavantage import DailyClose
from packages.papertrade.config import LedgerSettings
from packages.papertrade.quotes import StaticQuoteSource
from packages.papertrade.runtime import build_runtime
from packages.papertrade.store import SqliteTradeStore
from packages.papertrade.symbols import SymbolDirectory
from services.api.main import create_app

_ALICE = {"X-User-Id": "alice"}


@pytest.fixture
def runtime():
    settings = LedgerSettings(db_path=":memory:")
    rt = build_runtime(
        settings,
        store=SqliteTradeStore(),
        quote_source=StaticQuoteSource({"AAPL": "190", "MSFT": "410"}),
        directory=SymbolDirectory(["AAPL", "MSFT", "KO"]),
    )
    yield rt
    rt.store.close()


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


def _buy(client, symbol="AAPL", quantity=10, price="150", headers=_ALICE):
    return client.post(
        "/api/trades",
        json={"symbol": symbol, "side": "BUY", "quantity": quantity, "price": price},
        headers=headers,
    )


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_owner_header_required(client):
    assert client.get("/api/trades").status_code == 401
    assert client.get("/api/trades", headers={"X-User-Id": "  "}).status_code == 401


def test_submit_buy(client):
    resp = _buy(client)
    assert resp.status_code == 200
    data = resp.json()
    assert data["ok"] is True
    assert data["trade"]["symbol"] == "AAPL"
    assert data["snapshot"]["cash"] == "8500"
    assert data["snapshot"]["positions"]["AAPL"]["net_quantity"] == 10


def test_market_order_priced_from_quote(client):
    resp = client.post(
        "/api/trades", json={"symbol": "MSFT", "side": "buy", "quantity": "2"}, headers=_ALICE
    )
    assert resp.status_code == 200
    assert resp.json()["trade"]["price"] == "410"


def test_quote_unavailable_is_503(client):
    resp = client.post(
        "/api/trades", json={"symbol": "KO", "side": "BUY", "quantity": 1}, headers=_ALICE
    )
    assert resp.status_code == 503
    assert resp.json()["detail"]["rejection"]["reason"] == "quote_unavailable"


def test_oversell_is_409_with_numbers(client):
    _buy(client, quantity=3)
    resp = client.post(
        "/api/trades",
        json={"symbol": "AAPL", "side": "SELL", "quantity": 5, "price": "160"},
        headers=_ALICE,
    )
    assert resp.status_code == 409
    rejection = resp.json()["detail"]["rejection"]
    assert rejection["reason"] == "insufficient_shares"
    assert rejection["details"] == {"requested": 5, "held": 3}


def test_overspend_is_409(client):
    resp = _buy(client, quantity=1000, price="11")
    assert resp.status_code == 409
    assert resp.json()["detail"]["rejection"]["details"] == {
        "required": "11000",
        "available": "10000",
    }


@pytest.mark.parametrize(
    "body",
    [
        {"symbol": "AAPL", "side": "BUY", "quantity": "1.5", "price": "10"},
        {"symbol": "AAPL", "side": "BUY", "quantity": "\u00b2", "price": "10"},
        {"symbol": "AAPL", "side": "BUY", "quantity": 10**19, "price": "0.00000000000000000001"},
        {"symbol": "AAPL", "side": "HOLD", "quantity": 1, "price": "10"},
        {"symbol": "ZZZZ", "side": "BUY", "quantity": 1, "price": "10"},
        {"symbol": "AAPL", "side": "BUY", "quantity": 1, "price": "-1"},
    ],
)
def test_invalid_trade_is_422(client, body):
    assert client.post("/api/trades", json=body, headers=_ALICE).status_code == 422


def test_history_newest_first_and_scoped(client):
    first = _buy(client, quantity=1).json()["trade"]["trade_id"]
    second = _buy(client, symbol="MSFT", quantity=1).json()["trade"]["trade_id"]
    _buy(client, quantity=1, headers={"X-User-Id": "bob"})
    trades = client.get("/api/trades", headers=_ALICE).json()["trades"]
    assert [t["trade_id"] for t in trades] == [second, first]


def test_revoke(client):
    trade_id = _buy(client).json()["trade"]["trade_id"]
    resp = client.delete(f"/api/trades/{trade_id}", headers=_ALICE)
    assert resp.status_code == 200
    assert resp.json()["snapshot"]["cash"] == "10000"
    assert client.delete(f"/api/trades/{trade_id}", headers=_ALICE).status_code == 404


def test_revoke_other_owner_is_404(client):
    trade_id = _buy(client).json()["trade"]["trade_id"]
    assert client.delete(f"/api/trades/{trade_id}", headers={"X-User-Id": "bob"}).status_code == 404


def test_portfolio_flags_unavailable_quotes(client, runtime):
    _buy(client, quantity=10, price="150")
    # KO has no quote in the static source
    runtime.service.submit_trade("alice", "KO", "BUY", 10, "60")
    data = client.get("/api/portfolio", headers=_ALICE).json()
    valuation = data["valuation"]
    assert valuation["unavailable_symbols"] == ["KO"]
    assert valuation["total_unrealized_pnl"] == "400"
    assert valuation["holdings_value"] == "1900"
    assert valuation["is_complete"] is False
    assert data["currency_symbol"] == "$"
    assert data["snapshot"]["cash"] == str(Decimal("10000") - Decimal("1500") - Decimal("600"))


def test_cash(client):
    _buy(client, quantity=2, price="100")
    assert client.get("/api/cash", headers=_ALICE).json() == {"cash": "9800"}


def test_watchlist_flow(client):
    resp = client.post("/api/watchlist", json={"symbol": "msft"}, headers=_ALICE)
    assert resp.status_code == 200
    assert resp.json() == {"symbol": "MSFT", "symbols": ["MSFT"]}

    assert client.post("/api/watchlist", json={"symbol": "MSFT"}, headers=_ALICE).status_code == 409
    assert client.post("/api/watchlist", json={"symbol": "ZZZZ"}, headers=_ALICE).status_code == 409

    listing = client.get("/api/watchlist", headers=_ALICE).json()
    assert listing == {"symbols": ["MSFT"], "quotes": {"MSFT": "410"}}

    assert client.delete("/api/watchlist/msft", headers=_ALICE).status_code == 200
    assert client.delete("/api/watchlist/MSFT", headers=_ALICE).status_code == 404


def test_symbol_check(client):
    assert client.get("/api/symbols/aapl").json() == {
        "symbol": "AAPL",
        "valid": True,
        "directory_available": True,
    }
    assert client.get("/api/symbols/ZZZZ").json()["valid"] is False
    assert client.get("/api/symbols/$$$").status_code == 422


class _FakeProfiles:
    def get_profile(self, symbol):
        if symbol != "AAPL":
            return None
        return {"symbol": "AAPL", "name": "Apple Inc", "exchange": "NASDAQ", "industry": "Technology"}


class _FakeHistory:
    def __init__(self):
        self.calls = []

    def get_daily_closes(self, symbol, outputsize="compact", since=None):
        self.calls.append({"symbol": symbol, "outputsize": outputsize, "since": since})
        return [
            DailyClose(date(2024, 2, 29), Decimal("180.75")),
            DailyClose(date(2024, 3, 1), Decimal("179.66")),
        ]


def test_symbol_profile_includes_quote(client, runtime):
    runtime.profiles = _FakeProfiles()
    resp = client.get("/api/symbols/aapl/profile")
    assert resp.status_code == 200
    body = resp.json()
    assert body["profile"]["name"] == "Apple Inc"
    assert body["quote"] == "190"


def test_symbol_profile_missing_is_404(client, runtime):
    runtime.profiles = _FakeProfiles()
    assert client.get("/api/symbols/KO/profile").status_code == 404
    assert client.get("/api/symbols/$$$/profile").status_code == 422


def test_symbol_profile_without_provider_is_404(client):
    resp = client.get("/api/symbols/AAPL/profile")
    assert resp.status_code == 404
    assert "AAPL" in resp.json()["detail"]


def test_symbol_history(client, runtime):
    history = _FakeHistory()
    runtime.history = history
    resp = client.get("/api/symbols/aapl/history", params={"outputsize": "full", "days": 30})
    assert resp.status_code == 200
    assert resp.json() == {
        "symbol": "AAPL",
        "history_available": True,
        "closes": [
            {"date": "2024-02-29", "close": "180.75"},
            {"date": "2024-03-01", "close": "179.66"},
        ],
    }
    assert history.calls[0]["outputsize"] == "full"
    assert history.calls[0]["since"] == date.today() - timedelta(days=30)


def test_symbol_history_without_provider(client):
    resp = client.get("/api/symbols/AAPL/history")
    assert resp.json() == {"symbol": "AAPL", "history_available": False, "closes": []}


@pytest.mark.parametrize("params", [{"outputsize": "huge"}, {"days": 0}, {"days": "week"}])
def test_symbol_history_bad_query_is_422(client, runtime, params):
    runtime.history = _FakeHistory()
    assert client.get("/api/symbols/AAPL/history", params=params).status_code == 422


def test_integrity_violation_is_500(client, runtime):
    _buy(client)
    with runtime.store._transaction() as conn:
        conn.execute("UPDATE trades SET quantity = 0")
    resp = client.get("/api/portfolio", headers=_ALICE)
    assert resp.status_code == 500
    assert resp.json()["detail"]["error"] == "data_integrity_violation"


def test_store_outage_on_read_is_503(client, runtime):
    with runtime.store._transaction() as conn:
        conn.execute("DROP TABLE trades")
    assert client.get("/api/trades", headers=_ALICE).status_code == 503


def test_runtime_missing_is_503():
    client = TestClient(create_app())
    assert client.get("/api/trades", headers=_ALICE).status_code == 503
