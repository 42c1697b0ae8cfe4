"""CLI tests: ``papertool ledger`` and ``papertool watchlist`` against a temp database."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from packages.papertrade.alphavantage import DailyClose
from papertool.__main__ import main as papertool_main
from tools.cli import ledger as cli_ledger
from tools.cli.ledger import EXIT_REJECTED
from tools.cli.ledger import main as ledger_main
from tools.cli.watchlist import main as watchlist_main


@pytest.fixture
def base_args(tmp_path):
    return ["--owner", "alice", "--db", str(tmp_path / "ledger.sqlite3"), "--offline"]


def _ledger(base_args, *args):
    return ledger_main([*base_args, *args])


class TestLedgerCLI:
    def test_buy_prints_fill_and_cash(self, base_args, capsys):
        assert _ledger(base_args, "buy", "aapl", "10", "--price", "150") == 0
        out = capsys.readouterr().out
        assert "BUY 10 AAPL @ $150.00" in out
        assert "cash: $8,500.00" in out

    def test_oversell_exits_rejected(self, base_args, capsys):
        _ledger(base_args, "buy", "AAPL", "3", "--price", "10")
        capsys.readouterr()
        assert _ledger(base_args, "sell", "AAPL", "5", "--price", "11") == EXIT_REJECTED
        err = capsys.readouterr().err
        assert "insufficient_shares" in err
        assert "held: 3" in err

    def test_market_order_without_quote_rejected(self, base_args, capsys):
        assert _ledger(base_args, "buy", "AAPL", "1") == EXIT_REJECTED
        assert "quote_unavailable" in capsys.readouterr().err

    def test_market_order_with_static_quote(self, base_args, capsys):
        assert _ledger(base_args, "buy", "AAPL", "2", "--quote", "AAPL=187.50") == 0
        assert "@ $187.50" in capsys.readouterr().out

    def test_history_json_newest_first(self, base_args, capsys):
        _ledger(base_args, "buy", "AAPL", "1", "--price", "10")
        _ledger(base_args, "buy", "MSFT", "1", "--price", "20")
        capsys.readouterr()
        assert _ledger(base_args, "history", "--json") == 0
        trades = json.loads(capsys.readouterr().out)
        assert [t["symbol"] for t in trades] == ["MSFT", "AAPL"]

    def test_history_empty(self, base_args, capsys):
        assert _ledger(base_args, "history") == 0
        assert capsys.readouterr().out.strip() == "no trades"

    def test_revoke(self, base_args, capsys):
        _ledger(base_args, "buy", "AAPL", "1", "--price", "10")
        capsys.readouterr()
        _ledger(base_args, "history", "--json")
        trade_id = json.loads(capsys.readouterr().out)[0]["trade_id"]
        assert _ledger(base_args, "revoke", trade_id) == 0
        assert f"revoked trade {trade_id}" in capsys.readouterr().out
        assert _ledger(base_args, "revoke", trade_id) == EXIT_REJECTED

    def test_portfolio_json_with_quotes(self, base_args, capsys):
        _ledger(base_args, "buy", "AAPL", "10", "--price", "150")
        _ledger(base_args, "buy", "KO", "10", "--price", "60")
        capsys.readouterr()
        assert _ledger(base_args, "portfolio", "--quote", "AAPL=160", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["valuation"]["total_unrealized_pnl"] == "100"
        assert data["valuation"]["unavailable_symbols"] == ["KO"]

    def test_portfolio_text_marks_unavailable(self, base_args, capsys):
        _ledger(base_args, "buy", "KO", "10", "--price", "60")
        capsys.readouterr()
        assert _ledger(base_args, "portfolio") == 0
        out = capsys.readouterr().out
        assert "price unavailable: KO" in out
        assert "N/A" in out

    def test_cash(self, base_args, capsys):
        _ledger(base_args, "buy", "AAPL", "1", "--price", "0.125")
        capsys.readouterr()
        assert _ledger(base_args, "cash") == 0
        assert capsys.readouterr().out.strip() == "$9,999.88"

    def test_owner_required(self, tmp_path, capsys):
        assert ledger_main(["--db", str(tmp_path / "x.sqlite3"), "--offline", "cash"]) == 1
        assert "--owner" in capsys.readouterr().err

    def test_owner_from_environment(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("PAPERTOOL_OWNER", "alice")
        assert ledger_main(["--db", str(tmp_path / "x.sqlite3"), "--offline", "cash"]) == 0
        assert capsys.readouterr().out.strip() == "$10,000.00"

    def test_bad_quote_argument(self, base_args, capsys):
        assert _ledger(base_args, "portfolio", "--quote", "AAPL") == 1
        assert "SYMBOL=PRICE" in capsys.readouterr().err

    def test_config_file_sets_capital(self, base_args, tmp_path, capsys):
        config = tmp_path / "papertool.json"
        config.write_text(json.dumps({"initial_capital": "500", "currency_symbol": "€"}), encoding="utf-8")
        assert ledger_main(["--config", str(config), *base_args, "cash"]) == 0
        assert capsys.readouterr().out.strip() == "€500.00"

    def test_missing_config_file(self, base_args, tmp_path, capsys):
        assert ledger_main(["--config", str(tmp_path / "nope.json"), *base_args, "cash"]) == 1


class _FakeProfiles:
    def get_profile(self, symbol):
        return {
            "symbol": symbol,
            "name": "Apple Inc",
            "exchange": "NASDAQ",
            "industry": "Technology",
            "country": "US",
            "market_cap_millions": "2871531.5",
        }


class _FakeHistory:
    def get_daily_closes(self, symbol, outputsize="compact", since=None):
        return [
            DailyClose(date(2024, 2, 29), Decimal("180.75")),
            DailyClose(date(2024, 3, 1), Decimal("179.66")),
        ]


@pytest.fixture
def market_data(monkeypatch):
    real_build = cli_ledger.build_runtime

    def build(settings, **kwargs):
        kwargs.update(profiles=_FakeProfiles(), history=_FakeHistory())
        return real_build(settings, **kwargs)

    monkeypatch.setattr(cli_ledger, "build_runtime", build)


class TestQuoteCLI:
    def test_offline_quote_has_no_profile(self, base_args, capsys):
        assert _ledger(base_args, "quote", "aapl", "--history", "30") == 0
        out = capsys.readouterr().out
        assert "AAPL  (company profile unavailable)" in out
        assert "price      : N/A" in out
        assert "daily history unavailable" in out

    def test_quote_uses_static_price(self, base_args, capsys):
        assert _ledger(base_args, "quote", "AAPL", "--quote", "AAPL=190") == 0
        assert "price      : $190.00" in capsys.readouterr().out

    def test_quote_shows_profile_and_closes(self, base_args, market_data, capsys):
        assert _ledger(base_args, "quote", "AAPL", "--quote", "AAPL=190", "--history", "7") == 0
        out = capsys.readouterr().out
        assert "AAPL  Apple Inc" in out
        assert "industry   : Technology" in out
        assert "market cap : $2,871,531.50M" in out
        assert "2024-02-29       $180.75" in out
        assert "2024-03-01       $179.66" in out

    def test_quote_json(self, base_args, market_data, capsys):
        assert _ledger(base_args, "quote", "AAPL", "--history", "7", "--json") == 0
        body = json.loads(capsys.readouterr().out)
        assert body["profile"]["name"] == "Apple Inc"
        assert body["quote"] is None
        assert body["closes"][-1] == {"date": "2024-03-01", "close": "179.66"}

    def test_quote_invalid_symbol(self, base_args, capsys):
        assert _ledger(base_args, "quote", "$$$") == 1
        assert "[ledger quote]" in capsys.readouterr().err

    def test_quote_negative_history(self, base_args, capsys):
        assert _ledger(base_args, "quote", "AAPL", "--history", "-1") == 1
        assert "must not be negative" in capsys.readouterr().err


class TestWatchlistCLI:
    def test_add_list_remove(self, tmp_path, capsys):
        base = ["--owner", "alice", "--db", str(tmp_path / "w.sqlite3")]
        assert watchlist_main([*base, "add", "msft"]) == 0
        assert watchlist_main([*base, "add", "AAPL"]) == 0
        assert watchlist_main([*base, "add", "AAPL"]) == 1
        capsys.readouterr()
        assert watchlist_main([*base, "list"]) == 0
        assert capsys.readouterr().out.split() == ["MSFT", "AAPL"]
        assert watchlist_main([*base, "remove", "msft"]) == 0
        assert watchlist_main([*base, "remove", "msft"]) == 1


class TestEntrypoint:
    def test_routes_ledger(self, base_args, capsys):
        assert papertool_main(["ledger", *base_args, "cash"]) == 0
        assert "$10,000.00" in capsys.readouterr().out

    def test_version(self, capsys):
        assert papertool_main(["--version"]) == 0
        assert capsys.readouterr().out.startswith("papertool ")

    def test_no_command(self, capsys):
        assert papertool_main([]) == 1
        assert "Usage" in capsys.readouterr().out

    def test_unknown_command(self, capsys):
        assert papertool_main(["bogus"]) == 1
        assert "Unknown command: bogus" in capsys.readouterr().err
