"""Tests for per-owner watchlists."""

from __future__ import annotations

import pytest

from packages.papertrade.store import SqliteTradeStore
from packages.papertrade.symbols import SymbolDirectory
from packages.papertrade.watchlist import Watchlist, WatchlistError


@pytest.fixture
def store():
    s = SqliteTradeStore()
    yield s
    s.close()


def test_add_normalizes_and_lists_in_order(store):
    watchlist = Watchlist(store)
    assert watchlist.add("alice", " msft ") == "MSFT"
    assert watchlist.add("alice", "aapl") == "AAPL"
    assert watchlist.symbols("alice") == ["MSFT", "AAPL"]
    assert watchlist.symbols("bob") == []


def test_duplicate_refused(store):
    watchlist = Watchlist(store)
    watchlist.add("alice", "AAPL")
    with pytest.raises(WatchlistError, match="'AAPL' is already in your watchlist."):
        watchlist.add("alice", "aapl")


def test_malformed_symbol_refused(store):
    with pytest.raises(WatchlistError):
        Watchlist(store).add("alice", "not a ticker")


def test_unknown_symbol_refused_when_directory_loaded(store):
    watchlist = Watchlist(store, SymbolDirectory(["AAPL"]))
    with pytest.raises(WatchlistError, match="unknown symbol"):
        watchlist.add("alice", "ZZZZ")
    assert watchlist.add("alice", "AAPL") == "AAPL"


def test_remove(store):
    watchlist = Watchlist(store)
    watchlist.add("alice", "AAPL")
    assert watchlist.remove("alice", "aapl") is True
    assert watchlist.remove("alice", "AAPL") is False
    assert watchlist.symbols("alice") == []


def test_remove_does_not_cross_owners(store):
    watchlist = Watchlist(store)
    watchlist.add("alice", "AAPL")
    assert watchlist.remove("bob", "AAPL") is False
    assert watchlist.symbols("alice") == ["AAPL"]
