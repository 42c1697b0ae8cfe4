"""Paper-trading ledger package."""

from .ledger.errors import (
    DataIntegrityViolation,
    LedgerError,
    Rejection,
    RejectReason,
    StoreUnavailable,
    ValidationError,
)
from .ledger.mark import HoldingValuation, Valuation, value_portfolio
from .ledger.position import Position, PositionAccumulator
from .ledger.reconciler import PortfolioSnapshot, reconcile
from .ledger.records import Side, TradeDraft, TradeRecord
from .ledger.service import MutationResult, TradeMutationService
from .quotes import QuoteBook, StaticQuoteSource
from .store import SqliteTradeStore
from .symbols import SymbolDirectory

__all__ = [
    "DataIntegrityViolation",
    "HoldingValuation",
    "LedgerError",
    "MutationResult",
    "PortfolioSnapshot",
    "Position",
    "PositionAccumulator",
    "QuoteBook",
    "Rejection",
    "RejectReason",
    "Side",
    "SqliteTradeStore",
    "StaticQuoteSource",
    "StoreUnavailable",
    "SymbolDirectory",
    "TradeDraft",
    "TradeMutationService",
    "TradeRecord",
    "ValidationError",
    "Valuation",
    "reconcile",
    "value_portfolio",
]
