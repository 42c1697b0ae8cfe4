"""Ledger core: trade records, position replay, valuation, mutations.

Modules:
  records.py    TradeRecord, Side, boundary parsers (Decimal / int only)
  errors.py     exceptions + typed rejections
  position.py   PositionAccumulator: weighted-average cost basis fold
  reconciler.py reconcile(): full replay into a PortfolioSnapshot
  mark.py       value_portfolio(): mark-to-market against quotes
  service.py    TradeMutationService: validate, write, replay
"""
