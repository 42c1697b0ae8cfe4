"""Papertool: paper-trading ledger toolchain."""

__version__ = "0.1.0"
