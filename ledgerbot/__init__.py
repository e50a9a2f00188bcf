"""Ledgerbot: a tool-calling bookkeeping assistant."""

__version__ = "0.1.0"
