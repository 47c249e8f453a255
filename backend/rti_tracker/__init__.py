"""RTI Tracker - ledger-backed information request lifecycle engine."""

__version__ = "1.0.0"
