"""Recurring obligations and credit-card billing cycles for a personal ledger."""

__version__ = "0.1.0"
