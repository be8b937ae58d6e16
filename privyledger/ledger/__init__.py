"""Ledger mutations on embedded child records."""

from privyledger.ledger.service import LedgerService

__all__ = ["LedgerService"]
