"""Ledger validation package."""

from pocketledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
