"""
Ledger Package

The ledger store and the rules that keep transactions, balances,
categories and the two credit ledgers consistent.
"""

from pocketledger.ledger.balances import compute_balances, total_balance
from pocketledger.ledger.defaults import (
    DEFAULT_CATEGORIES,
    default_categories,
    demo_collections,
    seed_demo_data,
)
from pocketledger.ledger.errors import (
    CardInUseError,
    LedgerConsistencyError,
    LedgerError,
    LedgerValidationError,
    ReservedCategoryError,
)
from pocketledger.ledger.persistence import COLLECTION_KEYS, LedgerPersistence
from pocketledger.ledger.store import LedgerStore

__all__ = [
    "COLLECTION_KEYS",
    "DEFAULT_CATEGORIES",
    "CardInUseError",
    "LedgerConsistencyError",
    "LedgerError",
    "LedgerPersistence",
    "LedgerStore",
    "LedgerValidationError",
    "ReservedCategoryError",
    "compute_balances",
    "default_categories",
    "demo_collections",
    "seed_demo_data",
    "total_balance",
]
