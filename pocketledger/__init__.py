"""
Pocket Ledger - Source Package

A personal finance ledger: transactions, categories, wallet cards and
two-way credit tracking (money lent / money borrowed).

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Every credit movement has exactly one mirrored transaction
3. Deletes cascade; nothing is left dangling
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
