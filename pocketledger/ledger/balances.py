"""
Balance Derivation

Balances are never stored. They are recomputed from the transaction list
whenever they are needed, so they can never drift from the ledger.
"""

from decimal import Decimal
from typing import Iterable

from pocketledger.models.ledger import (
    CASH_ACCOUNT,
    CardDetails,
    PaymentMethod,
    Transaction,
    TransactionType,
)


def compute_balances(
    transactions: Iterable[Transaction],
    cards: Iterable[CardDetails],
) -> dict[str, Decimal]:
    """
    Compute the balance of cash and of every card.

    Rules:
    - Income goes to its card when card_id names a known card, else to cash.
    - Expenses come out of their card when card_id names a known card,
      else out of cash when paid in cash. Expenses bought on credit
      move nothing.

    Transactions referencing an unknown card fall back to the rules above
    as if no card were given.
    """
    balances: dict[str, Decimal] = {CASH_ACCOUNT: Decimal("0")}
    for card in cards:
        balances[card.id] = Decimal("0")

    for t in transactions:
        known_card = t.card_id if t.card_id and t.card_id in balances else None

        if t.type == TransactionType.INCOME:
            balances[known_card or CASH_ACCOUNT] += t.amount
        elif known_card:
            balances[known_card] -= t.amount
        elif t.payment_method == PaymentMethod.CASH:
            balances[CASH_ACCOUNT] -= t.amount

    return balances


def total_balance(balances: dict[str, Decimal]) -> Decimal:
    """Sum of every account balance."""
    return sum(balances.values(), Decimal("0"))
