"""
Default and Demo Data

Default categories are restored on a fresh ledger and on reset. The demo
data set (two cards, a month of transactions and a few credits) is only
loaded when seeding is switched on.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from pocketledger.models.ledger import (
    CREDIT_CATEGORY,
    CREDIT_RECEIVED_CATEGORY,
    CREDIT_RETURN_CATEGORY,
    CREDIT_RETURN_PAID_CATEGORY,
    CardDetails,
    CardType,
    Category,
    CreditEntry,
    CreditHistoryItem,
    CreditMovement,
    CreditReceivedEntry,
    CreditReceivedHistoryItem,
    PaymentMethod,
    Transaction,
    TransactionType,
)

if TYPE_CHECKING:
    from pocketledger.ledger.store import LedgerStore


INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE

DEFAULT_CATEGORIES: tuple[tuple[str, str, TransactionType], ...] = (
    ("1", "Salary", INCOME),
    ("2", "Freelance", INCOME),
    ("3", "Gifts", INCOME),
    ("11", CREDIT_RETURN_CATEGORY, INCOME),
    ("12", CREDIT_RECEIVED_CATEGORY, INCOME),
    ("4", "Food", EXPENSE),
    ("5", "Rent", EXPENSE),
    ("6", "Transport", EXPENSE),
    ("7", "Shopping", EXPENSE),
    ("8", "Utilities", EXPENSE),
    ("9", "Entertainment", EXPENSE),
    ("10", CREDIT_CATEGORY, EXPENSE),
    ("13", CREDIT_RETURN_PAID_CATEGORY, EXPENSE),
)


def default_categories() -> list[Category]:
    """Fresh copies of the default categories."""
    return [
        Category(id=cat_id, name=name, type=cat_type)
        for cat_id, name, cat_type in DEFAULT_CATEGORIES
    ]


# =============================================================================
# DEMO DATA
# =============================================================================

def _at(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def demo_cards() -> list[CardDetails]:
    return [
        CardDetails(
            id="card-1",
            card_name="HNB Visa Card",
            card_number="4242424242421234",
            expiry_date="12/28",
            card_type=CardType.VISA,
        ),
        CardDetails(
            id="card-2",
            card_name="Sampath Mastercard",
            card_number="5555444433338888",
            expiry_date="06/27",
            card_type=CardType.MASTERCARD,
        ),
    ]


# (type, category, amount, date, note, payment_method, card_id)
_DEMO_TRANSACTIONS = (
    (INCOME, "Salary", "50000", _at(2025, 11, 1, 9), "Monthly salary", None, None),
    (EXPENSE, "Rent", "18000", _at(2025, 11, 3, 18, 30), "House rent", PaymentMethod.CASH, None),
    (EXPENSE, "Shopping", "2500", _at(2025, 11, 5, 15, 15), "New shoes", PaymentMethod.CARD, "card-1"),
    (INCOME, "Freelance", "8000", _at(2025, 11, 6, 11), "Logo design", None, None),
    (EXPENSE, "Food", "1200", _at(2025, 11, 2, 13), "Lunch at cafe", PaymentMethod.CARD, "card-2"),
    (EXPENSE, "Transport", "500", _at(2025, 11, 8, 8, 45), "Bus fare", PaymentMethod.CASH, None),
    (EXPENSE, "Food", "1500", _at(2025, 11, 10, 20), "Dinner with friends", PaymentMethod.CREDIT, None),
    (EXPENSE, "Entertainment", "800", _at(2025, 11, 12, 19, 30), "Movie tickets", PaymentMethod.CARD, "card-1"),
    (INCOME, "Gifts", "2000", _at(2025, 11, 15, 12), "Birthday gift", None, None),
    (EXPENSE, "Utilities", "3200", _at(2025, 11, 20, 18), "Electricity and Internet bill", PaymentMethod.CREDIT, None),
)


def _lent(
    entry_id: str,
    person: str,
    amount: str,
    due: date,
    given: datetime,
    method: PaymentMethod,
    card_id: Optional[str],
    note: Optional[str],
    returns: list[tuple[str, datetime, PaymentMethod, Optional[str], Optional[str]]],
) -> tuple[CreditEntry, list[Transaction]]:
    given_item = CreditHistoryItem(
        id=f"{entry_id}-given",
        date=given,
        amount=Decimal(amount),
        type=CreditMovement.GIVEN,
        payment_method=method,
        card_id=card_id,
        note=note,
    )
    history = [given_item]
    transactions = [Transaction(
        type=EXPENSE,
        category=CREDIT_CATEGORY,
        amount=Decimal(amount),
        date=given,
        note=f"Credit given to {person}",
        payment_method=method,
        card_id=card_id,
        credit_id=entry_id,
        credit_history_id=given_item.id,
    )]
    for index, (ret_amount, when, ret_method, ret_card, ret_note) in enumerate(returns, 1):
        item = CreditHistoryItem(
            id=f"{entry_id}-return-{index}",
            date=when,
            amount=Decimal(ret_amount),
            type=CreditMovement.RETURNED,
            payment_method=ret_method,
            card_id=ret_card,
            note=ret_note,
        )
        history.insert(0, item)
        transactions.append(Transaction(
            type=INCOME,
            category=CREDIT_RETURN_CATEGORY,
            amount=Decimal(ret_amount),
            date=when,
            note=f"Credit return from {person}",
            payment_method=ret_method,
            card_id=ret_card,
            credit_id=entry_id,
            credit_history_id=item.id,
        ))

    entry = CreditEntry(
        id=entry_id,
        person_name=person,
        amount=Decimal(amount),
        due_date=due,
        given_date=given,
        initial_payment_method=method,
        initial_card_id=card_id,
        initial_note=note,
        returned_amount=sum((Decimal(r[0]) for r in returns), Decimal("0")),
        history=history,
    )
    return entry, transactions


def _borrowed(
    entry_id: str,
    person: str,
    amount: str,
    due: date,
    received: datetime,
    method: PaymentMethod,
    card_id: Optional[str],
    note: Optional[str],
    repayments: list[tuple[str, datetime, PaymentMethod, Optional[str], Optional[str]]],
) -> tuple[CreditReceivedEntry, list[Transaction]]:
    transactions = [Transaction(
        type=INCOME,
        category=CREDIT_RECEIVED_CATEGORY,
        amount=Decimal(amount),
        date=received,
        note=f"Credit received from {person}",
        payment_method=method,
        card_id=card_id,
        credit_received_id=entry_id,
    )]
    history: list[CreditReceivedHistoryItem] = []
    for index, (rep_amount, when, rep_method, rep_card, rep_note) in enumerate(repayments, 1):
        item = CreditReceivedHistoryItem(
            id=f"{entry_id}-repayment-{index}",
            date=when,
            amount=Decimal(rep_amount),
            payment_method=rep_method,
            card_id=rep_card,
            note=rep_note,
        )
        history.insert(0, item)
        transactions.append(Transaction(
            type=EXPENSE,
            category=CREDIT_RETURN_PAID_CATEGORY,
            amount=Decimal(rep_amount),
            date=when,
            note=f"Repayment to {person}",
            payment_method=rep_method,
            card_id=rep_card,
            credit_received_id=entry_id,
            credit_received_history_id=item.id,
        ))

    entry = CreditReceivedEntry(
        id=entry_id,
        person_name=person,
        amount=Decimal(amount),
        return_date=due,
        received_date=received,
        initial_payment_method=method,
        initial_card_id=card_id,
        initial_note=note,
        returned_amount=sum((Decimal(r[0]) for r in repayments), Decimal("0")),
        history=history,
    )
    return entry, transactions


def demo_collections() -> dict[str, list]:
    """
    Build the full demo ledger.

    Every credit movement comes with its mirrored transaction, so the
    demo data obeys the same linkage rules as data entered by hand.
    """
    cash, card = PaymentMethod.CASH, PaymentMethod.CARD
    transactions = [
        Transaction(
            type=t_type,
            category=category,
            amount=Decimal(amount),
            date=when,
            note=note,
            payment_method=method,
            card_id=card_id,
        )
        for t_type, category, amount, when, note, method, card_id in _DEMO_TRANSACTIONS
    ]

    credit_entries = []
    for entry, mirrored in (
        _lent("credit-1", "John Doe", "5000", date(2025, 12, 31), _at(2025, 11, 10, 10),
              card, "card-1", "For project supplies",
              [("2000", _at(2025, 11, 20, 14, 30), cash, None, "First part")]),
        _lent("credit-2", "Jane Smith", "1000", date(2025, 11, 30), _at(2025, 11, 15, 18),
              cash, None, "Lunch money", []),
        _lent("credit-3", "John Doe", "2500", date(2025, 11, 25), _at(2025, 11, 5, 9),
              cash, None, None,
              [("2500", _at(2025, 11, 22, 12), card, "card-2", "Paid back in full")]),
    ):
        credit_entries.append(entry)
        transactions.extend(mirrored)

    received_entries = []
    for entry, mirrored in (
        _borrowed("cr-1", "Alice Johnson", "2000", date(2025, 12, 15), _at(2025, 11, 12, 11),
                  cash, None, "Help with rent",
                  [("500", _at(2025, 11, 25, 16), cash, None, "First payment")]),
        _borrowed("cr-2", "Bob Williams", "10000", date(2026, 1, 31), _at(2025, 11, 1, 14, 20),
                  card, "card-2", "Car repair loan",
                  [("5000", _at(2025, 11, 30, 10), card, "card-1", None),
                   ("5000", _at(2025, 12, 28, 10), card, "card-1", None)]),
        _borrowed("cr-3", "Charlie Brown", "500", date(2025, 11, 28), _at(2025, 11, 22, 9),
                  cash, None, None, []),
    ):
        received_entries.append(entry)
        transactions.extend(mirrored)

    transactions.sort(key=lambda t: t.date, reverse=True)
    return {
        "transactions": transactions,
        "categories": default_categories(),
        "cards": demo_cards(),
        "credit_entries": credit_entries,
        "credit_received_entries": received_entries,
    }


def seed_demo_data(store: "LedgerStore") -> None:
    """Replace the ledger's contents with the demo data set."""
    store.import_data(**demo_collections())
