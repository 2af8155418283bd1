"""
Shared fixtures for Pocket Ledger tests.

Every store runs on in-memory storage with a fixed clock; no test
touches the network.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from pocketledger.audit import AuditLogger
from pocketledger.ledger import LedgerStore
from pocketledger.models import (
    CardCreate,
    CardType,
    PaymentMethod,
    TransactionCreate,
    TransactionType,
)
from pocketledger.services.storage import InMemoryAuditStorage, InMemoryKeyValueStorage


FIXED_NOW = datetime(2025, 11, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def kv_storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def store(kv_storage, audit_logger):
    """An empty ledger with default categories."""
    return LedgerStore(
        storage=kv_storage,
        audit_logger=audit_logger,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def card(store):
    """A Visa card in the wallet."""
    return store.add_card(CardCreate(
        card_name="HNB Visa Card",
        card_number="4242 4242 4242 1234",
        expiry_date="12/28",
        card_type=CardType.VISA,
    ))


@pytest.fixture
def funded_store(store, card):
    """10,000 in cash and 20,000 on the card."""
    store.add_transaction(TransactionCreate(
        type=TransactionType.INCOME,
        category="Salary",
        amount=Decimal("10000"),
        date=datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc),
        note="Monthly salary",
    ))
    store.add_transaction(TransactionCreate(
        type=TransactionType.INCOME,
        category="Freelance",
        amount=Decimal("20000"),
        date=datetime(2025, 11, 2, 9, 0, tzinfo=timezone.utc),
        note="Logo design",
        payment_method=PaymentMethod.CARD,
        card_id=card.id,
    ))
    return store
