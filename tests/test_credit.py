"""
Tests for the credit ledgers.

Every credit movement must leave exactly one mirrored transaction, and
every reversal or delete must take its transactions with it.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from pocketledger.ledger import LedgerConsistencyError, LedgerValidationError
from pocketledger.models import (
    AuditEventType,
    CreditEntryCreate,
    CreditMovement,
    CreditReceivedEntryCreate,
    CreditStatus,
    PaymentMethod,
    TransactionType,
)
from pocketledger.services.storage import NotFoundError

from conftest import FIXED_NOW


def _lend(store, amount="5000", person="John Doe", **kwargs):
    return store.add_credit_entry(CreditEntryCreate(
        person_name=person,
        amount=Decimal(amount),
        due_date=date(2025, 12, 31),
        **kwargs,
    ))


def _borrow(store, amount="2000", person="Alice Johnson", **kwargs):
    return store.add_credit_received_entry(CreditReceivedEntryCreate(
        person_name=person,
        amount=Decimal(amount),
        return_date=date(2025, 12, 15),
        **kwargs,
    ))


def _linked(store, **link):
    (field, value), = link.items()
    return [t for t in store.transactions if getattr(t, field) == value]


class TestCreditLent:
    """Tests for money lent to others."""

    def test_give_credit_in_cash(self, funded_store):
        """Test the given history item and the mirrored expense."""
        entry = _lend(funded_store, initial_note="For project supplies")

        assert entry.status == CreditStatus.PENDING
        assert entry.remaining_amount == Decimal("5000")
        assert entry.given_date == FIXED_NOW
        assert len(entry.history) == 1
        assert entry.history[0].type == CreditMovement.GIVEN
        assert entry.history[0].note == "For project supplies"

        mirrored = _linked(funded_store, credit_id=entry.id)
        assert len(mirrored) == 1
        t = mirrored[0]
        assert t.type == TransactionType.EXPENSE
        assert t.category == "Credit"
        assert t.amount == Decimal("5000")
        assert t.note == "Credit given to John Doe"
        assert t.credit_history_id == entry.history[0].id
        assert funded_store.balances["cash"] == Decimal("5000")

    def test_give_credit_by_card(self, funded_store, card):
        entry = _lend(
            funded_store,
            initial_payment_method=PaymentMethod.CARD,
            initial_card_id=card.id,
        )
        assert entry.history[0].card_id == card.id
        assert funded_store.balances[card.id] == Decimal("15000")
        assert funded_store.balances["cash"] == Decimal("10000")

    def test_give_credit_needs_funds(self, funded_store):
        with pytest.raises(LedgerValidationError, match="Insufficient balance to give this credit."):
            _lend(funded_store, amount="10000.01")
        assert funded_store.credit_entries == []

    def test_give_credit_unknown_card(self, funded_store):
        with pytest.raises(LedgerValidationError) as exc_info:
            _lend(
                funded_store,
                initial_payment_method=PaymentMethod.CARD,
                initial_card_id="card-missing",
            )
        assert "unknown_card" in [i.issue_type for i in exc_info.value.result.issues]

    def test_newest_entry_first(self, funded_store):
        first = _lend(funded_store, amount="100", person="A")
        second = _lend(funded_store, amount="100", person="B")
        assert [e.id for e in funded_store.credit_entries] == [second.id, first.id]

    def test_partial_return(self, funded_store):
        """Test that a return grows returned_amount and mirrors an income."""
        entry = _lend(funded_store)

        updated = funded_store.add_credit_return(entry.id, Decimal("2000"), note="First part")

        assert updated.returned_amount == Decimal("2000")
        assert updated.status == CreditStatus.PARTIALLY_PAID
        assert updated.remaining_amount == Decimal("3000")
        assert updated.history[0].type == CreditMovement.RETURNED
        assert updated.history[0].note == "First part"
        assert updated.history[-1].type == CreditMovement.GIVEN

        returns = [t for t in _linked(funded_store, credit_id=entry.id) if t.type == TransactionType.INCOME]
        assert len(returns) == 1
        assert returns[0].category == "Credit Return"
        assert returns[0].note == "Credit return from John Doe"
        assert returns[0].credit_history_id == updated.history[0].id
        assert funded_store.balances["cash"] == Decimal("7000")

    def test_full_return_completes(self, funded_store):
        entry = _lend(funded_store)
        funded_store.add_credit_return(entry.id, "3000")
        updated = funded_store.add_credit_return(entry.id, 2000)

        assert updated.status == CreditStatus.COMPLETED
        assert updated.remaining_amount == Decimal("0")
        assert funded_store.get_credit_entry(entry.id).status == CreditStatus.COMPLETED

    def test_return_to_card(self, funded_store, card):
        entry = _lend(funded_store)
        funded_store.add_credit_return(
            entry.id, Decimal("1000"), PaymentMethod.CARD, card_id=card.id
        )
        assert funded_store.balances[card.id] == Decimal("21000")

    def test_return_cannot_exceed_remaining(self, funded_store):
        """Test that a return above what is still owed is refused."""
        entry = _lend(funded_store)
        funded_store.add_credit_return(entry.id, Decimal("4000"))

        with pytest.raises(LedgerValidationError) as exc_info:
            funded_store.add_credit_return(entry.id, Decimal("1000.01"))

        assert exc_info.value.result.issues[0].issue_type == "exceeds_remaining"
        assert funded_store.get_credit_entry(entry.id).returned_amount == Decimal("4000")
        assert len(_linked(funded_store, credit_id=entry.id)) == 2

    def test_return_by_card_requires_card(self, funded_store):
        entry = _lend(funded_store)
        with pytest.raises(LedgerValidationError, match="Please select a card"):
            funded_store.add_credit_return(entry.id, Decimal("100"), PaymentMethod.CARD)

    def test_return_on_missing_entry(self, funded_store):
        with pytest.raises(NotFoundError):
            funded_store.add_credit_return("credit-missing", Decimal("100"))

    def test_invalid_amount(self, funded_store):
        entry = _lend(funded_store)
        with pytest.raises(ValueError):
            funded_store.add_credit_return(entry.id, "lots")

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), Decimal("NaN"), "-Infinity"])
    def test_non_finite_amount(self, funded_store, amount):
        entry = _lend(funded_store)
        with pytest.raises(ValueError, match="Invalid amount"):
            funded_store.add_credit_return(entry.id, amount)
        assert funded_store.get_credit_entry(entry.id).returned_amount == Decimal("0")

    def test_backdated_return(self, funded_store):
        """Test that a naive backdate is taken as UTC."""
        entry = _lend(funded_store)
        updated = funded_store.add_credit_return(
            entry.id, Decimal("500"), when=datetime(2025, 11, 21, 14, 30)
        )
        expected = datetime(2025, 11, 21, 14, 30, tzinfo=timezone.utc)
        assert updated.history[0].date == expected
        assert funded_store.transactions[0].date == expected

    def test_reverse_return(self, funded_store, audit_storage):
        """Test that deleting a return history item undoes it fully."""
        entry = _lend(funded_store)
        updated = funded_store.add_credit_return(entry.id, Decimal("2000"))
        history_id = updated.history[0].id

        assert funded_store.delete_credit_return_history(entry.id, history_id) is True

        reverted = funded_store.get_credit_entry(entry.id)
        assert reverted.returned_amount == Decimal("0")
        assert reverted.status == CreditStatus.PENDING
        assert reverted.find_history(history_id) is None
        assert [t.credit_history_id for t in _linked(funded_store, credit_id=entry.id)] == [
            entry.history[0].id
        ]
        assert funded_store.balances["cash"] == Decimal("5000")
        assert AuditEventType.CREDIT_RETURN_REVERSED in [e.event_type for e in audit_storage.events]

    def test_reverse_missing_history(self, funded_store):
        entry = _lend(funded_store)
        assert funded_store.delete_credit_return_history(entry.id, "hist-missing") is False
        assert funded_store.delete_credit_return_history("credit-missing", "hist-1") is False

    def test_given_item_cannot_be_reversed(self, funded_store):
        entry = _lend(funded_store)
        with pytest.raises(LedgerConsistencyError):
            funded_store.delete_credit_return_history(entry.id, entry.history[0].id)

    def test_deleting_return_transaction_reverses_return(self, funded_store):
        """Test that removing a return's income also removes the return."""
        entry = _lend(funded_store)
        funded_store.add_credit_return(entry.id, Decimal("2000"))
        income = next(
            t for t in _linked(funded_store, credit_id=entry.id)
            if t.type == TransactionType.INCOME
        )

        assert funded_store.delete_transaction(income.id) is True

        reverted = funded_store.get_credit_entry(entry.id)
        assert reverted.returned_amount == Decimal("0")
        assert len(reverted.history) == 1

    def test_given_transaction_cannot_be_deleted(self, funded_store):
        entry = _lend(funded_store)
        expense = _linked(funded_store, credit_id=entry.id)[0]

        with pytest.raises(LedgerConsistencyError):
            funded_store.delete_transaction(expense.id)
        assert funded_store.get_transaction(expense.id) is not None

    def test_linked_transaction_note_editable(self, funded_store):
        """Test that only date and note of a credit transaction can change."""
        entry = _lend(funded_store)
        expense = _linked(funded_store, credit_id=entry.id)[0]

        updated = funded_store.update_transaction(
            expense.model_copy(update={"note": "Loan for supplies"})
        )
        assert updated.note == "Loan for supplies"

        with pytest.raises(LedgerConsistencyError):
            funded_store.update_transaction(expense.model_copy(update={"amount": Decimal("1")}))

    def test_redating_return_transaction_moves_history_item(self, funded_store, audit_storage):
        """Test that a new date on a return's transaction reaches its history item."""
        entry = _lend(funded_store, amount="100")
        returned = funded_store.add_credit_return(entry.id, Decimal("10"), note="First part")
        history_id = returned.history[0].id
        income = next(
            t for t in _linked(funded_store, credit_id=entry.id)
            if t.credit_history_id == history_id
        )
        earlier = FIXED_NOW - timedelta(days=30)

        funded_store.update_transaction(income.model_copy(update={"date": earlier}))

        item = funded_store.get_credit_entry(entry.id).find_history(history_id)
        assert item.date == earlier
        assert item.note == "First part"
        assert funded_store.get_transaction(income.id).date == earlier
        assert funded_store.get_credit_entry(entry.id).given_date == FIXED_NOW
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_UPDATED

    def test_redating_given_transaction_moves_given_date(self, funded_store):
        entry = _lend(funded_store)
        expense = _linked(funded_store, credit_id=entry.id)[0]
        earlier = FIXED_NOW - timedelta(days=3)

        funded_store.update_transaction(expense.model_copy(update={"date": earlier}))

        moved = funded_store.get_credit_entry(entry.id)
        assert moved.given_date == earlier
        assert moved.history[-1].date == earlier

    def test_note_edit_leaves_history_untouched(self, funded_store):
        entry = _lend(funded_store, initial_note="For project supplies")
        expense = _linked(funded_store, credit_id=entry.id)[0]

        funded_store.update_transaction(expense.model_copy(update={"note": "Loan"}))

        assert funded_store.get_credit_entry(entry.id) == entry

    def test_delete_credit_entry_cascades(self, funded_store):
        entry = _lend(funded_store)
        funded_store.add_credit_return(entry.id, Decimal("2000"))
        funded_store.add_credit_return(entry.id, Decimal("1000"))

        assert funded_store.delete_credit_entry(entry.id) is True

        assert funded_store.credit_entries == []
        assert _linked(funded_store, credit_id=entry.id) == []
        assert len(funded_store.transactions) == 2
        assert funded_store.delete_credit_entry(entry.id) is False

    def test_movements_share_correlation_id(self, funded_store, audit_storage):
        """Test that a credit and its mirrored transaction are correlated."""
        _lend(funded_store)
        given, added = audit_storage.events[-2:]

        assert given.event_type == AuditEventType.CREDIT_GIVEN
        assert added.event_type == AuditEventType.TRANSACTION_ADDED
        assert given.correlation_id is not None
        assert given.correlation_id == added.correlation_id


class TestCreditReceived:
    """Tests for money borrowed from others."""

    def test_receive_credit_in_cash(self, store):
        """Test the mirrored income for borrowed money."""
        entry = _borrow(store, initial_note="Help with rent")

        assert entry.status == CreditStatus.PENDING
        assert entry.history == []
        assert entry.received_date == FIXED_NOW

        mirrored = _linked(store, credit_received_id=entry.id)
        assert len(mirrored) == 1
        assert mirrored[0].type == TransactionType.INCOME
        assert mirrored[0].category == "Credit Received"
        assert mirrored[0].note == "Credit received from Alice Johnson"
        assert mirrored[0].credit_received_history_id is None
        assert store.balances["cash"] == Decimal("2000")

    def test_receive_credit_on_card(self, store, card):
        entry = _borrow(
            store,
            amount="10000",
            initial_payment_method=PaymentMethod.CARD,
            initial_card_id=card.id,
        )
        t = _linked(store, credit_received_id=entry.id)[0]
        assert t.card_id == card.id
        assert t.payment_method == PaymentMethod.CARD
        assert store.balances[card.id] == Decimal("10000")
        assert store.balances["cash"] == Decimal("0")

    def test_receive_credit_unknown_card(self, store):
        with pytest.raises(LedgerValidationError):
            _borrow(
                store,
                initial_payment_method=PaymentMethod.CARD,
                initial_card_id="card-missing",
            )

    def test_repayment(self, store):
        """Test that a repayment mirrors an expense from the paying account."""
        entry = _borrow(store)

        updated = store.add_credit_received_return(entry.id, Decimal("500"), note="First payment")

        assert updated.returned_amount == Decimal("500")
        assert updated.status == CreditStatus.PARTIALLY_PAID
        assert updated.history[0].note == "First payment"

        repayment = next(
            t for t in _linked(store, credit_received_id=entry.id)
            if t.type == TransactionType.EXPENSE
        )
        assert repayment.category == "Credit Return Paid"
        assert repayment.note == "Repayment to Alice Johnson"
        assert repayment.credit_received_history_id == updated.history[0].id
        assert store.balances["cash"] == Decimal("1500")

    def test_redating_repayment_transaction_moves_history_item(self, store):
        entry = _borrow(store)
        updated = store.add_credit_received_return(entry.id, Decimal("500"))
        history_id = updated.history[0].id
        repayment = next(
            t for t in _linked(store, credit_received_id=entry.id)
            if t.credit_received_history_id == history_id
        )
        later = FIXED_NOW + timedelta(days=2)

        store.update_transaction(repayment.model_copy(update={"date": later}))

        moved = store.get_credit_received_entry(entry.id)
        assert moved.find_history(history_id).date == later
        assert moved.received_date == FIXED_NOW

    def test_redating_receipt_transaction_moves_received_date(self, store):
        """Test that the initial receipt has no history item but keeps its date in step."""
        entry = _borrow(store)
        income = _linked(store, credit_received_id=entry.id)[0]
        earlier = datetime(2025, 11, 10, 8, 0, tzinfo=timezone.utc)

        store.update_transaction(income.model_copy(update={"date": earlier}))

        assert store.get_credit_received_entry(entry.id).received_date == earlier

    def test_repayment_needs_funds(self, store, card):
        """Test that a repayment cannot overdraw the paying account."""
        entry = _borrow(
            store,
            initial_payment_method=PaymentMethod.CARD,
            initial_card_id=card.id,
        )
        with pytest.raises(LedgerValidationError, match="Insufficient balance for this repayment."):
            store.add_credit_received_return(entry.id, Decimal("500"))

        store.add_credit_received_return(entry.id, Decimal("500"), PaymentMethod.CARD, card.id)
        assert store.balances[card.id] == Decimal("1500")

    def test_repayment_cannot_exceed_remaining(self, store):
        entry = _borrow(store)
        with pytest.raises(LedgerValidationError, match="greater than the remaining balance"):
            store.add_credit_received_return(entry.id, Decimal("2000.01"))

    def test_repayment_on_missing_entry(self, store):
        with pytest.raises(NotFoundError):
            store.add_credit_received_return("cr-missing", Decimal("1"))

    def test_full_repayment_completes(self, store):
        entry = _borrow(store)
        updated = store.add_credit_received_return(entry.id, Decimal("2000"))
        assert updated.status == CreditStatus.COMPLETED

    def test_reverse_repayment(self, store):
        """Test that removing a repayment recomputes status and drops its expense."""
        entry = _borrow(store)
        store.add_credit_received_return(entry.id, Decimal("500"))
        updated = store.add_credit_received_return(entry.id, Decimal("1500"))
        assert updated.status == CreditStatus.COMPLETED
        last_id = updated.history[0].id

        assert store.delete_credit_received_return_history(entry.id, last_id) is True

        reverted = store.get_credit_received_entry(entry.id)
        assert reverted.returned_amount == Decimal("500")
        assert reverted.status == CreditStatus.PARTIALLY_PAID
        assert len(reverted.history) == 1
        assert _linked(store, credit_received_history_id=last_id) == []
        assert store.balances["cash"] == Decimal("1500")

    def test_reverse_missing_repayment(self, store):
        entry = _borrow(store)
        assert store.delete_credit_received_return_history(entry.id, "cr-hist-missing") is False

    def test_deleting_repayment_transaction_reverses_repayment(self, store):
        entry = _borrow(store)
        updated = store.add_credit_received_return(entry.id, Decimal("500"))
        repayment = _linked(store, credit_received_history_id=updated.history[0].id)[0]

        assert store.delete_transaction(repayment.id) is True
        assert store.get_credit_received_entry(entry.id).returned_amount == Decimal("0")

    def test_received_transaction_cannot_be_deleted(self, store):
        entry = _borrow(store)
        income = _linked(store, credit_received_id=entry.id)[0]
        with pytest.raises(LedgerConsistencyError):
            store.delete_transaction(income.id)

    def test_delete_entry_cascades(self, store):
        entry = _borrow(store)
        store.add_credit_received_return(entry.id, Decimal("500"))

        assert store.delete_credit_received_entry(entry.id) is True

        assert store.credit_received_entries == []
        assert store.transactions == []
        assert store.delete_credit_received_entry(entry.id) is False

    def test_orphaned_transaction_deleted_plainly(self, store):
        """Test that a credit transaction whose entry is gone can be removed."""
        entry = _borrow(store)
        income = _linked(store, credit_received_id=entry.id)[0]
        store.import_data(credit_received_entries=[])

        assert store.delete_transaction(income.id) is True
        assert store.transactions == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
