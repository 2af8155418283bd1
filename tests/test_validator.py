"""Tests for ledger validation."""

import pytest
from datetime import date
from decimal import Decimal

from pocketledger.ledger import default_categories
from pocketledger.models import (
    CardDetails,
    CardType,
    CreditEntryCreate,
    CreditReceivedEntryCreate,
    PaymentMethod,
    TransactionCreate,
    TransactionType,
)
from pocketledger.validation import LedgerValidator


CARD = CardDetails(
    id="card-1",
    card_name="HNB Visa Card",
    card_number="4242424242421234",
    expiry_date="12/28",
    card_type=CardType.VISA,
)
BALANCES = {"cash": Decimal("1000"), "card-1": Decimal("500")}


def _expense(amount="100", category="Food", **kwargs):
    return TransactionCreate(
        type=TransactionType.EXPENSE,
        category=category,
        amount=Decimal(amount),
        **kwargs,
    )


def _issue_types(result):
    return [i.issue_type for i in result.issues]


@pytest.fixture
def validator():
    return LedgerValidator()


class TestValidateTransaction:
    """Tests for manual transaction validation."""

    def test_valid_cash_expense(self, validator):
        result = validator.validate_transaction(
            _expense(payment_method=PaymentMethod.CASH),
            default_categories(), [CARD], BALANCES,
        )
        assert result.is_valid
        assert result.issues == []

    def test_category_match_is_case_insensitive(self, validator):
        result = validator.validate_transaction(
            _expense(category="food"), default_categories(), [], BALANCES,
        )
        assert result.is_valid

    def test_category_must_match_type(self, validator):
        """Test that an expense cannot use an income category."""
        result = validator.validate_transaction(
            _expense(category="Salary"), default_categories(), [], BALANCES,
        )
        assert _issue_types(result) == ["unknown_category"]

    def test_reserved_category(self, validator):
        result = validator.validate_transaction(
            _expense(category="credit return paid"), default_categories(), [], BALANCES,
        )
        assert _issue_types(result) == ["reserved_category"]

    def test_unknown_card(self, validator):
        result = validator.validate_transaction(
            _expense(payment_method=PaymentMethod.CARD, card_id="card-9"),
            default_categories(), [CARD], BALANCES,
        )
        assert "unknown_card" in _issue_types(result)

    def test_insufficient_cash(self, validator):
        result = validator.validate_transaction(
            _expense("1000.01", payment_method=PaymentMethod.CASH),
            default_categories(), [], BALANCES,
        )
        assert result.has_errors
        assert result.issues[0].message == "Insufficient balance for this transaction."
        assert result.issues[0].suggested_fix == "Available in cash: 1000"

    def test_insufficient_card(self, validator):
        result = validator.validate_transaction(
            _expense("600", payment_method=PaymentMethod.CARD, card_id="card-1"),
            default_categories(), [CARD], BALANCES,
        )
        assert _issue_types(result) == ["insufficient_balance"]
        assert "this card" in result.issues[0].suggested_fix

    def test_bought_on_credit_skips_balance(self, validator):
        result = validator.validate_transaction(
            _expense("99999", payment_method=PaymentMethod.CREDIT),
            default_categories(), [], BALANCES,
        )
        assert result.is_valid

    def test_income_skips_balance(self, validator):
        draft = TransactionCreate(
            type=TransactionType.INCOME,
            category="Salary",
            amount=Decimal("99999"),
            payment_method=PaymentMethod.CASH,
        )
        assert validator.validate_transaction(draft, default_categories(), [], {}).is_valid

    def test_shortfall_as_warning(self):
        """Test that a relaxed validator only warns about a shortfall."""
        result = LedgerValidator(enforce_sufficient_balance=False).validate_transaction(
            _expense("5000", payment_method=PaymentMethod.CASH),
            default_categories(), [], BALANCES,
        )
        assert result.is_valid
        assert result.warnings == ["Insufficient balance for this transaction."]


class TestValidateCredits:
    """Tests for credit validation."""

    def test_credit_given_needs_funds(self, validator):
        draft = CreditEntryCreate(
            person_name="John Doe",
            amount=Decimal("1500"),
            due_date=date(2025, 12, 31),
        )
        result = validator.validate_credit_given(draft, [CARD], BALANCES)
        assert result.operation == "credit_given"
        assert result.issues[0].message == "Insufficient balance to give this credit."

    def test_credit_given_by_card(self, validator):
        draft = CreditEntryCreate(
            person_name="John Doe",
            amount=Decimal("500"),
            due_date=date(2025, 12, 31),
            initial_payment_method=PaymentMethod.CARD,
            initial_card_id="card-1",
        )
        assert validator.validate_credit_given(draft, [CARD], BALANCES).is_valid

    def test_credit_received_checks_card(self, validator):
        draft = CreditReceivedEntryCreate(
            person_name="Alice Johnson",
            amount=Decimal("2000"),
            return_date=date(2025, 12, 15),
            initial_payment_method=PaymentMethod.CARD,
            initial_card_id="card-9",
        )
        result = validator.validate_credit_received(draft, [CARD])
        assert _issue_types(result) == ["unknown_card"]

    def test_return_within_remaining(self, validator):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("300"), PaymentMethod.CASH, None, [CARD],
        )
        assert result.is_valid

    def test_return_exceeds_remaining(self, validator):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("300.01"), PaymentMethod.CASH, None, [CARD],
        )
        assert _issue_types(result) == ["exceeds_remaining"]
        assert result.issues[0].suggested_fix == "At most 300 is still owed"

    def test_return_must_be_positive(self, validator):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("0"), PaymentMethod.CASH, None, [CARD],
        )
        assert _issue_types(result) == ["invalid_value"]

    @pytest.mark.parametrize("method,card_id,expected", [
        (PaymentMethod.CREDIT, None, "invalid_value"),
        (PaymentMethod.CARD, None, "missing"),
        (PaymentMethod.CASH, "card-1", "invalid_value"),
        (PaymentMethod.CARD, "card-9", "unknown_card"),
    ])
    def test_return_account(self, validator, method, card_id, expected):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("100"), method, card_id, [CARD],
        )
        assert _issue_types(result) == [expected]

    def test_repayment_checks_funds(self, validator):
        result = validator.validate_credit_return(
            Decimal("2000"), Decimal("600"), PaymentMethod.CARD, "card-1", [CARD],
            balances=BALANCES,
        )
        assert result.issues[0].message == "Insufficient balance for this repayment."


class TestUserFriendlySummary:
    """Tests for the plain language summary."""

    def test_all_good(self, validator):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("100"), PaymentMethod.CASH, None, [],
        )
        assert validator.get_user_friendly_summary(result) == "All good."

    def test_lists_problems(self, validator):
        result = validator.validate_credit_return(
            Decimal("300"), Decimal("400"), PaymentMethod.CARD, None, [],
        )
        summary = validator.get_user_friendly_summary(result)
        assert summary.splitlines() == [
            "Problem: Return amount cannot be greater than the remaining balance. "
            "(At most 300 is still owed)",
            "Problem: Please select a card for this return.",
        ]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
