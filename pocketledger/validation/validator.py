"""
Ledger Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - MODEL VALIDATION:
- Types, formats and required fields
- Done by the pydantic drafts themselves (TransactionCreate, CardCreate, ...)
- Needs nothing but the draft

STAGE 2 - LEDGER VALIDATION (this module):
- Does the category exist for this type?
- Does the card exist?
- Is there enough money in the paying account?
- Does a return exceed what is still owed?
- Needs the current state of the ledger

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the store refuses the mutation.
"""

from decimal import Decimal
from typing import Iterable, Optional

from pocketledger.models.ledger import (
    CASH_ACCOUNT,
    CardDetails,
    Category,
    CreditEntryCreate,
    CreditReceivedEntryCreate,
    PaymentMethod,
    TransactionCreate,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    account_for,
    is_reserved_category,
)


class LedgerValidator:
    """
    Validates drafts against the current ledger state.

    Every method returns a ValidationResult; callers decide whether to
    proceed. The store refuses anything with error-level issues.
    """

    def __init__(self, enforce_sufficient_balance: bool = True):
        """
        Initialize validator.

        Args:
            enforce_sufficient_balance: Reject expenses larger than the
                paying account's balance. When False, the shortfall is
                reported as a warning instead.
        """
        self._enforce_balance = enforce_sufficient_balance

    def _check_card(
        self,
        issues: list[ValidationIssue],
        field: str,
        card_id: Optional[str],
        cards: Iterable[CardDetails],
    ) -> None:
        if card_id and card_id not in {c.id for c in cards}:
            issues.append(ValidationIssue(
                field=field,
                issue_type="unknown_card",
                message=f"Card {card_id} is not in the wallet",
                severity="error",
                suggested_fix="Add the card to the wallet or choose another one",
            ))

    def _check_balance(
        self,
        issues: list[ValidationIssue],
        amount: Decimal,
        payment_method: Optional[PaymentMethod],
        card_id: Optional[str],
        balances: dict[str, Decimal],
        message: str,
    ) -> None:
        account = account_for(payment_method, card_id)
        if account is None:
            return
        available = balances.get(account, Decimal("0"))
        if available < amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="insufficient_balance",
                message=message,
                severity="error" if self._enforce_balance else "warning",
                suggested_fix=(
                    f"Available in {'cash' if account == CASH_ACCOUNT else 'this card'}: "
                    f"{available}"
                ),
            ))

    def validate_transaction(
        self,
        draft: TransactionCreate,
        categories: Iterable[Category],
        cards: Iterable[CardDetails],
        balances: dict[str, Decimal],
    ) -> ValidationResult:
        """
        Validate a manual transaction.

        Args:
            draft: The transaction to add or the new state of an edit
            categories: Current categories
            cards: Current wallet cards
            balances: Balances excluding the transaction being edited
        """
        issues: list[ValidationIssue] = []

        if is_reserved_category(draft.category):
            issues.append(ValidationIssue(
                field="category",
                issue_type="reserved_category",
                message=f"'{draft.category}' is managed by the credit ledgers",
                severity="error",
                suggested_fix="Record credits through the credit operations",
            ))
        elif not any(
            c.name.lower() == draft.category.lower() and c.type == draft.type
            for c in categories
        ):
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"No {draft.type.value} category named '{draft.category}'",
                severity="error",
                suggested_fix="Create the category first",
            ))

        cards = list(cards)
        self._check_card(issues, "card_id", draft.card_id, cards)

        if draft.type == TransactionType.EXPENSE:
            self._check_balance(
                issues,
                draft.amount,
                draft.payment_method,
                draft.card_id,
                balances,
                "Insufficient balance for this transaction.",
            )

        return ValidationResult(operation="transaction", issues=issues)

    def validate_credit_given(
        self,
        draft: CreditEntryCreate,
        cards: Iterable[CardDetails],
        balances: dict[str, Decimal],
    ) -> ValidationResult:
        """Validate lending money to someone."""
        issues: list[ValidationIssue] = []
        self._check_card(issues, "initial_card_id", draft.initial_card_id, cards)
        self._check_balance(
            issues,
            draft.amount,
            draft.initial_payment_method,
            draft.initial_card_id,
            balances,
            "Insufficient balance to give this credit.",
        )
        return ValidationResult(operation="credit_given", issues=issues)

    def validate_credit_received(
        self,
        draft: CreditReceivedEntryCreate,
        cards: Iterable[CardDetails],
    ) -> ValidationResult:
        """Validate borrowing money from someone."""
        issues: list[ValidationIssue] = []
        self._check_card(issues, "initial_card_id", draft.initial_card_id, cards)
        return ValidationResult(operation="credit_received", issues=issues)

    def validate_credit_return(
        self,
        remaining: Decimal,
        amount: Decimal,
        payment_method: PaymentMethod,
        card_id: Optional[str],
        cards: Iterable[CardDetails],
        balances: Optional[dict[str, Decimal]] = None,
    ) -> ValidationResult:
        """
        Validate a return on either credit ledger.

        Args:
            remaining: What is still owed on the entry
            amount: Amount being returned
            payment_method: Cash or card
            card_id: Card the money moves through, for card payments
            cards: Current wallet cards
            balances: Pass balances when the return is paid out of my
                accounts (repaying a borrowed credit) to check funds
        """
        issues: list[ValidationIssue] = []

        if amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Return amount must be greater than zero",
                severity="error",
            ))
        elif amount > remaining:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="exceeds_remaining",
                message="Return amount cannot be greater than the remaining balance.",
                severity="error",
                suggested_fix=f"At most {remaining} is still owed",
            ))

        if payment_method == PaymentMethod.CREDIT:
            issues.append(ValidationIssue(
                field="payment_method",
                issue_type="invalid_value",
                message="Returns must be made in cash or by card",
                severity="error",
            ))
        elif payment_method == PaymentMethod.CARD and not card_id:
            issues.append(ValidationIssue(
                field="card_id",
                issue_type="missing",
                message="Please select a card for this return.",
                severity="error",
            ))
        elif payment_method == PaymentMethod.CASH and card_id:
            issues.append(ValidationIssue(
                field="card_id",
                issue_type="invalid_value",
                message="Cash returns cannot reference a card",
                severity="error",
            ))

        cards = list(cards)
        self._check_card(issues, "card_id", card_id, cards)

        if balances is not None and amount > 0:
            self._check_balance(
                issues,
                amount,
                payment_method,
                card_id,
                balances,
                "Insufficient balance for this repayment.",
            )

        return ValidationResult(operation="credit_return", issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        Written in simple language for non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "All good."

        lines = []
        for issue in result.issues:
            prefix = "Problem" if issue.severity == "error" else "Note"
            line = f"{prefix}: {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        return "\n".join(lines)
