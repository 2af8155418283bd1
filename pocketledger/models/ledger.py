"""
Core Data Models for Pocket Ledger

These models define the strict schemas for all data held by the ledger.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for key-value storage and logging
4. Keep derived values (credit status, remaining amount) out of storage

DESIGN DECISION: Every entity comes in two shapes. A `*Create` draft holds
what the caller supplies; the full entity adds what the ledger assigns
(ids, timestamps, running totals, history). Callers never invent ids.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


def new_id(prefix: str) -> str:
    """Create a new prefixed identifier, e.g. ``txn-3f2a9c0b1d4e``."""
    return f"{prefix}-{uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _ensure_aware(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money for a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    """
    How money moved.

    CREDIT means the purchase was made on credit: no account balance moves.
    """
    CASH = "cash"
    CARD = "card"
    CREDIT = "credit"


class CardType(str, Enum):
    """Supported card networks."""
    VISA = "visa"
    MASTERCARD = "mastercard"


class CreditStatus(str, Enum):
    """
    Repayment status of a credit entry.

    CRITICAL: Never stored as a source of truth. Always derived from
    returned_amount vs amount by derive_credit_status().
    """
    PENDING = "pending"
    PARTIALLY_PAID = "partially-paid"
    COMPLETED = "completed"


class CreditMovement(str, Enum):
    """Kind of movement recorded in a lent credit's history."""
    GIVEN = "given"
    RETURNED = "returned"


# Categories used by mirrored credit transactions.
CREDIT_CATEGORY = "Credit"
CREDIT_RETURN_CATEGORY = "Credit Return"
CREDIT_RECEIVED_CATEGORY = "Credit Received"
CREDIT_RETURN_PAID_CATEGORY = "Credit Return Paid"

RESERVED_CATEGORIES = frozenset({
    CREDIT_CATEGORY,
    CREDIT_RETURN_CATEGORY,
    CREDIT_RECEIVED_CATEGORY,
    CREDIT_RETURN_PAID_CATEGORY,
})


def is_reserved_category(name: str) -> bool:
    """Check if a category name belongs to the credit ledgers (case-insensitive)."""
    lowered = name.strip().lower()
    return any(lowered == reserved.lower() for reserved in RESERVED_CATEGORIES)


def derive_credit_status(returned_amount: Decimal, amount: Decimal) -> CreditStatus:
    """
    Derive the status of a credit entry.

    >= amount -> completed, > 0 -> partially-paid, otherwise pending.
    """
    if returned_amount >= amount:
        return CreditStatus.COMPLETED
    if returned_amount > 0:
        return CreditStatus.PARTIALLY_PAID
    return CreditStatus.PENDING


CASH_ACCOUNT = "cash"


def account_for(
    payment_method: Optional[PaymentMethod],
    card_id: Optional[str],
) -> Optional[str]:
    """
    Name the account a payment moves through.

    Returns the card id for card payments, CASH_ACCOUNT for cash and None
    when no account moves (bought on credit).
    """
    if card_id:
        return card_id
    if payment_method == PaymentMethod.CASH:
        return CASH_ACCOUNT
    return None


def _check_account(method: PaymentMethod, card_id: Optional[str]) -> None:
    if method == PaymentMethod.CREDIT:
        raise ValueError("Credit movements must be paid in cash or by card")
    if method == PaymentMethod.CARD and not card_id:
        raise ValueError("Card payments require a card")
    if method == PaymentMethod.CASH and card_id:
        raise ValueError("Cash payments cannot reference a card")


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryCreate(BaseModel):
    """A category as supplied by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name, unique per type (case-insensitive)"
    )
    type: TransactionType

    def same_name(self, other: "CategoryCreate") -> bool:
        return self.name.lower() == other.name.lower() and self.type == other.type


class Category(CategoryCreate):
    """A stored category."""

    id: str = Field(default_factory=lambda: new_id("cat"))


# =============================================================================
# WALLET CARDS
# =============================================================================

_EXPIRY_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")


class CardCreate(BaseModel):
    """Card details as supplied by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    card_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, e.g. 'HNB Visa Card'"
    )
    card_number: str = Field(
        ...,
        description="Full 16 digit card number (stored fully, displayed masked)"
    )
    expiry_date: str = Field(
        ...,
        description="Expiry in MM/YY format"
    )
    card_type: CardType

    @field_validator('card_number')
    @classmethod
    def validate_card_number(cls, v: str) -> str:
        """Accept spaced or dashed input; store digits only."""
        digits = v.replace(" ", "").replace("-", "")
        if not re.fullmatch(r"\d{16}", digits):
            raise ValueError("Card number must be 16 digits")
        return digits

    @field_validator('expiry_date')
    @classmethod
    def validate_expiry_date(cls, v: str) -> str:
        if not _EXPIRY_PATTERN.match(v):
            raise ValueError("Expiry date must be in MM/YY format")
        return v

    @property
    def last_four(self) -> str:
        return self.card_number[-4:]

    @property
    def masked_number(self) -> str:
        return f"**** {self.last_four}"


class CardDetails(CardCreate):
    """A card stored in the wallet."""

    id: str = Field(default_factory=lambda: new_id("card"))

    @property
    def label(self) -> str:
        """Label used when choosing a card, e.g. 'HNB Visa Card (**** 1234)'."""
        return f"{self.card_name} ({self.masked_number})"


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionCreate(BaseModel):
    """
    A transaction as supplied by the caller.

    The credit linkage fields are only ever filled in by the ledger itself
    when it mirrors a credit movement.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Amount, always positive; direction comes from type"
    )
    date: Optional[datetime] = Field(
        default=None,
        description="When the transaction happened; the store's clock when None"
    )
    note: str = Field(
        default="",
        max_length=500,
    )
    payment_method: Optional[PaymentMethod] = None
    card_id: Optional[str] = None

    # Linkage to the credit ledgers
    credit_id: Optional[str] = None
    credit_history_id: Optional[str] = None
    credit_received_id: Optional[str] = None
    credit_received_history_id: Optional[str] = None

    @field_validator('date')
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _ensure_aware(v)

    @model_validator(mode='after')
    def validate_account_and_links(self) -> 'TransactionCreate':
        """Validate payment account and credit linkage consistency."""
        if self.payment_method == PaymentMethod.CARD and not self.card_id:
            raise ValueError("Card payments require a card")
        if self.card_id and self.payment_method not in (None, PaymentMethod.CARD):
            raise ValueError(
                f"A {self.payment_method.value} transaction cannot reference a card"
            )

        if self.credit_history_id and not self.credit_id:
            raise ValueError("credit_history_id requires credit_id")
        if self.credit_received_history_id and not self.credit_received_id:
            raise ValueError("credit_received_history_id requires credit_received_id")
        if self.credit_id and self.credit_received_id:
            raise ValueError("A transaction cannot belong to both credit ledgers")

        return self

    @property
    def is_credit_linked(self) -> bool:
        """Was this transaction generated by a credit movement?"""
        return bool(self.credit_id or self.credit_received_id)

    @property
    def history_id(self) -> Optional[str]:
        """The credit history item this transaction mirrors, if any."""
        return self.credit_history_id or self.credit_received_history_id


class Transaction(TransactionCreate):
    """A stored transaction."""

    id: str = Field(default_factory=lambda: new_id("txn"))
    date: datetime = Field(
        default_factory=utcnow,
        description="When the transaction happened (timezone-aware)"
    )


# =============================================================================
# CREDIT LENT
# =============================================================================

class CreditHistoryItem(BaseModel):
    """A single movement on a lent credit (money given or money returned)."""

    id: str = Field(default_factory=lambda: new_id("hist"))
    date: datetime
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    type: CreditMovement
    payment_method: PaymentMethod
    card_id: Optional[str] = None
    note: Optional[str] = None

    @field_validator('date')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class CreditEntryCreate(BaseModel):
    """Money lent to someone, as supplied by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    person_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Who the money was lent to"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Principal lent"
    )
    due_date: date = Field(
        ...,
        description="When the money should be returned"
    )
    initial_payment_method: PaymentMethod = PaymentMethod.CASH
    initial_card_id: Optional[str] = None
    initial_note: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_initial_account(self) -> 'CreditEntryCreate':
        _check_account(self.initial_payment_method, self.initial_card_id)
        return self


class CreditEntry(CreditEntryCreate):
    """
    A lent credit with its running returned amount and history.

    History is newest first and always starts (at the end) with the
    GIVEN movement.
    """

    id: str = Field(default_factory=lambda: new_id("credit"))
    given_date: datetime
    returned_amount: Decimal = Field(default=Decimal("0"), ge=0)
    history: list[CreditHistoryItem] = Field(default_factory=list)

    @field_validator('given_date')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _ensure_aware(v)

    @computed_field
    @property
    def status(self) -> CreditStatus:
        return derive_credit_status(self.returned_amount, self.amount)

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.amount - self.returned_amount, Decimal("0"))

    def find_history(self, history_id: str) -> Optional[CreditHistoryItem]:
        return next((h for h in self.history if h.id == history_id), None)


# =============================================================================
# CREDIT RECEIVED (BORROWED)
# =============================================================================

class CreditReceivedHistoryItem(BaseModel):
    """A single repayment made on a borrowed credit."""

    id: str = Field(default_factory=lambda: new_id("cr-hist"))
    date: datetime
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    card_id: Optional[str] = None
    note: Optional[str] = None

    @field_validator('date')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class CreditReceivedEntryCreate(BaseModel):
    """Money borrowed from someone, as supplied by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    person_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Who lent the money"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Principal borrowed"
    )
    return_date: date = Field(
        ...,
        description="When the money should be paid back"
    )
    initial_payment_method: PaymentMethod = Field(
        default=PaymentMethod.CASH,
        description="How the money arrived (cash or one of my cards)"
    )
    initial_card_id: Optional[str] = None
    initial_note: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_initial_account(self) -> 'CreditReceivedEntryCreate':
        _check_account(self.initial_payment_method, self.initial_card_id)
        return self


class CreditReceivedEntry(CreditReceivedEntryCreate):
    """
    A borrowed credit with its running repaid amount.

    History holds repayments only, newest first.
    """

    id: str = Field(default_factory=lambda: new_id("cr"))
    received_date: datetime
    returned_amount: Decimal = Field(default=Decimal("0"), ge=0)
    history: list[CreditReceivedHistoryItem] = Field(default_factory=list)

    @field_validator('received_date')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _ensure_aware(v)

    @computed_field
    @property
    def status(self) -> CreditStatus:
        return derive_credit_status(self.returned_amount, self.amount)

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.amount - self.returned_amount, Decimal("0"))

    def find_history(self, history_id: str) -> Optional[CreditReceivedHistoryItem]:
        return next((h for h in self.history if h.id == history_id), None)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'unknown_card', 'insufficient_balance')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a draft against the current ledger.

    Model validation (types, formats) has already happened when the draft
    was built; these are the checks that need the rest of the ledger.
    """

    operation: str = Field(
        ...,
        description="Ledger operation being validated"
    )
    validated_at: datetime = Field(
        default_factory=utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def warnings(self) -> list[str]:
        """Non-blocking messages."""
        return [i.message for i in self.issues if i.severity == "warning"]


# =============================================================================
# OWNER
# =============================================================================

class User(BaseModel):
    """The ledger owner."""

    id: int = 1
    name: str
    email: str
