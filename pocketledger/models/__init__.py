"""
Data Models Package

This package contains all Pydantic models used by Pocket Ledger.
All data held by the ledger must conform to these schemas.
"""

from pocketledger.models.ledger import (
    CASH_ACCOUNT,
    CREDIT_CATEGORY,
    CREDIT_RECEIVED_CATEGORY,
    CREDIT_RETURN_CATEGORY,
    CREDIT_RETURN_PAID_CATEGORY,
    RESERVED_CATEGORIES,
    CardCreate,
    CardDetails,
    CardType,
    Category,
    CategoryCreate,
    CreditEntry,
    CreditEntryCreate,
    CreditHistoryItem,
    CreditMovement,
    CreditReceivedEntry,
    CreditReceivedEntryCreate,
    CreditReceivedHistoryItem,
    CreditStatus,
    PaymentMethod,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    ValidationIssue,
    ValidationResult,
    account_for,
    derive_credit_status,
    is_reserved_category,
    new_id,
    utcnow,
)
from pocketledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from pocketledger.models.reports import (
    CardSearchResult,
    CategoryTotal,
    CreditSummary,
    DailyTotals,
    DashboardSummary,
    MonthGroup,
    PendingByPerson,
    PeriodSummary,
    PersonCreditProfile,
    TransactionQuery,
)

__all__ = [
    # Ledger models
    "CASH_ACCOUNT",
    "CREDIT_CATEGORY",
    "CREDIT_RECEIVED_CATEGORY",
    "CREDIT_RETURN_CATEGORY",
    "CREDIT_RETURN_PAID_CATEGORY",
    "RESERVED_CATEGORIES",
    "CardCreate",
    "CardDetails",
    "CardType",
    "Category",
    "CategoryCreate",
    "CreditEntry",
    "CreditEntryCreate",
    "CreditHistoryItem",
    "CreditMovement",
    "CreditReceivedEntry",
    "CreditReceivedEntryCreate",
    "CreditReceivedHistoryItem",
    "CreditStatus",
    "PaymentMethod",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "User",
    "ValidationIssue",
    "ValidationResult",
    "account_for",
    "derive_credit_status",
    "is_reserved_category",
    "new_id",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Report models
    "CardSearchResult",
    "CategoryTotal",
    "CreditSummary",
    "DailyTotals",
    "DashboardSummary",
    "MonthGroup",
    "PendingByPerson",
    "PeriodSummary",
    "PersonCreditProfile",
    "TransactionQuery",
]
