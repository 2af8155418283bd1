"""
Audit Models for Pocket Ledger

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Complete traceability of balances
2. Debugging information when ledgers disagree
3. A way to see which transactions a cascade removed
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from pocketledger.models.ledger import (
    CardDetails,
    Category,
    CreditEntry,
    CreditHistoryItem,
    CreditReceivedEntry,
    CreditReceivedHistoryItem,
    Transaction,
)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger operation has its own event type.
    """
    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Wallet
    CARD_ADDED = "card_added"
    CARD_UPDATED = "card_updated"
    CARD_DELETED = "card_deleted"
    CARD_DELETE_BLOCKED = "card_delete_blocked"

    # Credit lent
    CREDIT_GIVEN = "credit_given"
    CREDIT_RETURN_RECORDED = "credit_return_recorded"
    CREDIT_RETURN_REVERSED = "credit_return_reversed"
    CREDIT_DELETED = "credit_deleted"

    # Credit received
    CREDIT_RECEIVED = "credit_received"
    CREDIT_REPAYMENT_RECORDED = "credit_repayment_recorded"
    CREDIT_REPAYMENT_REVERSED = "credit_repayment_reversed"
    CREDIT_RECEIVED_DELETED = "credit_received_deleted"

    # Whole-ledger operations
    LEDGER_RESET = "ledger_reset"
    LEDGER_LOADED = "ledger_loaded"

    # Validation and storage
    VALIDATION_FAILED = "validation_failed"
    COLLECTION_LOAD_FAILED = "collection_load_failed"
    SAVE_FAILED = "save_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'card', 'credit')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a credit and its mirrored transaction)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered directly by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(transaction, correlation_id)
        event = AuditEventBuilder.credit_deleted(entry, removed_ids, correlation_id)
    """

    @staticmethod
    def transaction_added(
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
            description=(
                f"{transaction.type.value.capitalize()} added: "
                f"{transaction.category} {transaction.amount}"
            ),
            details={
                "category": transaction.category,
                "amount": str(transaction.amount),
                "credit_linked": transaction.is_credit_linked,
            },
            # Mirrored transactions are created by the ledger, not the user
            is_user_action=not transaction.is_credit_linked,
        )

    @staticmethod
    def transaction_updated(
        before: Transaction,
        after: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        changed = {
            field: {"from": str(getattr(before, field)), "to": str(getattr(after, field))}
            for field in Transaction.model_fields
            if getattr(before, field) != getattr(after, field)
        }
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=after.id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({len(changed)} fields changed)",
            details={"changes": changed},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
            description=f"Transaction deleted: {transaction.category} {transaction.amount}",
            details={
                "category": transaction.category,
                "amount": str(transaction.amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def category_added(category: Category) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=category.id,
            description=f"Category added: {category.name} ({category.type.value})",
            is_user_action=True,
        )

    @staticmethod
    def category_updated(
        before: Category,
        after: Category,
        renamed_transactions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="category",
            entity_id=after.id,
            description=f"Category updated: {before.name} -> {after.name}",
            details={
                "old_name": before.name,
                "new_name": after.name,
                "renamed_transactions": renamed_transactions,
            },
            is_user_action=True,
        )

    @staticmethod
    def category_deleted(
        category: Category,
        removed_transaction_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=category.id,
            description=(
                f"Category deleted: {category.name} "
                f"with {len(removed_transaction_ids)} transactions"
            ),
            details={"removed_transaction_ids": removed_transaction_ids},
            is_user_action=True,
        )

    @staticmethod
    def card_added(card: CardDetails) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_ADDED,
            entity_type="card",
            entity_id=card.id,
            description=f"Card added: {card.label}",
            is_user_action=True,
        )

    @staticmethod
    def card_updated(card: CardDetails) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_UPDATED,
            entity_type="card",
            entity_id=card.id,
            description=f"Card updated: {card.label}",
            is_user_action=True,
        )

    @staticmethod
    def card_deleted(card: CardDetails) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_DELETED,
            entity_type="card",
            entity_id=card.id,
            description=f"Card deleted: {card.label}",
            is_user_action=True,
        )

    @staticmethod
    def card_delete_blocked(card: CardDetails, references: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="card",
            entity_id=card.id,
            description=f"Card still in use, not deleted: {card.label}",
            details={"references": references},
            is_user_action=True,
        )

    @staticmethod
    def credit_given(
        entry: CreditEntry,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_GIVEN,
            entity_type="credit",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Credit given to {entry.person_name}: {entry.amount}",
            details={
                "person_name": entry.person_name,
                "amount": str(entry.amount),
                "due_date": entry.due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_return_recorded(
        entry: CreditEntry,
        item: CreditHistoryItem,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_RETURN_RECORDED,
            entity_type="credit",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Credit return from {entry.person_name}: {item.amount}",
            details={
                "history_id": item.id,
                "amount": str(item.amount),
                "returned_amount": str(entry.returned_amount),
                "status": entry.status.value,
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_return_reversed(
        entry: CreditEntry,
        item: CreditHistoryItem,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_RETURN_REVERSED,
            entity_type="credit",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Credit return from {entry.person_name} reversed: {item.amount}",
            details={
                "history_id": item.id,
                "amount": str(item.amount),
                "returned_amount": str(entry.returned_amount),
                "status": entry.status.value,
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_deleted(
        entry: CreditEntry,
        removed_transaction_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_DELETED,
            entity_type="credit",
            entity_id=entry.id,
            description=f"Credit to {entry.person_name} deleted",
            details={"removed_transaction_ids": removed_transaction_ids},
            is_user_action=True,
        )

    @staticmethod
    def credit_received(
        entry: CreditReceivedEntry,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_RECEIVED,
            entity_type="credit_received",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Credit received from {entry.person_name}: {entry.amount}",
            details={
                "person_name": entry.person_name,
                "amount": str(entry.amount),
                "return_date": entry.return_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_repayment_recorded(
        entry: CreditReceivedEntry,
        item: CreditReceivedHistoryItem,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_REPAYMENT_RECORDED,
            entity_type="credit_received",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Repayment to {entry.person_name}: {item.amount}",
            details={
                "history_id": item.id,
                "amount": str(item.amount),
                "returned_amount": str(entry.returned_amount),
                "status": entry.status.value,
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_repayment_reversed(
        entry: CreditReceivedEntry,
        item: CreditReceivedHistoryItem,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_REPAYMENT_REVERSED,
            entity_type="credit_received",
            entity_id=entry.id,
            correlation_id=correlation_id,
            description=f"Repayment to {entry.person_name} reversed: {item.amount}",
            details={
                "history_id": item.id,
                "amount": str(item.amount),
                "returned_amount": str(entry.returned_amount),
                "status": entry.status.value,
            },
            is_user_action=True,
        )

    @staticmethod
    def credit_received_deleted(
        entry: CreditReceivedEntry,
        removed_transaction_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_RECEIVED_DELETED,
            entity_type="credit_received",
            entity_id=entry.id,
            description=f"Credit from {entry.person_name} deleted",
            details={"removed_transaction_ids": removed_transaction_ids},
            is_user_action=True,
        )

    @staticmethod
    def ledger_reset() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="Financial data cleared, default categories restored",
            is_user_action=True,
        )

    @staticmethod
    def ledger_loaded(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            entity_type="ledger",
            description="Ledger collections loaded from storage",
            details=counts,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def collection_load_failed(
        key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COLLECTION_LOAD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="collection",
            entity_id=key,
            description=f"Stored collection '{key}' unreadable, defaults used",
            error_message=error_message,
        )

    @staticmethod
    def save_failed(
        key: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="collection",
            entity_id=key,
            description=f"Failed to save collection '{key}'",
            error_message=error_message,
        )
