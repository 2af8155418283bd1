"""
Ledger Persistence

Each collection lives in its own key-value slot as a JSON array.
Reads are forgiving about content (a corrupt slot falls back to its
default) but never about the backend itself: if storage cannot be read,
the error propagates so nothing gets overwritten with defaults.
"""

from typing import Any, Callable, Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from pocketledger.audit import AuditLogger
from pocketledger.models.audit import AuditEventBuilder
from pocketledger.models.ledger import (
    CardDetails,
    Category,
    CreditEntry,
    CreditReceivedEntry,
    Transaction,
)
from pocketledger.services.storage import KeyValueStorageInterface


logger = structlog.get_logger("pocketledger.persistence")


TRANSACTIONS_KEY = "transactions"
CATEGORIES_KEY = "categories"
CARDS_KEY = "cards"
CREDIT_ENTRIES_KEY = "credit_entries"
CREDIT_RECEIVED_ENTRIES_KEY = "credit_received_entries"

COLLECTION_KEYS = (
    TRANSACTIONS_KEY,
    CATEGORIES_KEY,
    CARDS_KEY,
    CREDIT_ENTRIES_KEY,
    CREDIT_RECEIVED_ENTRIES_KEY,
)

_ADAPTERS: dict[str, TypeAdapter] = {
    TRANSACTIONS_KEY: TypeAdapter(list[Transaction]),
    CATEGORIES_KEY: TypeAdapter(list[Category]),
    CARDS_KEY: TypeAdapter(list[CardDetails]),
    CREDIT_ENTRIES_KEY: TypeAdapter(list[CreditEntry]),
    CREDIT_RECEIVED_ENTRIES_KEY: TypeAdapter(list[CreditReceivedEntry]),
}


class LedgerPersistence:
    """
    Serializes ledger collections to key-value slots.

    Usage:
        persistence = LedgerPersistence(storage, audit_logger)
        categories = persistence.load_collection("categories", default_categories)
        persistence.save_collection("categories", categories)
    """

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()

    def load_collection(
        self,
        key: str,
        default: Optional[Callable[[], list[Any]]] = None,
    ) -> list[Any]:
        """
        Load one collection.

        Args:
            key: Slot name, one of COLLECTION_KEYS
            default: Factory for the value used when the slot is missing
                or unreadable (empty list when not given)

        Raises:
            KeyError: Unknown slot name
            StorageError: The backend itself failed
        """
        adapter = _ADAPTERS[key]
        raw = self._storage.get(key)
        if raw is None:
            return default() if default else []

        try:
            return adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "collection_load_failed",
                key=key,
                error_count=e.error_count(),
            )
            self._audit.log(
                AuditEventBuilder.collection_load_failed(key, str(e)[:500])
            )
            return default() if default else []

    def save_collection(self, key: str, items: list[Any]) -> None:
        """
        Write one collection to its slot.

        Raises:
            StorageError: If the write fails
        """
        adapter = _ADAPTERS[key]
        self._storage.set(key, adapter.dump_json(items).decode("utf-8"))
