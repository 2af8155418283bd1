"""
Main Orchestrator for Pocket Ledger

This module ties the components together: settings pick the storage
backend, the audit logger observes the store, and the report executor
reads from it.

DESIGN DECISION: A misconfigured remote backend never stops the ledger
from starting. If Google Sheets cannot be reached, the ledger runs on
in-memory storage and says so loudly in the log.
"""

from typing import Optional

import structlog

from pocketledger.audit import AuditLogger
from pocketledger.config import Settings, get_settings
from pocketledger.ledger import LedgerStore, seed_demo_data
from pocketledger.models.ledger import User
from pocketledger.reports import ReportExecutor
from pocketledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStorage,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorageInterface,
    StorageError,
)
from pocketledger.validation import LedgerValidator


logger = structlog.get_logger("pocketledger.orchestrator")


def create_storage(
    settings: Settings,
) -> tuple[KeyValueStorageInterface, Optional[AuditStorageInterface]]:
    """
    Build the configured key-value storage and, where it has one, the
    matching audit storage.

    Returns:
        (storage, audit_storage)
    """
    backend = settings.ledger.storage_backend

    if backend == "json":
        return JsonFileKeyValueStorage(settings.ledger.data_file), None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            # Fail here rather than on the first read
            sheets_client.get_store_sheet()
            return (
                GoogleSheetsKeyValueStorage(sheets_client),
                GoogleSheetsAuditStorage(sheets_client),
            )
        except (StorageError, ValueError) as e:
            logger.warning(
                "storage_not_configured",
                backend=backend,
                error=str(e),
                fallback="memory",
            )

    return InMemoryKeyValueStorage(), None


def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[LedgerStore, ReportExecutor, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use. Defaults to get_settings().

    Returns:
        (ledger_store, report_executor, audit_logger)
    """
    settings = settings or get_settings()
    ledger_settings = settings.ledger

    storage, audit_storage = create_storage(settings)
    audit_logger = AuditLogger(audit_storage)

    store = LedgerStore(
        storage=storage,
        audit_logger=audit_logger,
        validator=LedgerValidator(
            enforce_sufficient_balance=ledger_settings.enforce_sufficient_balance
        ),
        owner=User(name=ledger_settings.owner_name, email=ledger_settings.owner_email),
    )

    if ledger_settings.seed_demo_data and store.is_empty:
        seed_demo_data(store)
        logger.info("demo_data_seeded", transactions=len(store.transactions))

    reports = ReportExecutor(store, tz=ledger_settings.tzinfo)

    return store, reports, audit_logger
