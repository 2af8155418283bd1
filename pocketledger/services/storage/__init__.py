"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships in-memory, JSON file and Google Sheets backends; the ledger only
sees the interfaces.
"""

from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    KeyValueStorageInterface,
    NotFoundError,
    StorageError,
)
from pocketledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKeyValueStorage,
)
from pocketledger.services.storage.json_file import JsonFileKeyValueStorage
from pocketledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Local implementations
    "InMemoryAuditStorage",
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStorage",
]
