"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets can be used as a shared storage backend because:
1. Users can view their raw ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- A cell holds at most 50,000 characters, so large collections are split
  across consecutive cells of the same row
- No transactions: an update appends the new row before deleting the old
  one, and reads take the last row for a key
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to a local file or a database without changing ledger logic.
"""

import json
from datetime import datetime, timezone
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from pocketledger.config import GoogleSheetsSettings, get_settings
from pocketledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    KeyValueStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column layout for the key/value sheet; value chunks start at column 3
STORE_COLUMNS = [
    "key",
    "updated_at",
    "value",
]

# Google Sheets limits a cell to 50,000 characters
CELL_CHUNK_SIZE = 45_000
MAX_VALUE_CHUNKS = 20

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        headers: list[str],
        rows: int,
        cols: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=cols)
            sheet.append_row(headers)
        return sheet

    def get_store_sheet(self) -> gspread.Worksheet:
        """Get or create the key/value worksheet."""
        return self._get_or_create_sheet(
            self._settings.store_sheet_name,
            STORE_COLUMNS,
            rows=100,
            cols=len(STORE_COLUMNS) - 1 + MAX_VALUE_CHUNKS,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
            cols=len(AUDIT_COLUMNS),
        )


def split_value(value: str) -> list[str]:
    """Split a value into cell-sized chunks (at least one, possibly empty)."""
    chunks = [
        value[i:i + CELL_CHUNK_SIZE]
        for i in range(0, len(value), CELL_CHUNK_SIZE)
    ] or [""]
    if len(chunks) > MAX_VALUE_CHUNKS:
        raise StorageError(
            f"Value of {len(value)} characters exceeds the "
            f"{CELL_CHUNK_SIZE * MAX_VALUE_CHUNKS} character limit"
        )
    return chunks


class GoogleSheetsKeyValueStorage(KeyValueStorageInterface):
    """
    Google Sheets implementation of key-value storage.

    One row per key: [key, updated_at, chunk_1, chunk_2, ...].
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> list[list[str]]:
        sheet = self._client.get_store_sheet()
        return sheet.get_all_values()[1:]  # Skip header

    def get(self, key: str) -> Optional[str]:
        """Read a slot; the last row for a key wins."""
        try:
            rows = self._rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read key {key}: {e}")

        value = None
        for row in rows:
            if row and row[0] == key:
                value = "".join(row[2:])
        return value

    def set(self, key: str, value: str) -> None:
        """Write a slot by appending a fresh row, then dropping older rows."""
        self._write_row(key, split_value(value))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_row(self, key: str, chunks: list[str]) -> None:
        try:
            sheet = self._client.get_store_sheet()
            existing = [
                idx
                for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
                if row and row[0] == key
            ]
            updated_at = datetime.now(timezone.utc).isoformat()
            sheet.append_row([key, updated_at, *chunks], value_input_option="RAW")

            # Delete bottom-up so earlier row indexes stay valid
            for idx in reversed(existing):
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to write key {key}: {e}")

    def delete(self, key: str) -> bool:
        try:
            sheet = self._client.get_store_sheet()
            existing = [
                idx
                for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
                if row and row[0] == key
            ]
            for idx in reversed(existing):
                sheet.delete_rows(idx)
            return bool(existing)
        except Exception as e:
            raise StorageError(f"Failed to delete key {key}: {e}")

    def keys(self) -> list[str]:
        try:
            return sorted({row[0] for row in self._rows() if row and row[0]})
        except Exception as e:
            raise StorageError(f"Failed to list keys: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the ledger
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if (
                    row
                    and len(row) > 5
                    and row[4] == entity_type
                    and row[5] == entity_id
                ):
                    try:
                        events.append(self._row_to_event(row))
                    except ValueError:
                        logger.warning("audit_row_unreadable", row_id=row[0])

            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and row[0]:
                    try:
                        events.append(self._row_to_event(row))
                    except ValueError:
                        logger.warning("audit_row_unreadable", row_id=row[0])

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
