"""Tests for wiring the application components together."""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from pocketledger.config import Settings, get_settings
from pocketledger.orchestrator import create_app_components, create_storage
from pocketledger.services.storage import (
    ConnectionError,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
    monkeypatch.delenv("LEDGER_SEED_DEMO_DATA", raising=False)
    monkeypatch.delenv("LEDGER_DATA_FILE", raising=False)
    monkeypatch.delenv("LEDGER_TIMEZONE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestCreateStorage:
    """Tests for backend selection."""

    def test_memory(self):
        storage, audit_storage = create_storage(Settings())
        assert isinstance(storage, InMemoryKeyValueStorage)
        assert audit_storage is None

    def test_json(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "json")
        monkeypatch.setenv("LEDGER_DATA_FILE", str(tmp_path / "ledger.json"))

        storage, _ = create_storage(Settings())
        assert isinstance(storage, JsonFileKeyValueStorage)
        assert storage.path == tmp_path / "ledger.json"

    def test_google_sheets_without_settings_falls_back(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        storage, audit_storage = create_storage(Settings())
        assert isinstance(storage, InMemoryKeyValueStorage)
        assert audit_storage is None

    def test_unreachable_google_sheets_falls_back(self, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", "missing.json")
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")

        with patch(
            "pocketledger.orchestrator.GoogleSheetsClient.get_store_sheet",
            side_effect=ConnectionError("Spreadsheet not found: sheet-123"),
        ), pytest.warns(UserWarning):
            storage, _ = create_storage(Settings())

        assert isinstance(storage, InMemoryKeyValueStorage)


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_empty_ledger(self):
        store, reports, audit_logger = create_app_components()

        assert store.is_empty
        assert len(store.categories) == 13
        assert reports.dashboard_summary().total_balance == 0
        assert audit_logger.storage is None

    def test_seeds_demo_data(self, monkeypatch):
        monkeypatch.setenv("LEDGER_SEED_DEMO_DATA", "true")

        store, _, _ = create_app_components()

        assert len(store.transactions) == 21
        assert len(store.cards) == 2

    def test_does_not_seed_over_existing_data(self, monkeypatch, tmp_path):
        """Test that seeding only fills an empty ledger."""
        monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "json")
        monkeypatch.setenv("LEDGER_DATA_FILE", str(tmp_path / "ledger.json"))
        monkeypatch.setenv("LEDGER_SEED_DEMO_DATA", "true")

        seeded, _, _ = create_app_components()
        assert len(seeded.transactions) == 21
        seeded.delete_credit_entry("credit-2")

        reopened, _, _ = create_app_components()
        assert len(reopened.credit_entries) == 2
        assert len(reopened.transactions) == 20

    def test_owner_and_timezone(self, monkeypatch):
        monkeypatch.setenv("LEDGER_OWNER_NAME", "Nimal Perera")
        monkeypatch.setenv("LEDGER_TIMEZONE", "Asia/Colombo")

        store, reports, _ = create_app_components()

        assert store.user.name == "Nimal Perera"
        late = datetime(2025, 11, 18, 23, 30, tzinfo=timezone.utc)
        assert reports.local_date(late) == date(2025, 11, 19)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
