"""
JSON File Storage

The local equivalent of browser storage: every slot lives as a string
value in one JSON object on disk.

TRADEOFFS:
- The whole file is rewritten on every set (fine for a personal ledger)
- Writes go to a temporary file first and are renamed into place, so a
  crash never leaves a half-written file
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog

from pocketledger.services.storage.interface import (
    KeyValueStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class JsonFileKeyValueStorage(KeyValueStorageInterface):
    """Key-value slots stored in a single JSON file."""

    def __init__(self, path: Union[Path, str]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}")

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Storage file {self._path} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self._path} must hold a JSON object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self._path}: {e}")

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        if value is not None and not isinstance(value, str):
            # Slots written by hand may hold raw JSON instead of a string
            return json.dumps(value)
        return value

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)
        logger.debug("storage_slot_written", key=key, path=str(self._path), size=len(value))

    def delete(self, key: str) -> bool:
        data = self._read_all()
        if key not in data:
            return False
        del data[key]
        self._write_all(data)
        return True

    def keys(self) -> list[str]:
        return sorted(self._read_all())
