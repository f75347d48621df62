"""
Local Store

The client's persistent store: a single JSON document on disk holding one
value per namespace key, the way a browser keeps localStorage.

DESIGN DECISION: Writes go to a temporary file that then replaces the
document with os.replace, so a crash mid-write leaves the previous document
intact and a reader never sees half a collection.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import TypeAdapter, ValidationError

from vozfinancas.models.expense import Expense
from vozfinancas.services.storage.interface import (
    CorruptDataError,
    ExpenseStoreInterface,
    KeyValueStoreInterface,
    StorageError,
)


log = structlog.get_logger(__name__)

_EXPENSE_LIST = TypeAdapter(list[Expense])


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """Key-value store persisted as one JSON object in a file."""

    def __init__(self, path: Path | str):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: Optional[dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            raw = self._path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"Local store at {self._path} is not valid JSON") from e
        except OSError as e:
            raise StorageError(f"Could not read local store: {e}") from e
        if not isinstance(data, dict):
            raise CorruptDataError(f"Local store at {self._path} is not a JSON object")
        self._data = data
        return self._data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self._path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageError(f"Could not write local store: {e}") from e

    def get_item(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            data = dict(self._read())
            data[key] = value
            self._write(data)
            self._data = data

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = dict(self._read())
            if key not in data:
                return
            del data[key]
            self._write(data)
            self._data = data


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Non-persistent store, used when no local path is configured."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get_item(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set_item(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers can't share mutable state
        self._data[key] = json.loads(json.dumps(value))

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class LocalExpenseStore(ExpenseStoreInterface):
    """
    The expense collection, stored under one fixed namespace key.
    """

    def __init__(
        self,
        kv: KeyValueStoreInterface,
        key: str = "vozfinancas_expenses",
    ):
        self._kv = kv
        self._key = key

    def load(self) -> list[Expense]:
        raw = self._kv.get_item(self._key)
        if raw is None:
            return []
        try:
            expenses = _EXPENSE_LIST.validate_python(raw)
        except ValidationError as e:
            raise CorruptDataError(
                f"Stored expenses under '{self._key}' are malformed"
            ) from e
        log.debug("expenses_loaded", count=len(expenses), key=self._key)
        return expenses

    def save(self, expenses: list[Expense]) -> None:
        payload = _EXPENSE_LIST.dump_python(expenses, mode="json")
        self._kv.set_item(self._key, payload)
        log.debug("expenses_saved", count=len(expenses), key=self._key)
