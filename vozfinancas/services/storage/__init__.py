"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
a JSON-file key-value store for the client, SQLite through SQLAlchemy for the
companion backend.
"""

from vozfinancas.services.storage.interface import (
    AuditStorageInterface,
    CorruptDataError,
    ExpenseRepositoryInterface,
    ExpenseStoreInterface,
    KeyValueStoreInterface,
    StorageError,
)
from vozfinancas.services.storage.local_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    LocalExpenseStore,
)
from vozfinancas.services.storage.sqlite_store import (
    Database,
    SQLiteAuditStorage,
    SQLiteExpenseRepository,
    create_database,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseRepositoryInterface",
    "ExpenseStoreInterface",
    "KeyValueStoreInterface",
    # Exceptions
    "CorruptDataError",
    "StorageError",
    # Local implementation
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "LocalExpenseStore",
    # SQLite implementation
    "Database",
    "SQLiteAuditStorage",
    "SQLiteExpenseRepository",
    "create_database",
]
