"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLite is the on-device backend; the in-memory one backs tests and
throwaway runs.
"""

from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntriesListener,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from pocket_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from pocket_ledger.services.storage.sqlite import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "EntriesListener",
    "LedgerStorageInterface",
    # Exceptions
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQLite implementation
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteLedgerStorage",
]
