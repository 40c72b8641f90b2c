"""Services package."""

from pocket_ledger.services.preferences import Preferences, PreferencesStore
from pocket_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Preferences
    "Preferences",
    "PreferencesStore",
    # Storage services
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteLedgerStorage",
    "StorageConnectionError",
    "StorageError",
]
