"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the storage backend because:
1. Everything stays on the device, like the model
2. No server to run
3. A single file is easy to back up or inspect

TRADEOFFS:
- One writer at a time (fine for a personal ledger)
- Decimals are stored as TEXT so prices round-trip exactly; the
  min-total predicate is therefore applied in Python

The implementation follows the abstract interface, so the executor never
knows which backend it is talking to.
"""

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from pocket_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)

LEDGER_SCHEMA = """
    CREATE TABLE IF NOT EXISTS ledger_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_name TEXT NOT NULL,
        category TEXT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity >= 1),
        price_per_unit TEXT NOT NULL,
        total_price TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
"""

AUDIT_SCHEMA = """
    CREATE TABLE IF NOT EXISTS audit_log (
        event_id TEXT PRIMARY KEY,
        timestamp TEXT NOT NULL,
        event_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        entity_type TEXT,
        entity_id TEXT,
        correlation_id TEXT,
        description TEXT NOT NULL,
        details_json TEXT,
        error_message TEXT
    )
"""

ENTRY_COLUMNS = "id, item_name, category, quantity, price_per_unit, total_price, created_at"


def _is_locked_error(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


class SQLiteDatabase:
    """
    Low-level SQLite wrapper.

    Owns the single connection, creates the schema, and serializes every
    statement behind a lock so the store can be used from any thread.
    """

    def __init__(self, db_path: str = "pocket_ledger.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """Open the connection and make sure the tables exist."""
        if self._conn is None:
            try:
                if self._db_path != ":memory:":
                    Path(self._db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self._db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute(LEDGER_SCHEMA)
                conn.execute(AUDIT_SCHEMA)
                conn.commit()
            except sqlite3.Error as e:
                raise StorageConnectionError(
                    f"Could not open database at {self._db_path}: {e}"
                ) from e
            self._conn = conn
        return self._conn

    @retry(
        retry=retry_if_exception(_is_locked_error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        reraise=True,
    )
    def execute(
        self,
        sql: str,
        params: tuple = (),
    ) -> tuple[list[sqlite3.Row], Optional[int]]:
        """Run one statement, commit, and return (rows, lastrowid)."""
        conn = self.connect()
        with self._lock:
            cursor = conn.execute(sql, params)
            rows = cursor.fetchall()
            conn.commit()
            return rows, cursor.lastrowid

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class SQLiteLedgerStorage(LedgerStorageInterface):
    """Ledger storage in the `ledger_entries` table."""

    def __init__(self, database: SQLiteDatabase):
        super().__init__()
        self._db = database

    async def _run(self, sql: str, params: tuple = ()) -> tuple[list[sqlite3.Row], Any]:
        try:
            return await asyncio.to_thread(self._db.execute, sql, params)
        except StorageError:
            raise
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    async def insert_entry(self, entry: LedgerEntry) -> LedgerEntry:
        _, row_id = await self._run(
            "INSERT INTO ledger_entries "
            "(item_name, category, quantity, price_per_unit, total_price, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry.item_name,
                entry.category,
                entry.quantity,
                str(entry.price_per_unit),
                str(entry.total_price),
                entry.created_at.isoformat(),
            ),
        )
        stored = entry.model_copy(update={"id": row_id})
        logger.debug("entry_inserted", entry_id=row_id, item_name=entry.item_name)
        await self._notify_change()
        return stored

    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id is None or await self.get_entry_by_id(entry.id) is None:
            raise NotFoundError(f"Entry {entry.id} not found")

        stored = entry.updated()
        await self._run(
            "UPDATE ledger_entries SET item_name = ?, category = ?, quantity = ?, "
            "price_per_unit = ?, total_price = ? WHERE id = ?",
            (
                stored.item_name,
                stored.category,
                stored.quantity,
                str(stored.price_per_unit),
                str(stored.total_price),
                stored.id,
            ),
        )
        await self._notify_change()
        return stored

    async def get_entry_by_id(self, entry_id: int) -> Optional[LedgerEntry]:
        rows, _ = await self._run(
            f"SELECT {ENTRY_COLUMNS} FROM ledger_entries WHERE id = ?",
            (entry_id,),
        )
        return self._row_to_entry(rows[0]) if rows else None

    async def list_entries(
        self,
        category: Optional[str] = None,
        name_query: Optional[str] = None,
        min_total: Optional[Decimal] = None,
        limit: Optional[int] = None,
    ) -> list[LedgerEntry]:
        conditions = []
        params: list[Any] = []

        if category is not None:
            conditions.append("category = ?")
            params.append(category)
        if name_query:
            conditions.append("item_name LIKE ?")
            params.append(f"%{name_query}%")

        sql = f"SELECT {ENTRY_COLUMNS} FROM ledger_entries"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, id DESC"

        rows, _ = await self._run(sql, tuple(params))
        entries = [self._row_to_entry(row) for row in rows]

        # TEXT decimals do not compare numerically in SQL
        if min_total is not None:
            entries = [e for e in entries if e.total_price >= min_total]

        return entries[:limit] if limit else entries

    def _row_to_entry(self, row: sqlite3.Row) -> LedgerEntry:
        return LedgerEntry(
            id=row["id"],
            item_name=row["item_name"],
            category=row["category"],
            quantity=row["quantity"],
            price_per_unit=Decimal(row["price_per_unit"]),
            total_price=Decimal(row["total_price"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteAuditStorage(AuditStorageInterface):
    """Append-only audit log in the `audit_log` table."""

    def __init__(self, database: SQLiteDatabase):
        self._db = database

    async def append_event(self, event: AuditEvent) -> bool:
        await asyncio.to_thread(
            self._db.execute,
            "INSERT INTO audit_log VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            event.to_row(),
        )
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        rows, _ = await asyncio.to_thread(
            self._db.execute,
            "SELECT * FROM audit_log ORDER BY timestamp DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: sqlite3.Row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row["event_id"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            event_type=AuditEventType(row["event_type"]),
            severity=AuditSeverity(row["severity"]),
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            correlation_id=UUID(row["correlation_id"]) if row["correlation_id"] else None,
            description=row["description"],
            details=json.loads(row["details_json"]) if row["details_json"] else {},
            error_message=row["error_message"],
        )
