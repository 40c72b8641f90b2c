"""
In-Memory Storage Implementation

Keeps entries in a dict. Used by the tests and by `--memory` CLI runs
where nothing should touch the disk.
"""

import asyncio
from decimal import Decimal
from typing import Optional

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


def _newest_first(entries: list[LedgerEntry]) -> list[LedgerEntry]:
    return sorted(entries, key=lambda e: (e.created_at, e.id or 0), reverse=True)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger storage backed by a dict, guarded by an asyncio lock."""

    def __init__(self):
        super().__init__()
        self._entries: dict[int, LedgerEntry] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def insert_entry(self, entry: LedgerEntry) -> LedgerEntry:
        async with self._lock:
            stored = entry.model_copy(update={"id": self._next_id})
            self._entries[self._next_id] = stored
            self._next_id += 1
        await self._notify_change()
        return stored

    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        async with self._lock:
            if entry.id is None or entry.id not in self._entries:
                raise NotFoundError(f"Entry {entry.id} not found")
            stored = entry.updated()
            self._entries[entry.id] = stored
        await self._notify_change()
        return stored

    async def get_entry_by_id(self, entry_id: int) -> Optional[LedgerEntry]:
        return self._entries.get(entry_id)

    async def list_entries(
        self,
        category: Optional[str] = None,
        name_query: Optional[str] = None,
        min_total: Optional[Decimal] = None,
        limit: Optional[int] = None,
    ) -> list[LedgerEntry]:
        results = list(self._entries.values())
        if category is not None:
            results = [e for e in results if e.category == category]
        if name_query:
            needle = name_query.lower()
            results = [e for e in results if needle in e.item_name.lower()]
        if min_total is not None:
            results = [e for e in results if e.total_price >= min_total]
        results = _newest_first(results)
        return results[:limit] if limit else results


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit log kept in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]
