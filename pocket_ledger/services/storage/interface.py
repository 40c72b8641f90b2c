"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap SQLite for another engine later
2. Use in-memory storage for testing
3. Keep the executor decoupled from storage implementation

The interface is intentionally simple - insert, update, query by predicate,
and a change notification so observers always see the live list.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Optional

import structlog

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.ledger import LedgerEntry


logger = structlog.get_logger(__name__)

EntriesListener = Callable[[list[LedgerEntry]], None]


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement the abstract methods.
    Change notification is shared: implementations call
    `_notify_change()` after every successful mutation.
    """

    def __init__(self):
        self._listeners: list[EntriesListener] = []

    @abstractmethod
    async def insert_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Insert a new entry.

        Args:
            entry: Entry to store; its `id` is ignored

        Returns:
            The stored entry with its store-assigned `id`

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Update an existing entry. The total is recomputed before writing.

        Raises:
            NotFoundError: If no entry has this `id`
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def get_entry_by_id(self, entry_id: int) -> Optional[LedgerEntry]:
        """Retrieve an entry by id, or None."""
        pass

    @abstractmethod
    async def list_entries(
        self,
        category: Optional[str] = None,
        name_query: Optional[str] = None,
        min_total: Optional[Decimal] = None,
        limit: Optional[int] = None,
    ) -> list[LedgerEntry]:
        """
        List entries matching every given predicate.

        Args:
            category: Exact category match
            name_query: Case-insensitive substring of the item name
            min_total: Entries whose total is at least this
            limit: Maximum number of results

        Returns:
            Matching entries, newest first
        """
        pass

    def subscribe(self, listener: EntriesListener) -> Callable[[], None]:
        """
        Register a listener for the live (unfiltered) entry list.

        The listener is called with the full list after every mutation.
        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify_change(self) -> None:
        """Push the current list to every listener."""
        if not self._listeners:
            return
        entries = await self.list_entries()
        for listener in list(self._listeners):
            try:
                listener(entries)
            except Exception as e:
                # A broken observer must not fail the write that triggered it
                logger.error("entries_listener_failed", error=str(e))


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StorageConnectionError(StorageError):
    """Could not open the storage backend."""
    pass
