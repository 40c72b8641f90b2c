"""
Tests for ledger and audit storage.

Every behavior is checked against both backends: the in-memory store
and SQLite in a temporary directory.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from pocket_ledger.models.audit import AuditEventBuilder, AuditEventType
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    NotFoundError,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        yield InMemoryLedgerStorage()
        return
    database = SQLiteDatabase(str(tmp_path / "ledger.db"))
    yield SQLiteLedgerStorage(database)
    database.close()


@pytest.fixture(params=["memory", "sqlite"])
def audit_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryAuditStorage()
        return
    database = SQLiteDatabase(str(tmp_path / "audit.db"))
    yield SQLiteAuditStorage(database)
    database.close()


async def insert_all(storage, *entries):
    return [await storage.insert_entry(entry) for entry in entries]


class TestLedgerStorage:
    """Tests shared by every ledger backend."""

    def test_insert_assigns_ids(self, storage):
        """Test each stored entry gets its own id."""
        stored = asyncio.run(insert_all(
            storage,
            LedgerEntry.create("mango", Decimal("20"), quantity=4),
            LedgerEntry.create("rice", Decimal("60")),
        ))
        assert stored[0].id is not None
        assert stored[0].id != stored[1].id

    def test_get_by_id_round_trips_decimals(self, storage):
        """Test prices come back as exact Decimals."""
        async def scenario():
            stored = await storage.insert_entry(
                LedgerEntry.create("milk", Decimal("0.10"), quantity=3)
            )
            return await storage.get_entry_by_id(stored.id)

        entry = asyncio.run(scenario())
        assert entry.price_per_unit == Decimal("0.10")
        assert entry.total_price == Decimal("0.30")

    def test_get_missing_entry(self, storage):
        """Test an unknown id gives None."""
        assert asyncio.run(storage.get_entry_by_id(999)) is None

    def test_newest_first(self, storage):
        """Test listing returns the most recent entry first."""
        asyncio.run(insert_all(
            storage,
            LedgerEntry.create("first", Decimal("1")),
            LedgerEntry.create("second", Decimal("2")),
        ))
        names = [e.item_name for e in asyncio.run(storage.list_entries())]
        assert names == ["second", "first"]

    def test_predicates(self, storage):
        """Test category, name and minimum total filters combine."""
        asyncio.run(insert_all(
            storage,
            LedgerEntry.create("Basmati rice", Decimal("60"), quantity=2, category="Food"),
            LedgerEntry.create("rice cooker", Decimal("900"), category="Home"),
            LedgerEntry.create("tea", Decimal("10"), category="Food"),
        ))

        food = asyncio.run(storage.list_entries(category="Food"))
        assert sorted(e.item_name for e in food) == ["Basmati rice", "tea"]

        rice = asyncio.run(storage.list_entries(name_query="RICE"))
        assert len(rice) == 2

        expensive = asyncio.run(storage.list_entries(min_total=Decimal("100")))
        assert sorted(e.item_name for e in expensive) == ["Basmati rice", "rice cooker"]

        both = asyncio.run(storage.list_entries(category="Food", min_total=Decimal("100")))
        assert [e.item_name for e in both] == ["Basmati rice"]

    def test_limit(self, storage):
        """Test limit caps the number of results."""
        asyncio.run(insert_all(
            storage, *(LedgerEntry.create(f"item{n}", Decimal("1")) for n in range(4))
        ))
        assert len(asyncio.run(storage.list_entries(limit=2))) == 2

    def test_update_recomputes_total(self, storage):
        """Test an update rewrites the entry with a fresh total."""
        async def scenario():
            stored = await storage.insert_entry(LedgerEntry.create("tea", Decimal("10")))
            await storage.update_entry(stored.model_copy(update={"quantity": 5}))
            return await storage.get_entry_by_id(stored.id)

        entry = asyncio.run(scenario())
        assert entry.quantity == 5
        assert entry.total_price == Decimal("50")

    def test_update_unknown_entry(self, storage):
        """Test updating an entry that was never stored raises NotFoundError."""
        ghost = LedgerEntry.create("ghost", Decimal("1")).model_copy(update={"id": 404})
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_entry(ghost))

    def test_listeners_see_every_change(self, storage):
        """Test subscribers get the full list after each mutation."""
        snapshots: list[list[str]] = []
        unsubscribe = storage.subscribe(
            lambda entries: snapshots.append([e.item_name for e in entries])
        )

        asyncio.run(insert_all(
            storage,
            LedgerEntry.create("a", Decimal("1")),
            LedgerEntry.create("b", Decimal("2")),
        ))
        unsubscribe()
        asyncio.run(storage.insert_entry(LedgerEntry.create("c", Decimal("3"))))

        assert snapshots == [["a"], ["b", "a"]]

    def test_broken_listener_does_not_fail_insert(self, storage):
        """Test an exception in a listener is logged, not raised."""
        def broken(entries):
            raise RuntimeError("observer bug")

        storage.subscribe(broken)
        stored = asyncio.run(storage.insert_entry(LedgerEntry.create("a", Decimal("1"))))
        assert stored.id is not None


class TestSQLitePersistence:
    """Tests specific to the SQLite backend."""

    def test_entries_survive_reopen(self, tmp_path):
        """Test a new connection sees what an earlier one stored."""
        path = str(tmp_path / "ledger.db")

        database = SQLiteDatabase(path)
        asyncio.run(SQLiteLedgerStorage(database).insert_entry(
            LedgerEntry.create("mango", Decimal("20"), quantity=4)
        ))
        database.close()

        database = SQLiteDatabase(path)
        entries = asyncio.run(SQLiteLedgerStorage(database).list_entries())
        database.close()

        assert len(entries) == 1
        assert entries[0].total_price == Decimal("80")


class TestAuditStorage:
    """Tests shared by every audit backend."""

    def test_append_and_read_back(self, audit_store):
        """Test events come back newest first with their fields intact."""
        loaded = AuditEventBuilder.model_loaded("m.gguf", None)
        rejected = AuditEventBuilder.entry_rejected("tea", "Missing name or price.", None)
        rejected = rejected.model_copy(
            update={"timestamp": loaded.timestamp + timedelta(seconds=1)}
        )

        async def scenario():
            await audit_store.append_event(loaded)
            await audit_store.append_event(rejected)
            return await audit_store.get_recent_events(limit=10)

        events = asyncio.run(scenario())
        assert [e.event_type for e in events] == [
            AuditEventType.ENTRY_REJECTED,
            AuditEventType.MODEL_LOADED,
        ]
        assert events[0].details["reason"] == "Missing name or price."
