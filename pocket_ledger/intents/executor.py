"""
Intent Executor

DESIGN DECISION: Execution is DETERMINISTIC.
The model only proposes a Command. This executor decides whether the
proposal is acceptable and is the only code that mutates the ledger.

GUARANTEES:
- Never raises; every outcome is an ExecutionResult
- An insert is stored only with a name, a positive price and quantity >= 1
- Batch items are judged one by one; a bad item never blocks the rest
  and stored items are never rolled back
"""

from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from pocket_ledger.audit import AuditLogger
from pocket_ledger.config import AppSettings, get_settings
from pocket_ledger.models.commands import (
    Command,
    ExpenseItem,
    GetAbovePrice,
    GetAll,
    GetByCategory,
    InsertMany,
    InsertOne,
    OtherQuestion,
    SearchByName,
    Unrecognized,
)
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.models.results import ExecutionResult
from pocket_ledger.services.storage import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)

UNNAMED_ITEM = "Unnamed Item"
# Placeholder name some models emit instead of leaving the field out
UNKNOWN_ITEM = "Unknown Item"
INVALID_ITEM_REASON = "Missing name or price."


class ItemRejected(Exception):
    """An item failed acceptance; the message says why."""
    pass


class IntentExecutor:
    """
    Executes interpreted commands against ledger storage.

    Read intents are acknowledged but do not filter anything: the caller
    already shows the live, unfiltered ledger list.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def execute(
        self,
        command: Command,
        correlation_id: Optional[UUID] = None,
    ) -> ExecutionResult:
        """Run one command and describe the outcome."""
        try:
            if isinstance(command, InsertOne):
                return await self._insert_one(command, correlation_id)
            elif isinstance(command, InsertMany):
                return await self._insert_many(command, correlation_id)
            elif isinstance(command, (GetAll, GetByCategory, GetAbovePrice, SearchByName)):
                return await self._acknowledge_read(command, correlation_id)
            elif isinstance(command, OtherQuestion):
                return ExecutionResult(
                    command_kind=command.kind,
                    success=True,
                    message=f"LLM: {command.raw_model_text}",
                    details=command.raw_model_text,
                )
            elif isinstance(command, Unrecognized):
                return self._unrecognized(command)
            else:
                return ExecutionResult(
                    command_kind=getattr(command, "kind", "unknown"),
                    success=False,
                    is_error=True,
                    message="Unhandled command.",
                )
        except Exception as e:
            logger.error("command_execution_failed", error=str(e), kind=command.kind)
            await self._audit.log_error(
                error_type="command_execution_failed",
                error_message=str(e),
                details={"command_kind": command.kind},
                correlation_id=correlation_id,
            )
            return ExecutionResult(
                command_kind=command.kind,
                success=False,
                is_error=True,
                message=f"Error: {e}",
            )

    # ---- inserts ----

    def _build_entry(self, item: ExpenseItem) -> LedgerEntry:
        """Apply the acceptance rules and build an unsaved entry."""
        if not item.item_name or item.item_name == UNKNOWN_ITEM or item.price_per_unit is None:
            raise ItemRejected(INVALID_ITEM_REASON)
        if item.price_per_unit <= 0:
            raise ItemRejected(INVALID_ITEM_REASON)
        if item.quantity < 1:
            raise ItemRejected("Quantity must be at least 1.")

        category = item.category or self._settings.default_category

        try:
            return LedgerEntry.create(
                item_name=item.item_name,
                price_per_unit=item.price_per_unit,
                quantity=item.quantity,
                category=category,
            )
        except ValidationError as e:
            raise ItemRejected(str(e)) from e

    async def _store(self, item: ExpenseItem, correlation_id: Optional[UUID]) -> LedgerEntry:
        """
        Validate and insert one item.

        Raises:
            ItemRejected: The item failed acceptance (nothing stored)
            StorageError: The store refused the insert
        """
        try:
            entry = self._build_entry(item)
        except ItemRejected as e:
            await self._audit.log_entry_rejected(
                item_name=item.item_name or UNNAMED_ITEM,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        try:
            stored = await self._storage.insert_entry(entry)
        except StorageError as e:
            await self._audit.log_store_failed("insert_entry", str(e), correlation_id)
            raise

        await self._audit.log_entry_inserted(
            entry_id=stored.id,
            item_name=stored.item_name,
            total_price=str(stored.total_price),
            correlation_id=correlation_id,
        )
        return stored

    async def _insert_one(
        self,
        command: InsertOne,
        correlation_id: Optional[UUID],
    ) -> ExecutionResult:
        try:
            stored = await self._store(command.item, correlation_id)
        except ItemRejected:
            return ExecutionResult(
                command_kind=command.kind,
                success=False,
                is_error=True,
                message=f"Could not insert expense: {INVALID_ITEM_REASON}",
                details="Failed to insert: Invalid data received from LLM.",
                failed=[command.item.item_name or UNNAMED_ITEM],
            )
        except StorageError as e:
            return ExecutionResult(
                command_kind=command.kind,
                success=False,
                is_error=True,
                message=f"Error inserting: {e}",
                details="Error processing insert request.",
                failed=[command.item.item_name or UNNAMED_ITEM],
            )

        currency = self._settings.currency_label
        return ExecutionResult(
            command_kind=command.kind,
            success=True,
            message=f"Expense inserted: {stored.item_name}",
            details=(
                f"Inserted: {stored.item_name} "
                f"({stored.quantity} x {stored.price_per_unit} = {stored.total_price} {currency}, "
                f"Category: {stored.category})"
            ),
            inserted=[stored.summary()],
            entries=[stored],
        )

    async def _insert_many(
        self,
        command: InsertMany,
        correlation_id: Optional[UUID],
    ) -> ExecutionResult:
        if not command.items:
            return ExecutionResult(
                command_kind=command.kind,
                success=False,
                is_error=True,
                message="No items provided for multiple insertion.",
                details="Failed to insert multiple: No item data from LLM.",
            )

        stored_entries: list[LedgerEntry] = []
        failed: list[str] = []

        for item in command.items:
            try:
                stored_entries.append(await self._store(item, correlation_id))
            except (ItemRejected, StorageError) as e:
                logger.info(
                    "batch_item_failed",
                    item_name=item.item_name,
                    reason=str(e),
                )
                failed.append(item.item_name or UNNAMED_ITEM)

        inserted = [entry.summary() for entry in stored_entries]
        report = f"Inserted: {', '.join(inserted)}. "
        if failed:
            report += f"Failed for: {', '.join(failed)}."

        logger.info("batch_inserted", inserted=len(inserted), failed=len(failed))
        return ExecutionResult(
            command_kind=command.kind,
            success=not failed,
            message=self._cap(report),
            details=report,
            inserted=inserted,
            failed=failed,
            entries=stored_entries,
        )

    def _cap(self, message: str) -> str:
        limit = self._settings.max_status_message_length
        if len(message) > limit:
            return message[:limit] + "..."
        return message

    # ---- read intents ----

    async def _acknowledge_read(
        self,
        command: Command,
        correlation_id: Optional[UUID],
    ) -> ExecutionResult:
        filter_value: Optional[str] = None

        if isinstance(command, GetAll):
            message = ""
            details = "Showing all expenses."
        elif isinstance(command, GetByCategory):
            if not command.category:
                return self._missing_filter(command, "Category not specified.")
            filter_value = command.category
            message = f"Filtering by category: {filter_value}"
            details = f"To see items in category '{filter_value}', please check the main list."
        elif isinstance(command, GetAbovePrice):
            if command.min_price is None:
                return self._missing_filter(command, "Minimum price not specified.")
            filter_value = str(command.min_price)
            message = f"Filtering for expenses above {filter_value}"
            details = f"To see items above {filter_value}, please check the main list."
        else:
            if not command.query:
                return self._missing_filter(command, "Search term not specified.")
            filter_value = command.query
            message = f"Searching for: {filter_value}"
            details = f"To see items matching '{filter_value}', please check the main list."

        await self._audit.log_read_intent(command.kind, filter_value, correlation_id)
        return ExecutionResult(
            command_kind=command.kind,
            success=True,
            message=message,
            details=details,
        )

    def _missing_filter(self, command: Command, message: str) -> ExecutionResult:
        return ExecutionResult(
            command_kind=command.kind,
            success=False,
            is_error=True,
            message=message,
        )

    def _unrecognized(self, command: Unrecognized) -> ExecutionResult:
        if command.action:
            return ExecutionResult(
                command_kind=command.kind,
                success=False,
                is_error=True,
                message=f"Unknown action from LLM: {command.action}",
                details=f"Received an unknown command: {command.action}",
            )
        return ExecutionResult(
            command_kind=command.kind,
            success=False,
            is_error=True,
            message=f"Could not understand the request. Raw LLM output: {command.raw_model_text}",
            details=command.raw_model_text,
        )
