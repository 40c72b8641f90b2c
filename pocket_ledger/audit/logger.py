"""
Audit Logger

DESIGN DECISION: Every significant step of the command pipeline is logged.
This provides:
1. A trace from user text to ledger mutation
2. Debugging capability when the model misbehaves
3. A history the user can inspect

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a broken audit table never breaks a request)
- Supports correlation IDs to trace the events of one request
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocket_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pocket_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit table (for persistence), when storage is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocket_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_model_load_started(
        self,
        model_path: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.model_load_started(model_path, correlation_id))

    async def log_model_loaded(
        self,
        model_path: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.model_loaded(model_path, correlation_id))

    async def log_model_load_failed(
        self,
        model_path: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a model that could not be loaded."""
        await self.log(
            AuditEventBuilder.model_load_failed(model_path, error_message, correlation_id)
        )

    async def log_generation_started(
        self,
        prompt_length: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.generation_started(prompt_length, correlation_id))

    async def log_generation_completed(
        self,
        tokens_per_second: float,
        elapsed_seconds: float,
        context_tokens_used: int,
        correlation_id: UUID,
    ) -> None:
        """Log a generation that ran to completion, with its metrics."""
        event = AuditEventBuilder.generation_completed(
            tokens_per_second=tokens_per_second,
            elapsed_seconds=elapsed_seconds,
            context_tokens_used=context_tokens_used,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_generation_cancelled(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.generation_cancelled(correlation_id))

    async def log_generation_failed(
        self,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.generation_failed(error_message, correlation_id))

    async def log_generation_rejected_busy(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.generation_rejected_busy(correlation_id))

    async def log_response_interpreted(
        self,
        command_kind: str,
        correlation_id: UUID,
    ) -> None:
        """Log what a model reply was decoded into."""
        await self.log(AuditEventBuilder.response_interpreted(command_kind, correlation_id))

    async def log_entry_inserted(
        self,
        entry_id: Optional[int],
        item_name: str,
        total_price: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entry_inserted(
            entry_id=entry_id,
            item_name=item_name,
            total_price=total_price,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_rejected(
        self,
        item_name: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an item the executor refused to store."""
        event = AuditEventBuilder.entry_rejected(
            item_name=item_name,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_store_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.store_failed(operation, error_message, correlation_id)
        )

    async def log_read_intent(
        self,
        command_kind: str,
        filter_value: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.read_intent_acknowledged(command_kind, filter_value, correlation_id)
        )

    async def log_session_closed(self) -> None:
        await self.log(AuditEventBuilder.session_closed())

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user request (e.g. one typed command).
    Pass it through all subsequent operations.
    """
    return uuid4()
