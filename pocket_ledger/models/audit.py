"""
Audit Models for Pocket Ledger

Every significant step of the command pipeline is recorded:
model loading, each generation and how it ended, how the reply was
interpreted, and every ledger mutation or rejection.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every stage of the pipeline has its own event types.
    """
    # Model lifecycle
    MODEL_LOAD_STARTED = "model_load_started"
    MODEL_LOADED = "model_loaded"
    MODEL_LOAD_FAILED = "model_load_failed"
    SESSION_CLOSED = "session_closed"

    # Generation
    GENERATION_STARTED = "generation_started"
    GENERATION_COMPLETED = "generation_completed"
    GENERATION_CANCELLED = "generation_cancelled"
    GENERATION_FAILED = "generation_failed"
    GENERATION_REJECTED_BUSY = "generation_rejected_busy"

    # Interpretation
    RESPONSE_INTERPRETED = "response_interpreted"
    INTERPRETATION_FALLBACK = "interpretation_fallback"

    # Persistence
    ENTRY_INSERTED = "entry_inserted"
    ENTRY_REJECTED = "entry_rejected"
    STORE_FAILED = "store_failed"

    # Read intents
    READ_INTENT_ACKNOWLEDGED = "read_intent_acknowledged"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'entry', 'generation', 'model')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one user request share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one request"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> tuple:
        """
        Convert to a row for the audit table.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type,
            self.entity_id,
            str(self.correlation_id) if self.correlation_id else None,
            self.description,
            json.dumps(self.details, default=str) if self.details else None,
            self.error_message,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.model_loaded(model_path, correlation_id)
        event = AuditEventBuilder.entry_inserted(entry, correlation_id)
    """

    @staticmethod
    def model_load_started(model_path: str, correlation_id: Optional[UUID]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_LOAD_STARTED,
            entity_type="model",
            entity_id=model_path,
            correlation_id=correlation_id,
            description=f"Loading model: {model_path}",
        )

    @staticmethod
    def model_loaded(model_path: str, correlation_id: Optional[UUID]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_LOADED,
            entity_type="model",
            entity_id=model_path,
            correlation_id=correlation_id,
            description=f"Model loaded: {model_path}",
        )

    @staticmethod
    def model_load_failed(
        model_path: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="model",
            entity_id=model_path,
            correlation_id=correlation_id,
            description="Model could not be loaded",
            error_message=error_message,
        )

    @staticmethod
    def generation_started(prompt_length: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_STARTED,
            entity_type="generation",
            correlation_id=correlation_id,
            description="Generation started",
            details={"prompt_length": prompt_length},
        )

    @staticmethod
    def generation_completed(
        tokens_per_second: float,
        elapsed_seconds: float,
        context_tokens_used: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_COMPLETED,
            entity_type="generation",
            correlation_id=correlation_id,
            description=f"Generation completed in {elapsed_seconds:.1f}s",
            details={
                "tokens_per_second": tokens_per_second,
                "elapsed_seconds": elapsed_seconds,
                "context_tokens_used": context_tokens_used,
            },
        )

    @staticmethod
    def generation_cancelled(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_CANCELLED,
            entity_type="generation",
            correlation_id=correlation_id,
            description="Generation cancelled",
        )

    @staticmethod
    def generation_failed(error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="generation",
            correlation_id=correlation_id,
            description="Generation failed mid-stream",
            error_message=error_message,
        )

    @staticmethod
    def generation_rejected_busy(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_REJECTED_BUSY,
            severity=AuditSeverity.WARNING,
            entity_type="generation",
            correlation_id=correlation_id,
            description="Request rejected: a generation is already in flight",
        )

    @staticmethod
    def response_interpreted(command_kind: str, correlation_id: UUID) -> AuditEvent:
        event_type = (
            AuditEventType.INTERPRETATION_FALLBACK
            if command_kind == "other_question"
            else AuditEventType.RESPONSE_INTERPRETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Model reply interpreted as {command_kind}",
            details={"command_kind": command_kind},
        )

    @staticmethod
    def entry_inserted(
        entry_id: Optional[int],
        item_name: str,
        total_price: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_INSERTED,
            entity_type="entry",
            entity_id=str(entry_id) if entry_id is not None else None,
            correlation_id=correlation_id,
            description=f"Entry saved: {item_name} - {total_price}",
            details={
                "item_name": item_name,
                "total_price": total_price,
            },
        )

    @staticmethod
    def entry_rejected(
        item_name: str,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="entry",
            correlation_id=correlation_id,
            description=f"Entry rejected: {item_name}",
            details={
                "item_name": item_name,
                "reason": reason,
            },
        )

    @staticmethod
    def store_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="entry",
            correlation_id=correlation_id,
            description=f"Store operation failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def read_intent_acknowledged(
        command_kind: str,
        filter_value: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.READ_INTENT_ACKNOWLEDGED,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Read intent acknowledged: {command_kind}",
            details={
                "command_kind": command_kind,
                "filter": filter_value,
            },
        )

    @staticmethod
    def session_closed() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CLOSED,
            entity_type="session",
            description="Inference session closed",
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
