"""
Data Models Package

This package contains all Pydantic models used in Pocket Ledger.
All data flowing through the pipeline must conform to these schemas.
"""

from pocket_ledger.models.ledger import DEFAULT_CATEGORY, LedgerEntry
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
from pocket_ledger.models.session import (
    GenerationResult,
    SessionConfig,
    SessionState,
)
from pocket_ledger.models.results import (
    AssistantStatus,
    ExecutionResult,
    StatusKind,
)
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORY",
    "LedgerEntry",
    # Commands
    "Command",
    "ExpenseItem",
    "GetAbovePrice",
    "GetAll",
    "GetByCategory",
    "InsertMany",
    "InsertOne",
    "OtherQuestion",
    "SearchByName",
    "Unrecognized",
    # Session models
    "GenerationResult",
    "SessionConfig",
    "SessionState",
    # Results
    "AssistantStatus",
    "ExecutionResult",
    "StatusKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
