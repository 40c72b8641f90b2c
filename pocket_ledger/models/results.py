"""
Result and Status Models

ExecutionResult is what the executor hands back for every command.
AssistantStatus is the single value a UI observes to know what the
assistant is doing right now.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from pocket_ledger.models.ledger import LedgerEntry


class StatusKind(str, Enum):
    """What the assistant is currently showing."""
    IDLE = "idle"
    LOADING = "loading"              # Model initialization in progress
    PROCESSING_LLM = "processing_llm"  # A generation is in flight
    SHOW_MESSAGE = "show_message"
    SHOW_ERROR = "show_error"


class AssistantStatus(BaseModel):
    """The current status value. Errors stay visible until the next request."""

    kind: StatusKind = StatusKind.IDLE
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> 'AssistantStatus':
        return cls(kind=StatusKind.IDLE)

    @classmethod
    def loading(cls) -> 'AssistantStatus':
        return cls(kind=StatusKind.LOADING)

    @classmethod
    def processing(cls) -> 'AssistantStatus':
        return cls(kind=StatusKind.PROCESSING_LLM)

    @classmethod
    def show_message(cls, message: str) -> 'AssistantStatus':
        return cls(kind=StatusKind.SHOW_MESSAGE, message=message)

    @classmethod
    def show_error(cls, message: str) -> 'AssistantStatus':
        return cls(kind=StatusKind.SHOW_ERROR, message=message)

    @property
    def is_error(self) -> bool:
        return self.kind == StatusKind.SHOW_ERROR


class ExecutionResult(BaseModel):
    """
    Outcome of executing one command.

    `message` is the short status line (capped for batches);
    `details` is the longer text for the running display.
    """

    command_kind: str
    success: bool
    is_error: bool = False
    message: str = ""
    details: str = ""

    # Batch bookkeeping
    inserted: list[str] = Field(
        default_factory=list,
        description="Summaries of the items that were stored"
    )
    failed: list[str] = Field(
        default_factory=list,
        description="Names of the items that were rejected"
    )
    entries: list[LedgerEntry] = Field(
        default_factory=list,
        description="Entries as returned by the store"
    )
