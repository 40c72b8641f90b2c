"""
Inference Session Models

Value objects exchanged with the inference session. All of them are
frozen: the config is passed once at creation and a result is produced
once per generation.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """
    Lifecycle of the single engine handle.

    UNINITIALIZED -> INITIALIZING -> READY -> STREAMING -> READY
    with CANCELLED and FAILED as the non-happy exits from STREAMING
    (both fall straight back to READY), and FAILED as the exit from a
    load that did not succeed.
    """
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SessionConfig(BaseModel):
    """Engine parameters, passed once when the session is created."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_path: str = Field(
        ...,
        min_length=1,
        description="Path to the GGUF model file"
    )
    min_p: float = Field(default=0.05, ge=0.0, le=1.0)
    temperature: float = Field(default=1.5, ge=0.0)
    context_size: int = Field(default=2048, ge=1)
    chat_template: str = Field(
        default="",
        description="Jinja chat template; empty means use the model's own"
    )
    thread_count: int = Field(default=1, ge=1)
    use_memory_map: bool = True
    use_memory_lock: bool = False
    store_history: bool = Field(
        default=False,
        description="Keep earlier turns in the context"
    )


class GenerationResult(BaseModel):
    """Outcome of one completed generation."""
    model_config = ConfigDict(frozen=True)

    final_text: str
    tokens_per_second: float = Field(ge=0.0)
    elapsed_seconds: float = Field(ge=0.0)
    context_tokens_used: int = Field(ge=0)
