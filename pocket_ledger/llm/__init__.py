"""On-device inference package."""

from pocket_ledger.llm.aggregator import StreamingAggregator
from pocket_ledger.llm.engine import InferenceEngine, LlamaCppEngine
from pocket_ledger.llm.model_file import (
    GGUF_MAGIC,
    InvalidModelFileError,
    import_model_file,
    is_gguf_file,
)
from pocket_ledger.llm.session import (
    BusyError,
    GenerationError,
    InferenceSession,
    InitializationError,
    SessionError,
    SessionStateError,
)

__all__ = [
    # Session
    "InferenceSession",
    "BusyError",
    "GenerationError",
    "InitializationError",
    "SessionError",
    "SessionStateError",
    # Engine
    "InferenceEngine",
    "LlamaCppEngine",
    # Streaming
    "StreamingAggregator",
    # Model files
    "GGUF_MAGIC",
    "InvalidModelFileError",
    "import_model_file",
    "is_gguf_file",
]
