"""
Inference Engine

DESIGN DECISION: The session talks to the model through a small Protocol:
load, stream a reply, read metrics, close. The production implementation
wraps llama-cpp-python; tests plug in a scripted engine.

Every method here is BLOCKING and NOT reentrant. The session guarantees
they are only ever called from its single worker thread.
"""

import time
from typing import Any, Iterator, Optional, Protocol

import structlog

from pocket_ledger.models.session import SessionConfig


logger = structlog.get_logger(__name__)

CHAT_TEMPLATE_METADATA_KEY = "tokenizer.chat_template"


class InferenceEngine(Protocol):
    """What the session needs from a model runtime."""

    def load(self, config: SessionConfig) -> None:
        """Load the model; raise on failure."""
        ...

    def generate(self, prompt: str) -> Iterator[str]:
        """Lazily produce the reply, one text fragment per step."""
        ...

    def generation_speed(self) -> float:
        """Tokens per second of the last completed generation."""
        ...

    def context_length_used(self) -> int:
        """Tokens currently occupying the context window."""
        ...

    def close(self) -> None:
        """Release the model. Safe to call more than once."""
        ...


class LlamaCppEngine:
    """
    llama.cpp engine via llama-cpp-python.

    Sampling uses the configured temperature and min-p. When a chat
    template is available (configured, or stored in the GGUF metadata)
    the prompt is sent as a chat message; otherwise as a raw completion.
    """

    def __init__(self):
        self._llm: Any = None
        self._config: Optional[SessionConfig] = None
        self._use_chat = False
        self._history: list[dict[str, str]] = []
        self._last_speed = 0.0

    def load(self, config: SessionConfig) -> None:
        from llama_cpp import Llama

        self.close()
        self._llm = Llama(
            model_path=config.model_path,
            n_ctx=config.context_size,
            n_threads=config.thread_count,
            use_mmap=config.use_memory_map,
            use_mlock=config.use_memory_lock,
            verbose=False,
        )
        self._config = config
        self._history = []
        self._use_chat = self._install_chat_template(config.chat_template)
        logger.info(
            "engine_loaded",
            model_path=config.model_path,
            context_size=config.context_size,
            threads=config.thread_count,
            chat_mode=self._use_chat,
        )

    def _install_chat_template(self, configured: str) -> bool:
        from llama_cpp.llama_chat_format import Jinja2ChatFormatter

        template = configured or self._llm.metadata.get(CHAT_TEMPLATE_METADATA_KEY, "")
        if not template:
            return False

        formatter = Jinja2ChatFormatter(
            template=template,
            eos_token=self._token_text(self._llm.token_eos()),
            bos_token=self._token_text(self._llm.token_bos()),
            add_generation_prompt=True,
        )
        self._llm.chat_handler = formatter.to_chat_handler()
        return True

    def _token_text(self, token: int) -> str:
        return self._llm.detokenize([token], special=True).decode("utf-8", errors="ignore")

    def generate(self, prompt: str) -> Iterator[str]:
        if self._llm is None or self._config is None:
            raise RuntimeError("No model loaded")

        sampling = {
            "temperature": self._config.temperature,
            "min_p": self._config.min_p,
            "max_tokens": None,
            "stream": True,
        }
        started = time.monotonic()
        produced = 0
        reply: list[str] = []

        if self._use_chat:
            messages = self._history + [{"role": "user", "content": prompt}]
            for chunk in self._llm.create_chat_completion(messages=messages, **sampling):
                text = chunk["choices"][0]["delta"].get("content")
                if text:
                    produced += 1
                    reply.append(text)
                    yield text
        else:
            for chunk in self._llm.create_completion(prompt=prompt, **sampling):
                text = chunk["choices"][0]["text"]
                if text:
                    produced += 1
                    reply.append(text)
                    yield text

        elapsed = time.monotonic() - started
        # one streamed chunk per sampled token
        self._last_speed = produced / elapsed if elapsed > 0 else 0.0

        if self._config.store_history and self._use_chat:
            self._history.append({"role": "user", "content": prompt})
            self._history.append({"role": "assistant", "content": "".join(reply)})

    def generation_speed(self) -> float:
        return self._last_speed

    def context_length_used(self) -> int:
        return int(self._llm.n_tokens) if self._llm is not None else 0

    def close(self) -> None:
        if self._llm is None:
            return
        self._llm.close()
        self._llm = None
        self._config = None
        self._history = []
        logger.info("engine_closed")
