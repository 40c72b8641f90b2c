"""
Inference Session Manager

Owns the one engine handle and coordinates it across the async boundary.

DESIGN DECISION: The engine is not reentrant and every call blocks, so:
1. All engine calls (load, each fragment step, metrics, close) run on ONE
   dedicated worker thread, serialized
2. Callbacks are delivered on the event loop that initialized the session
3. The lifecycle is an explicit state machine; every change goes through
   `_transition()`, which rejects illegal moves

A second `generate()` while one is streaming fails fast with BusyError.
Cancellation is cooperative: the flag is checked between fragment steps,
so a step in progress always finishes first.
"""

import asyncio
import inspect
import threading
import time
from concurrent.futures import Future as ThreadFuture
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from pocket_ledger.llm.engine import InferenceEngine, LlamaCppEngine
from pocket_ledger.models.session import GenerationResult, SessionConfig, SessionState


logger = structlog.get_logger(__name__)

FragmentCallback = Callable[[str], Union[None, Awaitable[None]]]
CompleteCallback = Callable[[GenerationResult], Union[None, Awaitable[None]]]
CancelledCallback = Callable[[], Union[None, Awaitable[None]]]
ErrorCallback = Callable[["GenerationError"], Union[None, Awaitable[None]]]

S = SessionState

LEGAL_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    S.UNINITIALIZED: frozenset({S.INITIALIZING, S.UNINITIALIZED}),
    S.INITIALIZING: frozenset({S.READY, S.FAILED, S.UNINITIALIZED}),
    S.READY: frozenset({S.INITIALIZING, S.STREAMING, S.UNINITIALIZED}),
    S.STREAMING: frozenset({S.READY, S.CANCELLED, S.FAILED}),
    S.CANCELLED: frozenset({S.READY}),
    S.FAILED: frozenset({S.READY, S.INITIALIZING, S.UNINITIALIZED}),
}

_END = object()


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class InferenceSession:
    """
    Lifecycle manager for a single on-device model.

    Usage:
        async with InferenceSession() as session:
            await session.initialize(config)
            session.generate(prompt, on_fragment, on_complete)
    """

    def __init__(self, engine_factory: Callable[[], InferenceEngine] = LlamaCppEngine):
        self._engine_factory = engine_factory
        self._engine: Optional[InferenceEngine] = None
        self._state = SessionState.UNINITIALIZED
        self._state_lock = threading.RLock()
        self._cancel_requested = threading.Event()

        self._worker: Optional[ThreadPoolExecutor] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._init_task: Optional[asyncio.Future] = None
        self._generation: Optional[Union[asyncio.Task, ThreadFuture]] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state == SessionState.STREAMING

    def _transition(self, target: SessionState) -> None:
        with self._state_lock:
            current = self._state
            if target not in LEGAL_TRANSITIONS[current]:
                raise SessionStateError(
                    f"Illegal session transition {current.value} -> {target.value}"
                )
            self._state = target
        logger.debug("session_state_changed", previous=current.value, state=target.value)

    def _ensure_worker(self) -> ThreadPoolExecutor:
        if self._worker is None:
            self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        return self._worker

    # ---- worker-thread functions ----

    def _load_engine(self, config: SessionConfig) -> None:
        self._release_engine()
        engine = self._engine_factory()
        engine.load(config)
        self._engine = engine

    def _release_engine(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            engine.close()

    def _start_stream(self, prompt: str):
        return iter(self._engine.generate(prompt))

    def _read_metrics(self) -> tuple[float, int]:
        return self._engine.generation_speed(), self._engine.context_length_used()

    @staticmethod
    def _close_stream(iterator: Any) -> None:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    # ---- lifecycle ----

    async def initialize(self, config: SessionConfig) -> None:
        """
        Load the model described by `config`.

        Any previously loaded model is released first, so this doubles as
        "switch model".

        Raises:
            InitializationError: If the load fails or `close()` cancels it
            SessionStateError: If a load or a generation is in progress
        """
        self._loop = asyncio.get_running_loop()
        self._transition(SessionState.INITIALIZING)
        logger.info("session_initializing", model_path=config.model_path)

        worker = self._ensure_worker()
        init_task = asyncio.ensure_future(
            self._loop.run_in_executor(worker, self._load_engine, config)
        )
        self._init_task = init_task

        try:
            await asyncio.wait({init_task})
        except asyncio.CancelledError:
            init_task.cancel()
            if self._state == SessionState.INITIALIZING:
                self._transition(SessionState.FAILED)
            raise
        finally:
            self._init_task = None

        if init_task.cancelled() or self._state != SessionState.INITIALIZING:
            logger.warning("session_initialization_cancelled", model_path=config.model_path)
            raise InitializationError("Model loading was cancelled")

        error = init_task.exception()
        if error is not None:
            self._transition(SessionState.FAILED)
            logger.error(
                "session_initialization_failed",
                model_path=config.model_path,
                error=str(error),
            )
            raise InitializationError(str(error) or type(error).__name__) from error

        self._transition(SessionState.READY)
        logger.info("session_ready", model_path=config.model_path)

    def generate(
        self,
        prompt: str,
        on_fragment: FragmentCallback,
        on_complete: CompleteCallback,
        on_cancelled: Optional[CancelledCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Start streaming a reply to `prompt`. Returns immediately.

        Safe to call from any thread; the work is scheduled on the loop
        that initialized the session. Exactly one of `on_complete`,
        `on_cancelled` or `on_error` fires, once.

        Raises:
            BusyError: A generation is already streaming (nothing is started)
            SessionStateError: No model is ready
        """
        with self._state_lock:
            if self._state == SessionState.STREAMING:
                raise BusyError("A generation is already in progress")
            if self._state != SessionState.READY:
                raise SessionStateError(
                    f"Cannot generate while the session is {self._state.value}"
                )
            self._cancel_requested.clear()
            self._transition(SessionState.STREAMING)

        run = self._run_generation(prompt, on_fragment, on_complete, on_cancelled, on_error)

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is self._loop:
            self._generation = self._loop.create_task(run)
        else:
            self._generation = asyncio.run_coroutine_threadsafe(run, self._loop)

    async def _run_generation(
        self,
        prompt: str,
        on_fragment: FragmentCallback,
        on_complete: CompleteCallback,
        on_cancelled: Optional[CancelledCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        loop = asyncio.get_running_loop()
        worker = self._worker
        fragments: list[str] = []
        iterator = None
        cancelled = False
        started = time.monotonic()
        logger.info("generation_started", prompt_length=len(prompt))

        try:
            iterator = await loop.run_in_executor(worker, self._start_stream, prompt)
            while True:
                if self._cancel_requested.is_set():
                    cancelled = True
                    break
                fragment = await loop.run_in_executor(worker, next, iterator, _END)
                if fragment is _END:
                    break
                fragments.append(fragment)
                await _invoke(on_fragment, fragment)

            if cancelled:
                await self._abandon_stream(worker, iterator)
                self._transition(SessionState.CANCELLED)
                self._transition(SessionState.READY)
                logger.info("generation_cancelled", fragments=len(fragments))
                await _invoke(on_cancelled)
                return

            elapsed = time.monotonic() - started
            speed, context_used = await loop.run_in_executor(worker, self._read_metrics)
            result = GenerationResult(
                final_text="".join(fragments),
                tokens_per_second=max(0.0, float(speed)),
                elapsed_seconds=elapsed,
                context_tokens_used=max(0, int(context_used)),
            )
        except asyncio.CancelledError:
            # The loop is tearing the task down; leave the session usable
            if self._state == SessionState.STREAMING:
                self._transition(SessionState.CANCELLED)
                self._transition(SessionState.READY)
            raise
        except Exception as e:
            if iterator is not None:
                await self._abandon_stream(worker, iterator)
            self._transition(SessionState.FAILED)
            self._transition(SessionState.READY)
            logger.error("generation_failed", error=str(e), error_type=type(e).__name__)
            error = GenerationError(str(e) or type(e).__name__)
            error.__cause__ = e
            await self._deliver_terminal(on_error, error)
            return

        self._transition(SessionState.READY)
        logger.info(
            "generation_completed",
            elapsed_seconds=round(result.elapsed_seconds, 3),
            tokens_per_second=round(result.tokens_per_second, 2),
            context_tokens_used=result.context_tokens_used,
        )
        await self._deliver_terminal(on_complete, result)

    async def _abandon_stream(self, worker: ThreadPoolExecutor, iterator: Any) -> None:
        try:
            await asyncio.get_running_loop().run_in_executor(worker, self._close_stream, iterator)
        except Exception as e:
            logger.warning("generation_stream_close_failed", error=str(e))

    async def _deliver_terminal(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        try:
            await _invoke(callback, *args)
        except Exception as e:
            logger.error("generation_callback_failed", error=str(e))

    def cancel(self) -> None:
        """Request the streaming generation to stop. No-op when idle."""
        if self._state == SessionState.STREAMING:
            self._cancel_requested.set()
            logger.info("generation_cancel_requested")

    async def close(self) -> None:
        """
        Cancel any load or generation in flight, release the model and
        return to UNINITIALIZED. Safe to call any number of times.
        """
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()

        generation = self._generation
        if generation is not None and not generation.done():
            self.cancel()
            await asyncio.wait({asyncio.wrap_future(generation)})
        self._generation = None

        if self._worker is not None:
            worker, self._worker = self._worker, None
            await asyncio.get_running_loop().run_in_executor(worker, self._release_engine)
            worker.shutdown(wait=False)

        if self._state != SessionState.UNINITIALIZED:
            self._transition(SessionState.UNINITIALIZED)
            logger.info("session_closed")

    async def __aenter__(self) -> "InferenceSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SessionError(Exception):
    """Base exception for inference session operations."""
    pass


class InitializationError(SessionError):
    """The model could not be loaded."""
    pass


class SessionStateError(SessionError):
    """The operation is not allowed in the current session state."""
    pass


class BusyError(SessionStateError):
    """A generation is already streaming."""
    pass


class GenerationError(SessionError):
    """The engine failed while producing a reply."""
    pass
