"""
Main Orchestrator for Pocket Ledger

This module ties together all the components and defines the
end-to-end flow for one typed command:

    text -> prompt -> model (streamed) -> interpret -> execute -> status

DESIGN DECISION: The orchestrator enforces the boundaries:
- Only one request is in flight; a second one is turned away, not queued
- The model's reply only ever reaches the ledger through the executor
- Every step is audited

It also owns what a UI observes: one current status, one running
partial text, the context usage and the live ledger list.
"""

import asyncio
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from pocket_ledger.agents import compile_prompt, interpret
from pocket_ledger.audit import AuditLogger, create_correlation_id
from pocket_ledger.config import AppSettings, EngineSettings, Settings, get_settings
from pocket_ledger.intents import IntentExecutor
from pocket_ledger.llm import (
    BusyError,
    GenerationError,
    InferenceEngine,
    InferenceSession,
    SessionError,
    SessionStateError,
    StreamingAggregator,
)
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.models.results import AssistantStatus, ExecutionResult
from pocket_ledger.models.session import GenerationResult
from pocket_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)


logger = structlog.get_logger(__name__)

BUSY_MESSAGE = "LLM is currently processing. Please wait."
LOADED_MESSAGE = "LLM initialized successfully!"
CANCELLED_MESSAGE = "LLM inference cancelled."

# Called with the name of what changed: "status", "partial_text",
# "used_context_size" or "entries"
ChangeListener = Callable[[str], None]


class LedgerAssistant:
    """
    The owning controller.

    Flow:
    1. load_model → session initialized (status LOADING → message → IDLE)
    2. handle_user_question → generation streams into `partial_text`
    3. On completion → interpret → execute → status
    4. close → session released, store listener removed

    Errors stay visible in `status` until the next request.
    """

    def __init__(
        self,
        session: InferenceSession,
        storage: LedgerStorageInterface,
        executor: IntentExecutor,
        audit_logger: Optional[AuditLogger] = None,
        engine_settings: Optional[EngineSettings] = None,
        database: Optional[SQLiteDatabase] = None,
    ):
        self._session = session
        self._storage = storage
        self._executor = executor
        self._audit = audit_logger or AuditLogger()
        self._engine_settings = engine_settings or get_settings().engine
        self._database = database

        self._status = AssistantStatus.idle()
        self._partial_text = ""
        self._used_context_size = 0
        self._entries: list[LedgerEntry] = []
        self._aggregator = StreamingAggregator()
        self._listeners: list[ChangeListener] = []
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._background: set[asyncio.Task] = set()
        self._closed = False

        self._unsubscribe_store = storage.subscribe(self._on_entries_changed)

    # ---- observable state ----

    @property
    def status(self) -> AssistantStatus:
        return self._status

    @property
    def partial_text(self) -> str:
        return self._partial_text

    @property
    def used_context_size(self) -> int:
        return self._used_context_size

    @property
    def entries(self) -> list[LedgerEntry]:
        return list(self._entries)

    @property
    def session(self) -> InferenceSession:
        return self._session

    @property
    def is_busy(self) -> bool:
        return self._session.is_busy

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, what: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(what)
            except Exception as e:
                logger.error("assistant_listener_failed", error=str(e), changed=what)

    def _set_status(self, status: AssistantStatus) -> None:
        self._status = status
        self._notify("status")

    def _set_partial_text(self, text: str) -> None:
        self._partial_text = text
        self._notify("partial_text")

    def _on_entries_changed(self, entries: list[LedgerEntry]) -> None:
        self._entries = list(entries)
        self._notify("entries")

    async def refresh_entries(self) -> list[LedgerEntry]:
        """Load the current ledger list from the store."""
        self._on_entries_changed(await self._storage.list_entries())
        return self.entries

    # ---- model lifecycle ----

    async def load_model(self, model_path: str, chat_template: Optional[str] = None) -> bool:
        """
        Load (or switch to) the model at `model_path`.

        Returns True on success. Failures are reported through `status`.
        """
        correlation_id = create_correlation_id()
        self._set_status(AssistantStatus.loading())
        await self._audit.log_model_load_started(model_path, correlation_id)

        try:
            config = self._engine_settings.to_session_config(model_path, chat_template)
            await self._session.initialize(config)
        except (SessionError, ValidationError) as e:
            self._set_status(AssistantStatus.show_error(f"Failed to initialize LLM: {e}"))
            await self._audit.log_model_load_failed(model_path, str(e), correlation_id)
            return False

        await self._audit.log_model_loaded(model_path, correlation_id)
        self._set_status(AssistantStatus.show_message(LOADED_MESSAGE))
        self._set_status(AssistantStatus.idle())
        return True

    # ---- requests ----

    def handle_user_question(self, text: str) -> Optional["asyncio.Future[AssistantStatus]"]:
        """
        Start processing one typed command. Must be called on the event loop.

        Returns:
            None if a request is already in flight (status says so).
            Otherwise a future resolving to the status the request ended
            on: the confirmation, the error, or the cancellation notice.
        """
        loop = asyncio.get_running_loop()
        correlation_id = create_correlation_id()

        if self._session.is_busy:
            self._reject_busy(loop, correlation_id)
            return None

        outcome: asyncio.Future[AssistantStatus] = loop.create_future()

        self._aggregator.reset()
        self._set_partial_text("")
        self._set_status(AssistantStatus.processing())

        prompt = compile_prompt(text)

        def on_fragment(fragment: str) -> None:
            self._set_partial_text(self._aggregator.feed(fragment))

        async def on_complete(result: GenerationResult) -> None:
            self._clear_timeout()
            try:
                status = await self._finish_request(text, result, correlation_id)
            except Exception as e:
                logger.error("request_processing_failed", error=str(e))
                status = AssistantStatus.show_error(f"Error: {e}")
                self._set_status(status)
            self._resolve(outcome, status)

        async def on_cancelled() -> None:
            self._clear_timeout()
            self._set_partial_text(CANCELLED_MESSAGE)
            self._set_status(AssistantStatus.idle())
            await self._audit.log_generation_cancelled(correlation_id)
            self._resolve(outcome, AssistantStatus.show_message(CANCELLED_MESSAGE))

        async def on_error(error: GenerationError) -> None:
            self._clear_timeout()
            status = AssistantStatus.show_error(f"LLM Error: {error}")
            self._set_partial_text(status.message)
            self._set_status(status)
            await self._audit.log_generation_failed(str(error), correlation_id)
            self._resolve(outcome, status)

        try:
            self._session.generate(prompt, on_fragment, on_complete, on_cancelled, on_error)
        except BusyError:
            self._reject_busy(loop, correlation_id)
            return None
        except SessionStateError as e:
            status = AssistantStatus.show_error(f"LLM Error: {e}")
            self._set_status(status)
            self._resolve(outcome, status)
            return outcome

        self._spawn(loop, self._audit.log_generation_started(len(prompt), correlation_id))

        timeout = self._engine_settings.generation_timeout_seconds
        if timeout:
            self._timeout_handle = loop.call_later(timeout, self._on_timeout)

        return outcome

    async def _finish_request(
        self,
        text: str,
        result: GenerationResult,
        correlation_id,
    ) -> AssistantStatus:
        """Interpret the finished reply, execute it, and publish the outcome."""
        self._used_context_size = result.context_tokens_used
        self._notify("used_context_size")
        self._set_partial_text(result.final_text)

        await self._audit.log_generation_completed(
            tokens_per_second=result.tokens_per_second,
            elapsed_seconds=result.elapsed_seconds,
            context_tokens_used=result.context_tokens_used,
            correlation_id=correlation_id,
        )

        command = interpret(result.final_text, text)
        await self._audit.log_response_interpreted(command.kind, correlation_id)

        execution = await self._executor.execute(command, correlation_id)
        return self._publish(execution)

    def _publish(self, execution: ExecutionResult) -> AssistantStatus:
        if execution.details:
            self._set_partial_text(execution.details)

        if execution.is_error:
            status = AssistantStatus.show_error(execution.message)
            self._set_status(status)
            return status

        status = AssistantStatus.idle()
        if execution.message:
            status = AssistantStatus.show_message(execution.message)
            self._set_status(status)
        self._set_status(AssistantStatus.idle())
        return status

    def _reject_busy(self, loop: asyncio.AbstractEventLoop, correlation_id) -> None:
        self._set_status(AssistantStatus.show_message(BUSY_MESSAGE))
        self._spawn(loop, self._audit.log_generation_rejected_busy(correlation_id))

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro) -> None:
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _resolve(outcome: "asyncio.Future[AssistantStatus]", status: AssistantStatus) -> None:
        if not outcome.done():
            outcome.set_result(status)

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        logger.warning(
            "generation_timed_out",
            timeout_seconds=self._engine_settings.generation_timeout_seconds,
        )
        self._session.cancel()

    def _clear_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def stop_generation(self) -> None:
        """Cancel the request in flight, if any."""
        self._session.cancel()

    # ---- teardown ----

    async def close(self) -> None:
        """Release the model and stop observing the store. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._clear_timeout()
        self._unsubscribe_store()
        await self._session.close()
        await self._audit.log_session_closed()
        if self._database is not None:
            self._database.close()

    async def __aenter__(self) -> "LedgerAssistant":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_app_components(
    settings: Optional[Settings] = None,
    use_memory: bool = False,
    engine_factory: Optional[Callable[[], InferenceEngine]] = None,
) -> LedgerAssistant:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; loaded from the environment if None
        use_memory: Keep the ledger and audit log in memory only.
                    Useful for testing and throwaway runs.
        engine_factory: Engine constructor; the llama.cpp engine if None

    Returns:
        A LedgerAssistant owning its session, store and executor
    """
    settings = settings or get_settings()
    storage_settings = settings.storage
    app_settings: AppSettings = settings.app

    database = None
    if use_memory:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        database = SQLiteDatabase(storage_settings.database_path)
        ledger_storage = SQLiteLedgerStorage(database)
        audit_logger = AuditLogger(
            SQLiteAuditStorage(database) if storage_settings.persist_audit_log else None
        )

    session = InferenceSession(engine_factory) if engine_factory else InferenceSession()
    executor = IntentExecutor(ledger_storage, audit_logger, app_settings)

    return LedgerAssistant(
        session=session,
        storage=ledger_storage,
        executor=executor,
        audit_logger=audit_logger,
        engine_settings=settings.engine,
        database=database,
    )
