"""
Shared fixtures.

No test loads a real model: FakeEngine stands in for the llama.cpp
engine and replays scripted fragments.
"""

import threading
from typing import Optional

import pytest

from pocket_ledger.audit import AuditLogger
from pocket_ledger.config import AppSettings
from pocket_ledger.intents import IntentExecutor
from pocket_ledger.models.session import SessionConfig
from pocket_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


MANGO_REPLY = [
    '{"action": "insert_expense", ',
    '"data": {"itemName": "mango", "category": null, ',
    '"quantity": 4, "pricePerUnit": 20}}',
]


class FakeEngine:
    """Scripted engine. Optionally blocks on `gate` before each fragment."""

    def __init__(
        self,
        fragments: list[str],
        fail_load: Optional[str] = None,
        fail_at: Optional[int] = None,
        gate: Optional[threading.Event] = None,
        load_gate: Optional[threading.Event] = None,
    ):
        self.fragments = fragments
        self.fail_load = fail_load
        self.fail_at = fail_at
        self.gate = gate
        self.load_gate = load_gate
        self.config: Optional[SessionConfig] = None
        self.prompts: list[str] = []
        self.close_count = 0

    def load(self, config: SessionConfig) -> None:
        if self.load_gate is not None:
            self.load_gate.wait(timeout=5)
        if self.fail_load:
            raise RuntimeError(self.fail_load)
        self.config = config

    def generate(self, prompt: str):
        self.prompts.append(prompt)
        for index, fragment in enumerate(self.fragments):
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.fail_at is not None and index == self.fail_at:
                raise RuntimeError("engine exploded")
            yield fragment

    def generation_speed(self) -> float:
        return 12.5

    def context_length_used(self) -> int:
        return 42

    def close(self) -> None:
        self.close_count += 1


class FakeEngineFactory:
    """Engine factory that remembers every engine it built."""

    def __init__(self, fragments: Optional[list[str]] = None, **options):
        self.fragments = fragments if fragments is not None else list(MANGO_REPLY)
        self.options = options
        self.engines: list[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        engine = FakeEngine(list(self.fragments), **self.options)
        self.engines.append(engine)
        return engine

    @property
    def last(self) -> FakeEngine:
        return self.engines[-1]


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(model_path="models/fake.gguf", thread_count=2)


@pytest.fixture
def ledger_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        max_status_message_length=100,
        default_category="General",
        currency_label="Taka",
    )


@pytest.fixture
def executor(ledger_storage, audit_storage, app_settings) -> IntentExecutor:
    return IntentExecutor(ledger_storage, AuditLogger(audit_storage), app_settings)
