"""
Tests for the CLI interface.
"""
import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import FakeEngineFactory
from pocket_ledger.cli import EXIT_CODE_FAIL, EXIT_CODE_OK, app
from pocket_ledger.config import get_settings
from pocket_ledger.llm import GGUF_MAGIC
from pocket_ledger.models.ledger import LedgerEntry
from pocket_ledger.orchestrator import create_app_components
from pocket_ledger.services.preferences import PreferencesStore
from pocket_ledger.services.storage import SQLiteDatabase, SQLiteLedgerStorage

runner = CliRunner()


@pytest.fixture(autouse=True)
def workspace(monkeypatch, tmp_path):
    """Point every storage location into a temporary directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LEDGER_STORAGE_DATABASE_PATH", str(tmp_path / "ledger.db"))
    monkeypatch.setenv("LEDGER_STORAGE_MODELS_DIR", str(tmp_path / "models"))
    monkeypatch.setenv("LEDGER_STORAGE_PREFERENCES_PATH", str(tmp_path / "prefs.json"))
    monkeypatch.delenv("LEDGER_LLM_MODEL_PATH", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def fake_components():
    """Build in-memory components around a scripted engine."""
    def build(**kwargs):
        return create_app_components(use_memory=True, engine_factory=FakeEngineFactory())

    with patch("pocket_ledger.cli.create_app_components", side_effect=build) as mock:
        yield mock


class TestCLI:
    """Test CLI commands."""

    def test_ask_inserts_expense(self, fake_components):
        """Test a single command is run and confirmed."""
        result = runner.invoke(app, ["ask", "add 4kg mango of 20", "--model", "m.gguf"])

        assert result.exit_code == EXIT_CODE_OK
        assert "Expense inserted: mango" in result.output

    def test_ask_without_model(self, fake_components):
        """Test asking with no model selected fails with a hint."""
        result = runner.invoke(app, ["ask", "add 1 tea of 10"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "No model selected" in result.output
        fake_components.assert_not_called()

    def test_ask_uses_saved_model(self, fake_components, workspace):
        """Test the last imported model is used when --model is absent."""
        PreferencesStore(str(workspace / "prefs.json")).save_model_path("saved.gguf")

        result = runner.invoke(app, ["ask", "add 4kg mango of 20"])
        assert result.exit_code == EXIT_CODE_OK
        assert "saved.gguf" in result.output

    def test_import_model(self, workspace):
        """Test a GGUF file is copied and remembered."""
        source = workspace / "download.gguf"
        source.write_bytes(GGUF_MAGIC + b"\x00" * 16)

        result = runner.invoke(app, ["import-model", str(source)])

        assert result.exit_code == EXIT_CODE_OK
        assert (workspace / "models" / "download.gguf").exists()
        saved = PreferencesStore(str(workspace / "prefs.json")).saved_model_path
        assert saved == str(workspace / "models" / "download.gguf")

    def test_import_invalid_model(self, workspace):
        """Test a non-GGUF file is refused."""
        source = workspace / "photo.jpg"
        source.write_bytes(b"\xff\xd8\xff\xe0")

        result = runner.invoke(app, ["import-model", str(source)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid file" in result.output

    def test_entries_lists_ledger(self, workspace):
        """Test stored entries are shown, filtered by category."""
        database = SQLiteDatabase(str(workspace / "ledger.db"))
        storage = SQLiteLedgerStorage(database)

        async def seed():
            await storage.insert_entry(LedgerEntry.create("mango", Decimal("20"), 4, "Fruit"))
            await storage.insert_entry(LedgerEntry.create("soap", Decimal("35"), 1, "Home"))

        asyncio.run(seed())
        database.close()

        result = runner.invoke(app, ["entries", "--category", "Fruit"])

        assert result.exit_code == EXIT_CODE_OK
        assert "mango" in result.output
        assert "soap" not in result.output

    def test_entries_empty(self):
        """Test an empty ledger says so."""
        result = runner.invoke(app, ["entries"])
        assert result.exit_code == EXIT_CODE_OK
        assert "No entries found" in result.output

    def test_entries_rejects_bad_number(self):
        """Test --min-total must be a number."""
        result = runner.invoke(app, ["entries", "--min-total", "lots"])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_check_config(self):
        """Test every section loads with the defaults."""
        result = runner.invoke(app, ["check-config"])
        assert result.exit_code == EXIT_CODE_OK
        assert "engine" in result.output
