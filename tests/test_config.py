"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from pocket_ledger.config import (
    AppSettings,
    EngineSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    # Keep a developer's .env out of the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestEngineSettings:
    """Tests for engine configuration."""

    def test_defaults(self):
        """Test the sampling defaults."""
        settings = EngineSettings()
        assert settings.min_p == 0.05
        assert settings.temperature == 1.5
        assert settings.context_size == 2048
        assert settings.thread_count >= 1
        assert settings.generation_timeout_seconds is None

    def test_environment_overrides(self, monkeypatch):
        """Test LEDGER_LLM_ variables are read."""
        monkeypatch.setenv("LEDGER_LLM_TEMPERATURE", "0.2")
        monkeypatch.setenv("LEDGER_LLM_THREAD_COUNT", "4")
        monkeypatch.setenv("LEDGER_LLM_MODEL_PATH", "/models/qwen.gguf")

        settings = EngineSettings()
        assert settings.temperature == 0.2
        assert settings.thread_count == 4
        assert settings.model_path == "/models/qwen.gguf"

    def test_invalid_value_rejected(self, monkeypatch):
        """Test out-of-range values fail validation."""
        monkeypatch.setenv("LEDGER_LLM_MIN_P", "2")
        with pytest.raises(ValidationError):
            EngineSettings()

    def test_to_session_config(self):
        """Test the session config carries the engine settings."""
        settings = EngineSettings(temperature=0.7, thread_count=3, chat_template="{{x}}")
        config = settings.to_session_config("m.gguf")
        assert config.model_path == "m.gguf"
        assert config.temperature == 0.7
        assert config.thread_count == 3
        assert config.chat_template == "{{x}}"

    def test_template_override(self):
        """Test an explicit template wins, even an empty one."""
        settings = EngineSettings(chat_template="{{x}}")
        assert settings.to_session_config("m.gguf", "").chat_template == ""


class TestOtherSettings:
    """Tests for storage and app settings."""

    def test_storage_from_environment(self, monkeypatch, tmp_path):
        """Test LEDGER_STORAGE_ variables are read."""
        monkeypatch.setenv("LEDGER_STORAGE_DATABASE_PATH", str(tmp_path / "l.db"))
        assert StorageSettings().database_path == str(tmp_path / "l.db")

    def test_app_defaults(self):
        """Test the user-facing defaults."""
        settings = AppSettings()
        assert settings.max_status_message_length == 100
        assert settings.default_category == "General"
        assert settings.currency_label == "Taka"

    def test_get_settings_is_cached(self):
        """Test the root settings object is loaded once."""
        assert get_settings() is get_settings()

    def test_validate_all_settings(self, monkeypatch):
        """Test a broken section is reported with its error."""
        monkeypatch.setenv("LEDGER_LLM_CONTEXT_SIZE", "1")
        results = validate_all_settings()
        assert results["engine"] is False
        assert "engine_error" in results
        assert results["storage"] is True
        assert results["app"] is True
