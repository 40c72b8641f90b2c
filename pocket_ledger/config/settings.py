"""
Configuration Management for Pocket Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine's sampling parameters, the storage locations and the
user-facing limits are all visible in one place and validated at startup.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pocket_ledger.models.session import SessionConfig


def _default_thread_count() -> int:
    """Leave two cores free for the event loop and the rest of the system."""
    return max(1, (os.cpu_count() or 1) - 2)


class EngineSettings(BaseSettings):
    """On-device inference engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=()
    )

    model_path: Optional[str] = Field(
        default=None,
        description="Path to a GGUF model file (overrides the saved preference)"
    )
    min_p: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Min-p sampling cutoff"
    )
    temperature: float = Field(
        default=1.5,
        ge=0.0,
        le=5.0,
        description="Sampling temperature"
    )
    context_size: int = Field(
        default=2048,
        ge=256,
        description="Context window in tokens"
    )
    chat_template: str = Field(
        default="",
        description="Jinja chat template; empty uses the template stored in the model file"
    )
    thread_count: int = Field(
        default_factory=_default_thread_count,
        ge=1,
        description="CPU threads used for inference"
    )
    use_memory_map: bool = Field(
        default=True,
        description="Memory-map the model file"
    )
    use_memory_lock: bool = Field(
        default=False,
        description="Lock the model in RAM"
    )
    store_history: bool = Field(
        default=False,
        description="Keep previous turns in the model's context"
    )
    generation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Cancel a generation that runs longer than this"
    )

    def to_session_config(
        self,
        model_path: str,
        chat_template: Optional[str] = None,
    ) -> SessionConfig:
        """Build the immutable config handed to the session once."""
        return SessionConfig(
            model_path=model_path,
            min_p=self.min_p,
            temperature=self.temperature,
            context_size=self.context_size,
            chat_template=self.chat_template if chat_template is None else chat_template,
            thread_count=self.thread_count,
            use_memory_map=self.use_memory_map,
            use_memory_lock=self.use_memory_lock,
            store_history=self.store_history,
        )


class StorageSettings(BaseSettings):
    """Local storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_path: str = Field(
        default="pocket_ledger.db",
        description="SQLite database holding the ledger and the audit log"
    )
    models_dir: str = Field(
        default="models",
        description="Directory imported model files are copied into"
    )
    preferences_path: str = Field(
        default="preferences.json",
        description="Key-value file remembering the last selected model"
    )
    persist_audit_log: bool = Field(
        default=True,
        description="Write audit events to the database as well as the log"
    )

    @field_validator('database_path', 'preferences_path')
    @classmethod
    def validate_parent_dir(cls, v: str) -> str:
        """Warn if the parent directory is missing (but don't fail - it may be created later)."""
        parent = Path(v).expanduser().parent
        if not parent.exists():
            import warnings
            warnings.warn(
                f"Directory {parent} does not exist yet. "
                "It must exist before Pocket Ledger writes to it."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    # User-facing limits
    max_status_message_length: int = Field(
        default=100,
        ge=10,
        le=1000,
        description="Status lines longer than this are truncated with '...'"
    )
    default_category: str = Field(
        default="General",
        min_length=1,
        description="Category used when the model omits one"
    )
    currency_label: str = Field(
        default="Taka",
        description="Currency shown in insert confirmations"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {section_name: is_valid} plus
    {section_name}_error entries for the sections that failed.
    Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for name in ("engine", "storage", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
