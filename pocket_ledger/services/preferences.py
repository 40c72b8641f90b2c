"""
Preferences Store

A tiny key-value file that remembers which model the user picked last,
so the next start can load it without asking again.
"""

from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError


logger = structlog.get_logger(__name__)


class Preferences(BaseModel):
    """Everything we remember between runs."""
    model_config = ConfigDict(extra="ignore")

    saved_model_path: Optional[str] = None


class PreferencesStore:
    """
    JSON-file backed preferences.

    A missing or unreadable file behaves like empty preferences; the
    user simply gets asked to pick a model again.
    """

    def __init__(self, path: str = "preferences.json"):
        self._path = Path(path).expanduser()
        self._prefs: Optional[Preferences] = None

    def load(self) -> Preferences:
        if not self._path.exists():
            self._prefs = Preferences()
            return self._prefs

        try:
            self._prefs = Preferences.model_validate_json(
                self._path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            logger.warning(
                "preferences_unreadable",
                path=str(self._path),
                error=str(e),
            )
            self._prefs = Preferences()
        return self._prefs

    @property
    def saved_model_path(self) -> Optional[str]:
        if self._prefs is None:
            self.load()
        return self._prefs.saved_model_path

    def save_model_path(self, model_path: str) -> None:
        """Remember `model_path` and write the file immediately."""
        current = self._prefs if self._prefs is not None else self.load()
        self._prefs = current.model_copy(update={"saved_model_path": model_path})
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self._prefs.model_dump_json(indent=2), encoding="utf-8")
        logger.info("model_path_saved", model_path=model_path)
