"""Persisted dictation preferences (model size and language).

Preferences are plain key/value reads for the rest of the service; the store
keeps them in a small JSON file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ValidationError, field_validator

from .constants import DEFAULT_LANGUAGE, DEFAULT_MODEL_SIZE, PREFERENCES_PATH
from .models import is_language_supported, is_model_size_supported

logger = logging.getLogger(__name__)


class Preferences(BaseModel):
    """User preferences read when an engine is created or reset."""

    modelSize: str = DEFAULT_MODEL_SIZE
    language: str = DEFAULT_LANGUAGE

    @field_validator("modelSize")
    @classmethod
    def _check_model_size(cls, value: str) -> str:
        if not is_model_size_supported(value):
            raise ValueError(f"Unsupported model size: {value}")
        return value.lower()

    @field_validator("language")
    @classmethod
    def _check_language(cls, value: str) -> str:
        if not is_language_supported(value):
            raise ValueError(f"Unsupported language: {value}")
        return value.lower()


class PreferenceStore:
    """JSON-file backed preference store.

    A missing or corrupt file yields the defaults; it is only written by
    ``save``.
    """

    def __init__(self, path: Path | str = PREFERENCES_PATH):
        self.path = Path(path)
        self._cached: Optional[Preferences] = None

    def load(self) -> Preferences:
        if self._cached is not None:
            return self._cached

        prefs = Preferences()
        if self.path.exists():
            try:
                prefs = Preferences(**json.loads(self.path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
                logger.warning(
                    "Ignoring unreadable preferences file: %s",
                    e,
                    extra={"path": str(self.path)},
                )
        self._cached = prefs
        return prefs

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self.load(), key, default)

    def save(self, prefs: Preferences) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(prefs.model_dump_json(indent=2), encoding="utf-8")
        self._cached = prefs
        logger.info(
            "Preferences saved",
            extra={"model_size": prefs.modelSize, "language": prefs.language},
        )

    def update(self, **changes: Any) -> tuple[Preferences, bool]:
        """Apply changes, persist them and report whether anything changed.

        Raises:
            ValidationError: If a value is not supported
        """
        current = self.load()
        changes = {k: v for k, v in changes.items() if v is not None}
        updated = Preferences(**{**current.model_dump(), **changes})
        changed = updated != current
        if changed:
            self.save(updated)
        return updated, changed
