"""
Persisted user -> recognition model mapping (JSON object on disk).
"""
import json
from pathlib import Path
from typing import Dict

from logging_setup import get_logger, Component

from .errors import PersistenceError
from .storage import atomic_write_text

logger = get_logger(Component.PREFERENCES)

DEFAULT_MODEL = "fast"


class UserPreferenceStore:
    """Whole-file read/overwrite store keyed by str(user_id)."""

    def __init__(self, path: Path, default_model: str = DEFAULT_MODEL):
        self.path = Path(path)
        self.default_model = default_model

    def _load(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PersistenceError(f"cannot read {self.path}: {e}") from e
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise PersistenceError(f"invalid JSON in {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"expected a JSON object in {self.path}")
        return {str(k): str(v) for k, v in data.items()}

    def get(self, user_id: int | str) -> str:
        """Stored model for a user, or the default model."""
        try:
            models = self._load()
        except PersistenceError as e:
            logger.warning("Falling back to default model", error=str(e), user_id=user_id)
            return self.default_model
        return models.get(str(user_id)) or self.default_model

    def set(self, user_id: int | str, model: str) -> bool:
        """
        Persist a user's model choice. Returns False (and logs) if the file
        could not be written.
        """
        try:
            models = self._load()
        except PersistenceError as e:
            # Unreadable file is replaced rather than blocking the choice
            logger.warning("Overwriting unreadable preferences file", error=str(e))
            models = {}

        models[str(user_id)] = model
        try:
            atomic_write_text(self.path, json.dumps(models, ensure_ascii=False, indent=2))
        except OSError as e:
            err = PersistenceError(f"cannot write {self.path}: {e}")
            logger.error("Failed to persist user model", error=str(err), category=err.category, user_id=user_id)
            return False

        logger.info("User model updated", user_id=user_id, model=model)
        return True
