"""
Update deduplication by persisted high-water mark.

The gate is monotonic: once update N is recorded, every id <= N is rejected,
including older ids redelivered out of order. Persistence problems are logged
and never block processing.
"""
from pathlib import Path
from typing import Optional

from logging_setup import get_logger, Component
from observability.events import Component as ObsComponent, EventEmitter

from .errors import PersistenceError
from .storage import atomic_write_text

logger = get_logger(Component.DEDUP)


class UpdateDeduplicator:
    def __init__(self, path: Path, emitter: Optional[EventEmitter] = None):
        self.path = Path(path)
        self.emitter = emitter or EventEmitter(ObsComponent.WEBHOOK)

    def _read(self) -> Optional[int]:
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"cannot read {self.path}: {e}") from e
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError as e:
            raise PersistenceError(f"corrupt high-water mark in {self.path}: {raw!r}") from e

    def _write(self, update_id: int) -> None:
        try:
            atomic_write_text(self.path, str(update_id))
        except OSError as e:
            raise PersistenceError(f"cannot write {self.path}: {e}") from e

    def last_processed(self) -> Optional[int]:
        """Current high-water mark, or None if absent/unreadable."""
        try:
            return self._read()
        except PersistenceError as e:
            logger.error("Failed to read update log", error=str(e), category=e.category)
            return None

    def should_process(self, update_id: int) -> bool:
        """
        Return False for an already-seen update, otherwise record it and
        return True.
        """
        last_id = self.last_processed()

        if last_id is not None and update_id <= last_id:
            logger.info(
                "Duplicate update ignored",
                update_id=update_id,
                last_update_id=last_id,
            )
            self.emitter.emit(
                "update.duplicate_dropped",
                update_id=update_id,
                last_update_id=last_id,
            )
            return False

        try:
            self._write(update_id)
        except PersistenceError as e:
            logger.error("Failed to persist update id", error=str(e), update_id=update_id)

        return True
