"""
Periodic sweep of the staging directory.

Backstop for staging files whose job died before releasing them. Only files
older than the retention threshold are removed, so the threshold must exceed
the longest job.
"""
from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from logging_setup import get_logger, Component
from observability.events import Component as ObsComponent, EventEmitter

logger = get_logger(Component.JANITOR)


class TempFileJanitor:
    def __init__(
        self,
        staging_dir: Path,
        retention_seconds: float = 900,
        interval_seconds: float = 60,
        *,
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = asyncio.sleep,
        emitter: Optional[EventEmitter] = None,
    ):
        self.staging_dir = Path(staging_dir)
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._now = now
        self._sleep = sleep
        self.emitter = emitter or EventEmitter(ObsComponent.JANITOR)
        self._task: Optional[asyncio.Task] = None

    def sweep(self) -> List[Path]:
        """Delete expired files. Returns the paths removed."""
        try:
            entries = list(self.staging_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Error during temp file cleanup", error=str(e), staging_dir=str(self.staging_dir))
            return []

        cutoff = self._now() - self.retention_seconds
        removed: List[Path] = []
        for path in entries:
            try:
                st = path.stat()
                if not path.is_file() or st.st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not stat/delete temp file", path=str(path), error=str(e))
                continue

            removed.append(path)
            logger.info("Deleted old temp file", path=str(path))
            self.emitter.emit("janitor.file_reaped", path=str(path))

        return removed

    async def run(self) -> None:
        """Sweep now, then every interval, until cancelled."""
        while True:
            self.sweep()
            await self._sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="staging-janitor")
            logger.info(
                "Janitor started",
                staging_dir=str(self.staging_dir),
                interval_seconds=self.interval_seconds,
                retention_seconds=self.retention_seconds,
            )
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
