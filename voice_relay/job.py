"""
Transcription job lifecycle and staging files.

A job moves linearly through its states and ends in exactly one terminal
state. Every staging file it registers is deleted once when the job
releases its staging, whichever terminal state it reached.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .updates import FileRef


class JobState(str, Enum):
    """Job states (linear progression)."""
    ADMITTED = "admitted"
    RETRIEVING = "retrieving"
    CONVERTING = "converting"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    FAILED = "failed"


_ORDER = [
    JobState.ADMITTED,
    JobState.RETRIEVING,
    JobState.CONVERTING,
    JobState.DISPATCHING,
    JobState.COMPLETED,
]

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


@dataclass
class StagingFile:
    """An ephemeral file on local staging storage, owned by one job."""

    path: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    released: bool = False

    def release(self) -> bool:
        """
        Delete the file. Returns True the first time, False afterwards.
        A file that is already gone is not an error.
        """
        if self.released:
            return False
        self.released = True
        Path(self.path).unlink(missing_ok=True)
        return True


@dataclass
class Job:
    """One admitted audio transcription request."""

    job_id: str
    chat_id: int
    user_id: int
    source: FileRef
    message_id: Optional[int] = None
    state: JobState = JobState.ADMITTED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    raw: Optional[StagingFile] = None
    normalized: Optional[StagingFile] = None

    finished_at: Optional[datetime] = None
    error_category: Optional[str] = None

    @classmethod
    def create(
        cls,
        chat_id: int,
        user_id: int,
        source: FileRef,
        message_id: Optional[int] = None,
    ) -> "Job":
        return cls(
            job_id=f"job_{uuid.uuid4().hex[:12]}",
            chat_id=chat_id,
            user_id=user_id,
            source=source,
            message_id=message_id,
        )

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition_to(self, new_state: JobState) -> JobState:
        """
        Advance to a new state. Returns the previous state.

        Raises:
            ValueError: on a backwards move or a move out of a terminal state
        """
        old_state = self.state
        if self.is_terminal():
            raise ValueError(f"job {self.job_id} already {old_state.value}")
        if new_state != JobState.FAILED and _ORDER.index(new_state) <= _ORDER.index(old_state):
            raise ValueError(f"illegal transition {old_state.value} -> {new_state.value}")
        self.state = new_state
        if self.is_terminal():
            self.finished_at = datetime.now(timezone.utc)
        return old_state

    def fail(self, category: str) -> JobState:
        self.error_category = category
        return self.transition_to(JobState.FAILED)

    @property
    def staging_files(self) -> List[StagingFile]:
        return [f for f in (self.raw, self.normalized) if f is not None]

    def release_staging(self) -> List[Path]:
        """Delete every staging file not yet released. Returns the paths deleted now."""
        released = []
        for staged in self.staging_files:
            if staged.release():
                released.append(staged.path)
        return released
