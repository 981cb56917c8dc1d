"""
Per-chat single-flight admission.

Each chat holds at most one in-flight job. The registry is keyed by chat_id,
so busy chats never block each other. Check-and-set runs without awaiting,
which makes it atomic on the event loop.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from logging_setup import get_logger, Component
from observability.events import Component as ObsComponent, EventEmitter

from .job import Job

logger = get_logger(Component.ADMISSION)


class Admission(str, Enum):
    GRANTED = "granted"
    BUSY = "busy"


@dataclass
class _Flight:
    job: Job
    notices_sent: int = 0
    notice_message_id: Optional[int] = None


class AdmissionGate:
    """Keyed single-flight registry: chat_id -> in-flight job."""

    def __init__(self, emitter: Optional[EventEmitter] = None):
        self._flights: Dict[int, _Flight] = {}
        self.emitter = emitter or EventEmitter(ObsComponent.ADMISSION)

    def is_busy(self, chat_id: int) -> bool:
        return chat_id in self._flights

    def admit(self, chat_id: int, job: Job) -> Admission:
        """Grant the chat's single flight to ``job`` unless it is taken."""
        flight = self._flights.get(chat_id)
        if flight is not None:
            logger.info(
                "Chat busy, job rejected",
                chat_id=chat_id,
                active_job_id=flight.job.job_id,
            )
            self.emitter.emit(
                "job.busy_rejected",
                job_id=flight.job.job_id,
                chat_id=chat_id,
            )
            return Admission.BUSY

        self._flights[chat_id] = _Flight(job=job)
        self.emitter.emit("job.admitted", job_id=job.job_id, chat_id=chat_id)
        return Admission.GRANTED

    def claim_notice(self, chat_id: int) -> bool:
        """
        True exactly once per busy period: the caller should send the
        "please wait" notice. False when idle or already notified.
        """
        flight = self._flights.get(chat_id)
        if flight is None or flight.notices_sent > 0:
            return False
        flight.notices_sent = 1
        return True

    def record_notice(self, chat_id: int, message_id: Optional[int]) -> None:
        flight = self._flights.get(chat_id)
        if flight is not None:
            flight.notice_message_id = message_id

    def notices_sent(self, chat_id: int) -> int:
        flight = self._flights.get(chat_id)
        return flight.notices_sent if flight else 0

    def release(self, chat_id: int) -> Optional[int]:
        """
        Clear the chat's flight and notice counter. Safe to call when idle.
        Returns the busy notice message id, if one was sent.
        """
        flight = self._flights.pop(chat_id, None)
        if flight is None:
            return None
        logger.debug("Chat released", chat_id=chat_id, job_id=flight.job.job_id)
        return flight.notice_message_id

    def active_job(self, chat_id: int) -> Optional[Job]:
        flight = self._flights.get(chat_id)
        return flight.job if flight else None

    def active_jobs(self) -> List[Job]:
        return [f.job for f in self._flights.values()]
