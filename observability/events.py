"""
Structured JSON lifecycle events for transcription jobs.

Every event shares one envelope (ts, job_id, chat_id, component,
event_type, severity, pii) and is written to stdout as one JSON line,
then kept in the in-memory event store for the control read API.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .event_store import EventStore, event_store


class Component(str, Enum):
    """Event-emitting components."""

    WEBHOOK = "webhook"
    ADMISSION = "admission"
    PIPELINE = "pipeline"
    JANITOR = "janitor"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}


class EventEmitter:
    """Emits structured JSON lifecycle events."""

    def __init__(self, component: Component, store: Optional[EventStore] = None):
        self.component = component
        self.store = store if store is not None else event_store

    def emit(
        self,
        event_type: str,
        job_id: Optional[str] = None,
        chat_id: Optional[int] = None,
        severity: Severity = Severity.INFO,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "job_id": job_id,
            "chat_id": chat_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "pii": pii or DEFAULT_PII,
        }

        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        self.store.store(event)

    def job_state_changed(
        self,
        job_id: str,
        chat_id: int,
        from_state: str,
        to_state: str,
    ) -> None:
        """Emit job.state_changed event."""
        self.emit(
            "job.state_changed",
            job_id=job_id,
            chat_id=chat_id,
            from_state=from_state,
            to_state=to_state,
        )

    def job_finished(
        self,
        job_id: str,
        chat_id: int,
        succeeded: bool,
        latency_ms: int,
        category: Optional[str] = None,
        transcript_length: Optional[int] = None,
    ) -> None:
        """Emit job.completed or job.failed. Transcript content is never emitted."""
        if succeeded:
            self.emit(
                "job.completed",
                job_id=job_id,
                chat_id=chat_id,
                latency_ms=latency_ms,
                transcript_length=transcript_length,
            )
        else:
            self.emit(
                "job.failed",
                job_id=job_id,
                chat_id=chat_id,
                severity=Severity.WARN,
                latency_ms=latency_ms,
                category=category,
            )
