"""
Event store for querying job lifecycle events by job_id or chat_id.

In-memory implementation, bounded, single process.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_ENVELOPE_KEYS = ("ts", "job_id", "chat_id", "component", "event_type", "severity", "pii")


@dataclass
class StoredEvent:
    """A lifecycle event stored in memory."""

    ts: datetime
    job_id: Optional[str]
    chat_id: Optional[int]
    component: str
    event_type: str
    severity: str
    pii: Dict[str, Any]
    payload: Dict[str, Any]  # All other event fields

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the emitted event dict."""
        result = {
            "ts": self.ts.isoformat(),
            "job_id": self.job_id,
            "chat_id": self.chat_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
            "pii": self.pii,
        }
        result.update(self.payload)
        return result


class EventStore:
    """
    In-memory event store.

    Stores events in a bounded deque (FIFO) to prevent unbounded memory growth.
    Default max size: 10,000 events.
    """

    def __init__(self, max_events: int = 10000):
        self._events: deque[StoredEvent] = deque(maxlen=max_events)
        self._max_events = max_events

    def store(self, event: Dict[str, Any]) -> None:
        """Store an emitted event dict."""
        ts_str = event.get("ts")
        if isinstance(ts_str, str):
            ts = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
        else:
            ts = datetime.now(timezone.utc)

        payload = {k: v for k, v in event.items() if k not in _ENVELOPE_KEYS}

        self._events.append(StoredEvent(
            ts=ts,
            job_id=event.get("job_id"),
            chat_id=event.get("chat_id"),
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            pii=event.get("pii", {"contains_pii": False, "fields": [], "handling": "none"}),
            payload=payload,
        ))

    def query(
        self,
        job_id: Optional[str] = None,
        chat_id: Optional[int] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query events with optional filters.

        Returns:
            List of event dicts, oldest first
        """
        results: List[StoredEvent] = []

        for event in self._events:
            if job_id and event.job_id != job_id:
                continue
            if chat_id is not None and event.chat_id != chat_id:
                continue
            if event_type and event.event_type != event_type:
                continue
            if component and event.component != component:
                continue

            results.append(event)

            if limit and len(results) >= limit:
                break

        return [e.to_dict() for e in results]

    def clear(self) -> None:
        self._events.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        return {
            "total_events": len(self._events),
            "max_events": self._max_events,
            "oldest_event_ts": self._events[0].ts.isoformat() if self._events else None,
            "newest_event_ts": self._events[-1].ts.isoformat() if self._events else None,
        }


# Global event store instance
event_store = EventStore()
