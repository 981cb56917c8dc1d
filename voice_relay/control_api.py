"""
Control read API.

This module exposes:
- GET /control/jobs: jobs currently holding a chat's admission flight
- GET /control/jobs/{job_id}/events: lifecycle events of one job
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from observability.event_store import event_store


router = APIRouter(prefix="/control", tags=["control"])


class JobSummary(BaseModel):
    """In-flight job summary."""
    job_id: str
    chat_id: int
    state: str
    created_at: str
    file_id: str


@router.get("/jobs", response_model=List[JobSummary])
async def list_jobs(request: Request) -> List[JobSummary]:
    """List jobs currently in flight, one per busy chat."""
    gate = request.app.state.relay.gate
    return [
        JobSummary(
            job_id=job.job_id,
            chat_id=job.chat_id,
            state=job.state.value,
            created_at=job.created_at.isoformat(),
            file_id=job.source.file_id,
        )
        for job in gate.active_jobs()
    ]


@router.get("/jobs/{job_id}/events")
async def get_job_events(
    job_id: str,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    """Query lifecycle events for a job (in-flight or finished)."""
    if not event_store.query(job_id=job_id, limit=1):
        raise HTTPException(status_code=404, detail="Job not found")

    events = event_store.query(job_id=job_id, event_type=event_type, limit=limit)
    return {
        "job_id": job_id,
        "events": events,
        "count": len(events),
    }
