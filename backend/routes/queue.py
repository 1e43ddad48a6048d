"""Job queue inspection routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request

from scheduler import JobState

router = APIRouter(prefix="/api", tags=["queue"])


@router.get("/queue/stats")
def queue_stats(request: Request) -> dict[str, int]:
    """Job counts per state plus total."""
    return request.app.state.scheduler.queue.get_queue_stats()


@router.get("/queue/jobs")
def queue_jobs(
    request: Request,
    state: list[JobState] | None = Query(None, description="Filter by job state"),
) -> list[dict[str, Any]]:
    """Job instances, newest first."""
    jobs = request.app.state.scheduler.queue.get_jobs(state)
    return [job.to_dict() for job in jobs]


@router.get("/queue/repeatable")
def queue_repeatable(request: Request) -> list[dict[str, Any]]:
    """Registered repeatable (cron) definitions."""
    return [r.to_dict() for r in request.app.state.scheduler.queue.get_repeatable_jobs()]


@router.post("/queue/pause")
def pause_queue(request: Request) -> dict[str, str]:
    """Stop firing jobs until resumed. Running jobs finish."""
    request.app.state.scheduler.queue.pause()
    return {"status": "paused"}


@router.post("/queue/resume")
def resume_queue(request: Request) -> dict[str, str]:
    """Resume firing jobs."""
    request.app.state.scheduler.queue.resume()
    return {"status": "running"}


@router.get("/processors")
def list_processors(request: Request) -> list[str]:
    """Names of registered job processors."""
    return request.app.state.scheduler.queue.get_processors()
