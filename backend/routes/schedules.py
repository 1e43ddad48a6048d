"""Schedule management routes.

CRUD over schedules plus the start/stop/pause/resume lifecycle actions.
Handlers are plain functions; FastAPI runs them in its threadpool since
the scheduler talks to SQLite and the job queue synchronously.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from scheduler import (
    Scheduler,
    SchedulerError,
    ScheduleCreate,
    ScheduleStatus,
    ScheduleUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/schedules", tags=["schedules"])


def get_scheduler(request: Request) -> Scheduler:
    """Scheduler attached to the running app."""
    return request.app.state.scheduler


def _http_error(action: str, e: SchedulerError) -> HTTPException:
    if e.http_status >= 500:
        logger.error(f"Failed to {action}: {e}")
    return HTTPException(status_code=e.http_status, detail=str(e)[:500])


@router.get("")
def list_schedules(
    request: Request,
    status: ScheduleStatus | None = Query(None, description="Filter by status"),
    active: bool | None = Query(None, description="Filter by active flag"),
) -> list[dict[str, Any]]:
    """List schedules, newest first."""
    schedules = get_scheduler(request).list_schedules(status=status, active=active)
    return [s.model_dump(mode="json") for s in schedules]


@router.post("", status_code=201)
def create_schedule(request: Request, body: ScheduleCreate) -> dict[str, Any]:
    """Create a schedule. It stays idle until started."""
    try:
        schedule = get_scheduler(request).create_schedule(body)
    except SchedulerError as e:
        raise _http_error("create schedule", e) from e
    return schedule.model_dump(mode="json")


@router.get("/{schedule_id}")
def get_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Get a schedule by id."""
    try:
        schedule = get_scheduler(request).get_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("get schedule", e) from e
    return schedule.model_dump(mode="json")


@router.put("/{schedule_id}")
def update_schedule(
    request: Request, schedule_id: str, body: ScheduleUpdate
) -> dict[str, Any]:
    """Partially update a schedule.

    If the schedule is active and its trigger or sync parameters changed,
    its job is re-created.
    """
    try:
        schedule = get_scheduler(request).update_schedule(schedule_id, body)
    except SchedulerError as e:
        raise _http_error("update schedule", e) from e
    return schedule.model_dump(mode="json")


@router.delete("/{schedule_id}")
def delete_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Stop and delete a schedule."""
    try:
        get_scheduler(request).delete_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("delete schedule", e) from e
    return {"status": "deleted", "id": schedule_id}


@router.post("/{schedule_id}/start")
def start_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Activate a schedule and submit its job."""
    try:
        schedule = get_scheduler(request).start_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("start schedule", e) from e
    return schedule.model_dump(mode="json")


@router.post("/{schedule_id}/stop")
def stop_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Deactivate a schedule. A running job finishes on its own."""
    try:
        schedule = get_scheduler(request).stop_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("stop schedule", e) from e
    return schedule.model_dump(mode="json")


@router.post("/{schedule_id}/pause")
def pause_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Hold the firings of an active recurring schedule."""
    try:
        schedule = get_scheduler(request).pause_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("pause schedule", e) from e
    return schedule.model_dump(mode="json")


@router.post("/{schedule_id}/resume")
def resume_schedule(request: Request, schedule_id: str) -> dict[str, Any]:
    """Resume a paused recurring schedule."""
    try:
        schedule = get_scheduler(request).resume_schedule(schedule_id)
    except SchedulerError as e:
        raise _http_error("resume schedule", e) from e
    return schedule.model_dump(mode="json")


@router.get("/{schedule_id}/status")
def get_schedule_status(request: Request, schedule_id: str) -> dict[str, Any]:
    """Schedule with its latest job and repeatable definition."""
    try:
        return get_scheduler(request).get_schedule_status(schedule_id)
    except SchedulerError as e:
        raise _http_error("get schedule status", e) from e
