"""API route modules for the sync scheduler.

Routers:
- schedules: schedule CRUD and lifecycle actions
- queue: job queue statistics, jobs, repeatable definitions, processors
- instances: configured DHIS2 and ALMA instances
- events: WebSocket push channel for live status
"""

from .events import router as events_router
from .instances import router as instances_router
from .queue import router as queue_router
from .schedules import router as schedules_router

__all__ = ["schedules_router", "queue_router", "instances_router", "events_router"]
