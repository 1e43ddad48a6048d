"""FastAPI backend for the DHIS2 to ALMA sync scheduler."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import (
    DB_PATH,
    HTTP_TIMEOUT,
    INSTANCES_CONFIG,
    JOB_RETENTION_HOURS,
    LOG_LEVEL,
    MAINTENANCE_INTERVAL_MINUTES,
    QUEUE_ATTEMPTS,
    QUEUE_BACKOFF_DELAY,
    QUEUE_CONCURRENCY,
    QUEUE_NAME,
    SCHEDULER_TIMEZONE,
    UNIT_FAILURE_POLICY,
)
from connectors import InstanceRegistry, load_instance_registry
from routes import events_router, instances_router, queue_router, schedules_router
from scheduler import (
    JobQueue,
    Scheduler,
    ScheduleStore,
    StatusBroadcaster,
    SyncWorker,
    UnitFailurePolicy,
)
from scheduler.jobs import BackoffOptions, JobOptions

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Object graph built once per process."""

    registry: InstanceRegistry
    broadcaster: StatusBroadcaster
    scheduler: Scheduler
    concurrency: int = QUEUE_CONCURRENCY
    start_paused: bool = False


def build_services(
    db_path: str = DB_PATH,
    instances_config: str = INSTANCES_CONFIG,
    jobstore_url: str | None = None,
) -> Services:
    """Construct the store, queue, worker and scheduler.

    Args:
        db_path: SQLite file for schedules, job records and the job store
        instances_config: Instance registry file
        jobstore_url: Override for the APScheduler job store URL
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    registry = load_instance_registry(instances_config)
    broadcaster = StatusBroadcaster()
    queue = JobQueue(
        QUEUE_NAME,
        db_path,
        jobstore_url=jobstore_url,
        default_options=JobOptions(
            attempts=QUEUE_ATTEMPTS,
            backoff=BackoffOptions(type="exponential", delay=QUEUE_BACKOFF_DELAY),
        ),
        timezone_name=SCHEDULER_TIMEZONE,
    )
    worker = SyncWorker(
        registry,
        failure_policy=UnitFailurePolicy(UNIT_FAILURE_POLICY),
        timeout=HTTP_TIMEOUT,
    )
    scheduler = Scheduler(
        ScheduleStore(db_path),
        queue,
        broadcaster,
        worker,
        maintenance_interval_minutes=MAINTENANCE_INTERVAL_MINUTES,
        retention_hours=JOB_RETENTION_HOURS,
    )
    return Services(registry=registry, broadcaster=broadcaster, scheduler=scheduler)


def create_app(services: Services | None = None) -> FastAPI:
    """Create the FastAPI app.

    Args:
        services: Prebuilt object graph; built from configuration on
            startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the scheduler on startup and stop it on shutdown."""
        current = services or build_services()
        app.state.services = current
        app.state.registry = current.registry
        app.state.broadcaster = current.broadcaster
        app.state.scheduler = current.scheduler

        report = current.scheduler.initialize(
            concurrency=current.concurrency, paused=current.start_paused
        )
        logger.info(f"Scheduler ready: {report}")

        yield

        try:
            current.scheduler.shutdown(wait=True)
        except Exception as e:
            logger.warning(f"Scheduler shutdown error: {e}")

    app = FastAPI(
        title="DHIS2 ALMA Sync Scheduler",
        description="Scheduled DHIS2 to ALMA scorecard synchronization",
        version="0.1.0",
        lifespan=lifespan,
    )

    cors_origins = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
        ).split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(schedules_router)
    app.include_router(queue_router)
    app.include_router(instances_router)
    app.include_router(events_router)

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint."""
        scheduler = request.app.state.scheduler
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "queue_running": scheduler.queue.is_running,
            "connections": request.app.state.broadcaster.connection_count,
        }

    return app


app = create_app()
