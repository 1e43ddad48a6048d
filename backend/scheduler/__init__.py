"""Background scheduler for DHIS2 to ALMA sync schedules.

Schedules are persisted in SQLite and reconciled with an APScheduler
backed job queue that survives restarts.
"""

from .broadcaster import EventType, StatusBroadcaster, WebSocketChannel
from .errors import (
    ConfigurationError,
    ExternalServiceError,
    NotFoundError,
    RecoveryInconsistency,
    RetriesExhaustedError,
    SchedulerError,
)
from .jobs import JobOptions, JobState, QueueJob
from .models import (
    JobPayload,
    Schedule,
    ScheduleCreate,
    ScheduleStatus,
    ScheduleType,
    ScheduleUpdate,
)
from .queue import JobQueue, parse_cron
from .scheduler import Scheduler
from .store import ScheduleStore
from .worker import SyncResult, SyncWorker, UnitFailurePolicy

__all__ = [
    "Scheduler",
    "ScheduleStore",
    "JobQueue",
    "parse_cron",
    "SyncWorker",
    "SyncResult",
    "UnitFailurePolicy",
    "StatusBroadcaster",
    "WebSocketChannel",
    "EventType",
    # Models
    "Schedule",
    "ScheduleCreate",
    "ScheduleUpdate",
    "ScheduleStatus",
    "ScheduleType",
    "JobPayload",
    "JobOptions",
    "JobState",
    "QueueJob",
    # Errors
    "SchedulerError",
    "NotFoundError",
    "ConfigurationError",
    "ExternalServiceError",
    "RetriesExhaustedError",
    "RecoveryInconsistency",
]
