"""Pydantic models for schedules and the job payloads they produce.

Defines the Schedule record persisted by the schedule store, the request
models accepted by the API, and the validated payload handed to the
sync processor.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import ConfigurationError
from .periods import PeriodType, RunFor
from .queue import parse_cron

DEFAULT_PROCESSOR = "dhis2-alma-sync"


class ScheduleType(str, Enum):
    """How a schedule is triggered."""

    IMMEDIATE = "immediate"
    RECURRING = "recurring"
    ONE_TIME = "one-time"


class ScheduleStatus(str, Enum):
    """Last known execution status of a schedule."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


# Fields whose change requires the live job to be re-created
TRIGGER_FIELDS = frozenset(
    {
        "type",
        "cron_expression",
        "run_immediately",
        "periods",
        "processor",
        "dhis2_instance",
        "alma_instance",
        "scorecard",
        "indicator_group",
        "period_type",
        "run_for",
        "max_retries",
        "retry_delay",
        "data",
    }
)


def _validate_cron(value: str | None) -> str | None:
    if value is None:
        return None
    value = " ".join(value.split())
    if not value:
        return None

    parse_cron(value)
    return value


class ScheduleBase(BaseModel):
    """Fields shared by schedule requests and records."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: ScheduleType = ScheduleType.IMMEDIATE
    cron_expression: str | None = None
    run_immediately: bool = False
    periods: list[str] = Field(default_factory=list)
    processor: str = DEFAULT_PROCESSOR
    dhis2_instance: str | None = None
    alma_instance: str | None = None
    scorecard: int | None = None
    indicator_group: str | None = None
    period_type: PeriodType = PeriodType.MONTH
    run_for: RunFor = RunFor.CURRENT
    max_retries: int = Field(default=3, ge=1, le=20)
    retry_delay: int = Field(default=60, ge=0)
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("cron_expression")
    @classmethod
    def validate_cron_expression(cls, v: str | None) -> str | None:
        """Validate cron expression format."""
        return _validate_cron(v)


class ScheduleCreate(ScheduleBase):
    """Request model for creating a schedule."""

    id: str | None = None

    @model_validator(mode="after")
    def require_cron_for_recurring(self) -> "ScheduleCreate":
        if self.type is ScheduleType.RECURRING and not self.cron_expression:
            raise ValueError("cron_expression is required for recurring schedules")
        return self


class ScheduleUpdate(BaseModel):
    """Request model for a partial schedule update."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    type: ScheduleType | None = None
    cron_expression: str | None = None
    run_immediately: bool | None = None
    periods: list[str] | None = None
    processor: str | None = None
    dhis2_instance: str | None = None
    alma_instance: str | None = None
    scorecard: int | None = None
    indicator_group: str | None = None
    period_type: PeriodType | None = None
    run_for: RunFor | None = None
    max_retries: int | None = Field(default=None, ge=1, le=20)
    retry_delay: int | None = Field(default=None, ge=0)
    data: dict[str, Any] | None = None

    @field_validator("cron_expression")
    @classmethod
    def validate_cron_expression(cls, v: str | None) -> str | None:
        return _validate_cron(v)


class Schedule(ScheduleBase):
    """A persisted schedule with its runtime state."""

    id: str
    is_active: bool = False
    status: ScheduleStatus = ScheduleStatus.IDLE
    last_status: ScheduleStatus | None = None
    progress: float = 0.0
    message: str | None = None
    last_run: datetime | None = None
    next_run: datetime | None = None
    current_job_id: str | None = None
    retry_attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def is_recurring(self) -> bool:
        return self.type is ScheduleType.RECURRING and bool(self.cron_expression)


class ProgressUpdate(BaseModel):
    """Transient progress event for one schedule."""

    id: str
    progress: float
    message: str | None = None
    status: ScheduleStatus | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _override(data: dict[str, Any], snake: str, camel: str, default: Any) -> Any:
    if snake in data and data[snake] is not None:
        return data[snake]
    if camel in data and data[camel] is not None:
        return data[camel]
    return default


class JobPayload(BaseModel):
    """Sync parameters snapshot submitted with a job."""

    schedule_id: str
    processor: str = DEFAULT_PROCESSOR
    dhis2_instance: str
    alma_instance: str
    scorecard: int
    indicator_group: str | None = None
    period_type: PeriodType = PeriodType.MONTH
    run_for: RunFor = RunFor.CURRENT
    periods: list[str] = Field(default_factory=list)
    extras: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> JobPayload:
        """Merge schedule fields with its nested data overrides.

        Values in ``schedule.data`` win over the schedule's own fields and
        may use either snake_case or camelCase keys.

        Raises:
            ConfigurationError: If required sync parameters are missing
        """
        data = dict(schedule.data or {})
        known = {
            "dhis2_instance": ("dhis2Instance", schedule.dhis2_instance),
            "alma_instance": ("almaInstance", schedule.alma_instance),
            "scorecard": ("scorecard", schedule.scorecard),
            "indicator_group": ("indicatorGroup", schedule.indicator_group),
            "period_type": ("periodType", schedule.period_type),
            "run_for": ("runFor", schedule.run_for),
            "periods": ("periods", schedule.periods),
        }

        values: dict[str, Any] = {}
        consumed: set[str] = set()
        for snake, (camel, default) in known.items():
            values[snake] = _override(data, snake, camel, default)
            consumed.update({snake, camel})

        missing = [
            field
            for field in ("dhis2_instance", "alma_instance", "scorecard")
            if values[field] in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"Schedule {schedule.id} is missing sync parameters: {', '.join(missing)}"
            )

        extras = {k: v for k, v in data.items() if k not in consumed}
        try:
            return cls(
                schedule_id=schedule.id,
                processor=schedule.processor,
                extras=extras,
                **values,
            )
        except ValueError as e:
            raise ConfigurationError(
                f"Schedule {schedule.id} has invalid sync parameters: {e}"
            ) from e

    def to_job_data(self) -> dict[str, Any]:
        """Plain dict stored with the queued job."""
        return self.model_dump(mode="json")
