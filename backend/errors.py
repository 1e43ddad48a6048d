"""Exception types shared by the scheduler, job runtime, sync worker and
connectors.

Each error carries the HTTP status the API boundary reports for it, so
routes never need to know which layer raised.
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for scheduler errors."""

    http_status = 500


class NotFoundError(SchedulerError):
    """A schedule or job id does not exist."""

    http_status = 404

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class ConfigurationError(SchedulerError):
    """Missing instance, processor or sync parameter."""

    http_status = 400


class ExternalServiceError(SchedulerError):
    """A DHIS2 or ALMA call failed (network, auth or non-2xx)."""

    http_status = 502

    def __init__(
        self,
        message: str,
        service: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class RetriesExhaustedError(SchedulerError):
    """The job runtime gave up on a job after its last attempt."""

    def __init__(self, job_id: str, attempts: int, reason: str | None) -> None:
        super().__init__(
            f"Job {job_id} failed after {attempts} attempt(s): {reason or 'unknown error'}"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.reason = reason


class RecoveryInconsistency(SchedulerError):
    """Schedule store and job runtime disagree about a schedule after restart."""

    def __init__(self, schedule_id: str, detail: str) -> None:
        super().__init__(f"Schedule {schedule_id}: {detail}")
        self.schedule_id = schedule_id
        self.detail = detail
