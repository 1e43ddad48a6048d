"""Schedule lifecycle and reconciliation with the job queue.

The Scheduler owns the mapping between what the schedule store says
should run and what the job queue actually holds. Every schedule
mutation made on behalf of the API or a running job goes through here,
so status, progress and broadcasts stay consistent.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any

from .broadcaster import StatusBroadcaster
from .errors import (
    ConfigurationError,
    NotFoundError,
    RecoveryInconsistency,
    SchedulerError,
)
from .jobs import (
    LIVE_STATES,
    BackoffOptions,
    JobOptions,
    JobState,
    QueueJob,
    RepeatOptions,
)
from .models import (
    DEFAULT_PROCESSOR,
    TRIGGER_FIELDS,
    JobPayload,
    Schedule,
    ScheduleCreate,
    ScheduleStatus,
    ScheduleType,
    ScheduleUpdate,
)
from .queue import JobQueue, ProgressUpdater
from .store import ScheduleStore
from .worker import SyncWorker

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Task interrupted due to server restart"

# Columns that may be cleared through an update
_NULLABLE_FIELDS = frozenset(
    {
        "description",
        "cron_expression",
        "dhis2_instance",
        "alma_instance",
        "scorecard",
        "indicator_group",
    }
)


class Scheduler:
    """Reconciles schedules with the job queue.

    Args:
        store: Schedule persistence
        queue: Job runtime jobs are submitted to
        broadcaster: Live status fan-out
        worker: Executes sync passes for the registered processor
        maintenance_interval_minutes: Period of the purge and orphan sweep;
            0 disables it
        retention_hours: Age after which finished job records are purged
    """

    def __init__(
        self,
        store: ScheduleStore,
        queue: JobQueue,
        broadcaster: StatusBroadcaster,
        worker: SyncWorker,
        maintenance_interval_minutes: float = 15,
        retention_hours: float = 24,
    ) -> None:
        self.store = store
        self.queue = queue
        self.broadcaster = broadcaster
        self.worker = worker
        self.maintenance_interval_minutes = maintenance_interval_minutes
        self.retention_hours = retention_hours
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, schedule_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks[schedule_id]

    # ------------------------------------------------------------------
    # Startup and shutdown
    # ------------------------------------------------------------------

    def initialize(self, concurrency: int = 4, paused: bool = False) -> dict[str, Any]:
        """Wire the processor, start the queue and restore active schedules.

        The queue stays paused until recovery is done, so interrupted
        work is reconciled before any new job fires.

        Args:
            concurrency: Worker slots
            paused: Keep the queue paused after recovery

        Returns:
            The recovery report
        """
        self.queue.register_processor(
            DEFAULT_PROCESSOR,
            self.queue.create_progress_tracking_processor(self._process_sync_job),
        )
        self.queue.add_listener("retrying", self._on_job_retrying)
        self.queue.add_listener("failed", self._on_job_failed)
        self.queue.start_processing(concurrency, paused=True)

        report = self.restore_active_schedules()

        if self.maintenance_interval_minutes > 0:
            self.queue.schedule_maintenance(
                "cleanup", self.run_maintenance, self.maintenance_interval_minutes
            )
        if not paused:
            self.queue.resume()
        logger.info("Scheduler initialized")
        return report

    def shutdown(self, wait: bool = True) -> None:
        """Stop the queue."""
        self.queue.close(wait=wait)
        logger.info("Scheduler shut down")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_schedule(self, schedule_id: str) -> Schedule:
        """Get a schedule or raise NotFoundError."""
        return self.store.require(schedule_id)

    def list_schedules(
        self,
        status: ScheduleStatus | None = None,
        active: bool | None = None,
    ) -> list[Schedule]:
        """List schedules, newest first, optionally filtered."""
        if status is not None:
            schedules = self.store.list_by_status(status)
            if active is not None:
                schedules = [s for s in schedules if s.is_active == active]
            return schedules
        if active is not None:
            return self.store.list_active(active)
        return self.store.list_all()

    def get_schedule_status(self, schedule_id: str) -> dict[str, Any]:
        """Schedule together with its latest job and repeatable definition."""
        schedule = self.store.require(schedule_id)

        job: QueueJob | None = None
        if schedule.current_job_id and not schedule.is_recurring:
            job = self.queue.get_job(schedule.current_job_id)
        if job is None:
            job = self.queue.get_job_by_schedule_id(schedule_id)
        repeatable = self.queue.get_repeatable_job(schedule_id)

        return {
            "schedule": schedule.model_dump(mode="json"),
            "job": job.to_dict() if job else None,
            "repeatable": repeatable.to_dict() if repeatable else None,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_schedule(self, request: ScheduleCreate) -> Schedule:
        """Persist a new idle schedule. No job is submitted."""
        schedule = self.store.create(request)
        self.broadcaster.schedule_created(schedule.model_dump(mode="json"))
        return schedule

    def update_schedule(self, schedule_id: str, update: ScheduleUpdate) -> Schedule:
        """Merge a partial update.

        An active schedule whose trigger or sync parameters changed gets
        its job re-created.

        Raises:
            NotFoundError: If the schedule does not exist
            ConfigurationError: If the merged schedule is invalid
        """
        with self._lock_for(schedule_id):
            current = self.store.require(schedule_id)
            changes = {
                key: value
                for key, value in update.model_dump(exclude_unset=True).items()
                if value is not None or key in _NULLABLE_FIELDS
            }

            try:
                candidate = Schedule.model_validate(
                    {**current.model_dump(), **changes}
                )
            except ValueError as e:
                raise ConfigurationError(f"Invalid schedule update: {e}") from e
            if candidate.type is ScheduleType.RECURRING and not candidate.cron_expression:
                raise ConfigurationError(
                    "cron_expression is required for recurring schedules"
                )

            changed = {
                key
                for key in changes
                if key in TRIGGER_FIELDS and getattr(current, key) != getattr(candidate, key)
            }
            if current.is_active and changed:
                JobPayload.from_schedule(candidate)

            schedule = self.store.update(schedule_id, changes)
            if schedule.is_active and changed:
                logger.info(
                    f"Schedule {schedule_id} changed {sorted(changed)} while active; "
                    "re-creating its job"
                )
                schedule = self._setup_job(schedule)

        self.broadcaster.schedule_update(schedule.model_dump(mode="json"))
        return schedule

    def start_schedule(self, schedule_id: str) -> Schedule:
        """Activate a schedule and submit its job.

        Calling this twice leaves exactly one job or repeatable definition.

        Raises:
            NotFoundError: If the schedule does not exist
            ConfigurationError: If the processor is unknown or sync
                parameters are missing
        """
        with self._lock_for(schedule_id):
            schedule = self.store.require(schedule_id)
            if schedule.processor not in self.queue.get_processors():
                raise ConfigurationError(
                    f"No processor registered for job type '{schedule.processor}'"
                )
            JobPayload.from_schedule(schedule)

            running = self._active_job(schedule_id)
            if running is not None:
                # Status and progress belong to the run in flight
                logger.info(
                    f"Schedule {schedule_id} has job {running.id} running; "
                    "keeping its status"
                )
                schedule = self.store.update(schedule_id, {"is_active": True})
            else:
                schedule = self.store.update(
                    schedule_id,
                    {
                        "progress": 0,
                        "status": ScheduleStatus.IDLE,
                        "message": "Ready to start",
                        "is_active": True,
                        "retry_attempts": 0,
                    },
                )
                self.broadcaster.progress_update(schedule_id, 0, "Starting job...")
            schedule = self._setup_job(schedule)

        logger.info(f"Started schedule {schedule_id} ({schedule.type.value})")
        self.broadcaster.schedule_started(schedule.model_dump(mode="json"))
        return schedule

    def _active_job(self, schedule_id: str) -> QueueJob | None:
        """The schedule's job currently executing, if any."""
        for job in self.queue.get_jobs([JobState.ACTIVE]):
            if job.schedule_id == schedule_id:
                return job
        return None

    def _setup_job(self, schedule: Schedule) -> Schedule:
        """Replace the schedule's job in the queue with a fresh one."""
        self.queue.cancel_job(schedule.id)

        payload = JobPayload.from_schedule(schedule)
        options = JobOptions(
            attempts=schedule.max_retries,
            backoff=BackoffOptions(type="exponential", delay=float(schedule.retry_delay)),
        )
        if schedule.is_recurring:
            options.repeat = RepeatOptions(
                pattern=schedule.cron_expression,
                immediately=schedule.run_immediately,
                key=schedule.id,
            )

        job = self.queue.add_job(
            schedule.processor, payload.to_job_data(), options, job_id=schedule.id
        )
        next_run = self.queue.get_next_run(schedule.id) if schedule.is_recurring else None
        return self.store.update(
            schedule.id, {"current_job_id": job.id, "next_run": next_run}
        )

    def stop_schedule(self, schedule_id: str) -> Schedule:
        """Deactivate a schedule.

        Future firings and queued instances are removed; a job already
        running is left to finish.

        Raises:
            NotFoundError: If the schedule does not exist
        """
        with self._lock_for(schedule_id):
            schedule = self.store.require(schedule_id)
            self.queue.cancel_job(schedule_id)
            if schedule.current_job_id and schedule.current_job_id != schedule_id:
                self.queue.cancel_job(schedule.current_job_id)

            schedule = self.store.update(
                schedule_id,
                {
                    "is_active": False,
                    "status": ScheduleStatus.IDLE,
                    "message": "Stopped",
                    "next_run": None,
                },
            )

        logger.info(f"Stopped schedule {schedule_id}")
        self.broadcaster.schedule_stopped(schedule.model_dump(mode="json"))
        return schedule

    def delete_schedule(self, schedule_id: str) -> None:
        """Stop (best effort) and delete a schedule.

        Raises:
            NotFoundError: If the schedule does not exist
        """
        with self._lock_for(schedule_id):
            self.store.require(schedule_id)
            try:
                self.stop_schedule(schedule_id)
            except Exception as e:
                logger.warning(f"Could not stop schedule {schedule_id} before delete: {e}")
            self.store.delete(schedule_id)

        with self._locks_guard:
            self._locks.pop(schedule_id, None)
        self.broadcaster.schedule_deleted(schedule_id)

    def pause_schedule(self, schedule_id: str) -> Schedule:
        """Hold the firings of an active recurring schedule.

        Raises:
            NotFoundError: If the schedule does not exist
            ConfigurationError: If it has no registered repeatable job
        """
        with self._lock_for(schedule_id):
            schedule = self.store.require(schedule_id)
            if not schedule.is_active or not self.queue.pause_repeatable(schedule_id):
                raise ConfigurationError(
                    f"Schedule {schedule_id} has no active recurring job to pause"
                )
            schedule = self.store.set_status(
                schedule_id, ScheduleStatus.PAUSED, "Paused", next_run=None
            )

        self.broadcaster.schedule_update(schedule.model_dump(mode="json"))
        return schedule

    def resume_schedule(self, schedule_id: str) -> Schedule:
        """Resume a paused recurring schedule.

        Raises:
            NotFoundError: If the schedule does not exist
            ConfigurationError: If it has no registered repeatable job
        """
        with self._lock_for(schedule_id):
            self.store.require(schedule_id)
            if not self.queue.resume_repeatable(schedule_id):
                raise ConfigurationError(
                    f"Schedule {schedule_id} has no recurring job to resume"
                )
            schedule = self.store.set_status(
                schedule_id,
                ScheduleStatus.IDLE,
                "Resumed",
                next_run=self.queue.get_next_run(schedule_id),
            )

        self.broadcaster.schedule_update(schedule.model_dump(mode="json"))
        return schedule

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _transition(
        self,
        schedule_id: str,
        status: ScheduleStatus,
        message: str | None = None,
        **extra: Any,
    ) -> Schedule | None:
        try:
            schedule = self.store.set_status(schedule_id, status, message, **extra)
        except NotFoundError:
            logger.info(f"Schedule {schedule_id} no longer exists; {status.value} not recorded")
            return None
        self.broadcaster.schedule_update(schedule.model_dump(mode="json"))
        return schedule

    def _process_sync_job(self, job: QueueJob, update_progress: ProgressUpdater) -> dict[str, Any]:
        """Processor for sync jobs, run by the queue's worker pool."""
        payload = JobPayload.model_validate(job.data)
        schedule_id = payload.schedule_id

        started = self._transition(
            schedule_id,
            ScheduleStatus.RUNNING,
            "Job started",
            progress=0,
            current_job_id=job.id,
            retry_attempts=job.attempts_made,
        )
        if started is None:
            logger.warning(f"Skipping job {job.id}: schedule {schedule_id} was deleted")
            return {"skipped": True}

        last_progress = 0.0

        def on_progress(value: Any) -> None:
            nonlocal last_progress
            try:
                progress = float(value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring non-numeric progress {value!r} for {schedule_id}")
                return
            progress = min(max(progress, 0.0), 100.0)
            if progress < last_progress:
                return
            last_progress = progress

            update_progress(progress)
            message = f"Processing... {progress:.1f}%"
            try:
                self.store.set_progress(schedule_id, progress, message)
            except NotFoundError:
                return
            self.broadcaster.progress_update(schedule_id, progress, message)

        try:
            result = self.worker.execute_sync(payload, on_progress)
        except Exception as e:
            logger.error(f"Sync job {job.id} for schedule {schedule_id} failed: {e}")
            self._transition(schedule_id, ScheduleStatus.FAILED, str(e) or e.__class__.__name__)
            raise

        if last_progress < 100:
            on_progress(100)

        if result.failed:
            message = (
                f"Job completed with {result.failed} of {result.total_units} "
                f"unit(s) failed: {'; '.join(result.errors[:3])}"
            )
        else:
            message = "Job completed successfully"

        self._transition(
            schedule_id,
            ScheduleStatus.COMPLETED,
            message,
            progress=100,
            current_job_id=schedule_id if job.repeat_key else None,
            retry_attempts=job.attempts_made,
            next_run=self.queue.get_next_run(job.repeat_key) if job.repeat_key else None,
        )
        return result.to_dict()

    def _on_job_retrying(self, job: QueueJob, error: Exception, delay: float) -> None:
        try:
            schedule = self.store.update(
                job.schedule_id,
                {
                    "retry_attempts": job.attempts_made,
                    "message": (
                        f"Attempt {job.attempts_made}/{job.opts.attempts} failed: "
                        f"{error}. Retrying in {delay:.0f}s"
                    ),
                },
            )
        except NotFoundError:
            return
        self.broadcaster.schedule_update(schedule.model_dump(mode="json"))

    def _on_job_failed(self, job: QueueJob, error: Exception) -> None:
        self._transition(
            job.schedule_id,
            ScheduleStatus.FAILED,
            f"Failed after {job.attempts_made} attempt(s): {job.failed_reason or error}",
            retry_attempts=job.attempts_made,
        )

    # ------------------------------------------------------------------
    # Recovery and maintenance
    # ------------------------------------------------------------------

    def restore_active_schedules(self) -> dict[str, Any]:
        """Bring the queue back in line with active schedules after a restart.

        Returns:
            Schedule ids per recovery action and the orphan sweep count
        """
        report: dict[str, Any] = {
            "rearmed": [],
            "in_flight": [],
            "reconciled": [],
            "resubmitted": [],
            "failed": [],
        }

        active = self.store.list_active()
        logger.info(f"Restoring {len(active)} active schedule(s)")

        for schedule in active:
            try:
                with self._lock_for(schedule.id):
                    self._restore_schedule(schedule, report)
            except SchedulerError as e:
                logger.error(f"Failed to restore schedule {schedule.id}: {e}")
                self._transition(
                    schedule.id, ScheduleStatus.FAILED, f"Recovery failed: {e}"
                )
                report["failed"].append(schedule.id)

        active_ids = {s.id for s in self.store.list_active()}
        report["orphans_removed"] = self.sweep_orphaned_jobs(active_ids)
        logger.info(f"Recovery complete: {report}")
        return report

    def _restore_schedule(self, schedule: Schedule, report: dict[str, Any]) -> None:
        if schedule.is_recurring:
            if schedule.status is ScheduleStatus.RUNNING:
                schedule = self.store.set_status(
                    schedule.id, ScheduleStatus.IDLE, INTERRUPTED_MESSAGE, progress=0
                )
            schedule = self._setup_job(schedule)
            if schedule.status is ScheduleStatus.PAUSED:
                self.queue.pause_repeatable(schedule.id)
                schedule = self.store.update(schedule.id, {"next_run": None})
            report["rearmed"].append(schedule.id)
            return

        if schedule.status is ScheduleStatus.RUNNING:
            job = self.queue.get_job(schedule.current_job_id or schedule.id)

            if job is not None and job.state in LIVE_STATES:
                report["in_flight"].append(schedule.id)
                return

            if job is not None and job.state is JobState.COMPLETED:
                self._transition(
                    schedule.id,
                    ScheduleStatus.COMPLETED,
                    "Job completed successfully",
                    progress=100,
                    current_job_id=None,
                )
                report["reconciled"].append(schedule.id)
                return

            if job is not None and job.state is JobState.FAILED:
                self._transition(
                    schedule.id,
                    ScheduleStatus.FAILED,
                    job.failed_reason or "Job failed",
                    retry_attempts=job.attempts_made,
                )
                report["reconciled"].append(schedule.id)
                return

            logger.warning(
                str(RecoveryInconsistency(schedule.id, "running but its job is gone"))
            )
            schedule = self.store.set_status(
                schedule.id,
                ScheduleStatus.IDLE,
                INTERRUPTED_MESSAGE,
                progress=0,
                current_job_id=None,
            )
            self.broadcaster.schedule_update(schedule.model_dump(mode="json"))
            if schedule.type is ScheduleType.IMMEDIATE:
                self._setup_job(schedule)
                report["resubmitted"].append(schedule.id)
            else:
                report["reconciled"].append(schedule.id)
            return

        if schedule.status is ScheduleStatus.IDLE:
            self._setup_job(schedule)
            report["resubmitted"].append(schedule.id)

    def sweep_orphaned_jobs(self, active_ids: set[str] | None = None) -> int:
        """Remove queue entries that belong to no active schedule.

        Jobs still running are left alone; they are swept once finished.

        Returns:
            Number of entries removed
        """
        if active_ids is None:
            active_ids = {s.id for s in self.store.list_active()}

        removed = 0
        for job in self.queue.get_jobs():
            if job.state is JobState.ACTIVE or job.schedule_id in active_ids:
                continue
            if self.queue.remove_job(job.id):
                logger.info(f"Removed orphaned job {job.id} ({job.state.value})")
                removed += 1

        for repeatable in self.queue.get_repeatable_jobs():
            if repeatable.key in active_ids:
                continue
            if self.queue.cancel_job(repeatable.key):
                logger.info(f"Removed orphaned repeatable job {repeatable.key}")
                removed += 1

        return removed

    def run_maintenance(self) -> dict[str, int]:
        """Purge old finished job records and sweep orphans."""
        purged = self.queue.clean(self.retention_hours * 3600)
        orphans = self.sweep_orphaned_jobs()
        if purged or orphans:
            logger.info(f"Maintenance purged {purged} job(s), removed {orphans} orphan(s)")
        return {"purged": purged, "orphans_removed": orphans}
