"""Durable job queue built on APScheduler.

Provides the job runtime the scheduler submits work to: one-shot and
cron-repeatable jobs keyed by id, bounded worker concurrency, retries
with backoff, progress tracking and stalled-job recovery after restarts.
Trigger definitions persist in a SQLAlchemy job store; job instance
state persists in the ``queue_jobs`` table.
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .errors import ConfigurationError, RetriesExhaustedError
from .jobs import (
    FINISHED_STATES,
    PENDING_STATES,
    JobOptions,
    JobRecordStore,
    JobState,
    QueueJob,
)

logger = logging.getLogger(__name__)

Processor = Callable[[QueueJob], Any]
ProgressUpdater = Callable[[float], None]

RUN_PREFIX = "job:"
REPEAT_PREFIX = "repeat:"
MAINTENANCE_PREFIX = "maintenance:"

# Cron numbers Sunday 0 (and 7); APScheduler numbers Monday 0.
_CRON_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")

# Live queues by name, resolved by the job store trampolines below
_queues: dict[str, JobQueue] = {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _run_id(job_id: str) -> str:
    return f"{RUN_PREFIX}{job_id}"


def _repeat_id(key: str) -> str:
    return f"{REPEAT_PREFIX}{key}"


def _translate_day_of_week(field: str) -> str:
    if not any(ch.isdigit() for ch in field):
        return field

    days: list[str] = []
    for part in field.split(","):
        base, _, step = part.partition("/")
        step_size = int(step) if step else 1
        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            first, last = base.split("-", 1)
            start, end = int(first), int(last)
        else:
            start = int(base)
            end = 6 if step else start
        if not (0 <= start <= end <= 7) or step_size < 1:
            raise ValueError(f"Invalid day of week field: {field}")
        for value in range(start, end + 1, step_size):
            name = _CRON_DAY_NAMES[value]
            if name not in days:
                days.append(name)
    return ",".join(days)


def parse_cron(cron_expression: str, timezone_name: str | None = None) -> CronTrigger:
    """Parse a cron expression into an APScheduler trigger.

    Args:
        cron_expression: Standard cron format (minute hour day month day_of_week),
            optionally prefixed with a seconds field
        timezone_name: Timezone the pattern is evaluated in

    Returns:
        CronTrigger instance

    Raises:
        ValueError: If the expression is malformed
    """
    parts = (cron_expression or "").strip().split()

    if len(parts) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = parts
    elif len(parts) == 6:
        second, minute, hour, day, month, day_of_week = parts
    else:
        raise ValueError(
            f"Invalid cron expression: {cron_expression}. "
            "Expected 5 or 6 space-separated fields."
        )

    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=timezone_name,
        )
    except ValueError as e:
        raise ValueError(f"Invalid cron expression: {cron_expression}. {e}") from e


def _dispatch_job(queue_name: str, job_id: str) -> None:
    queue = _queues.get(queue_name)
    if queue is None:
        logger.warning(f"Queue {queue_name} is not processing; job {job_id} skipped")
        return
    queue.run_job(job_id)


def _dispatch_repeatable(
    queue_name: str,
    repeat_key: str,
    name: str | None = None,
    data: dict[str, Any] | None = None,
    options: dict[str, Any] | None = None,
) -> None:
    queue = _queues.get(queue_name)
    if queue is None:
        logger.warning(
            f"Queue {queue_name} is not processing; firing of {repeat_key} skipped"
        )
        return
    queue.fire_repeatable(repeat_key, name=name, data=data, options=options)


@dataclass
class RepeatableJob:
    """A cron definition registered in the queue."""

    key: str
    name: str
    pattern: str | None
    next_run: datetime | None
    paused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "pattern": self.pattern,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "paused": self.paused,
        }


class JobQueue:
    """Job queue with durable one-shot and repeatable jobs.

    Submitting an id that already has a pending or repeatable entry
    replaces it. An active job is never interrupted: cancelling it only
    prevents future firings and removes queued instances.
    """

    def __init__(
        self,
        name: str,
        db_path: str,
        jobstore_url: str | None = None,
        default_options: JobOptions | None = None,
        timezone_name: str = "UTC",
    ) -> None:
        """Initialize the queue.

        Args:
            name: Queue name, also scopes job records
            db_path: Path to SQLite database for job records
            jobstore_url: SQLAlchemy URL for trigger persistence, or "memory"
                for a non-durable store. Defaults to the same SQLite file.
            default_options: Options applied when a job is added without any
            timezone_name: Timezone for cron patterns
        """
        self.name = name
        self.db_path = db_path
        self.timezone_name = timezone_name
        self.default_options = default_options or JobOptions()
        self._records = JobRecordStore(db_path, name)
        self._processors: dict[str, Processor] = {}
        self._listeners: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self._lock = threading.RLock()
        self._scheduler = self._create_scheduler(jobstore_url or f"sqlite:///{db_path}")
        self._started = False

    def _create_scheduler(self, jobstore_url: str) -> BackgroundScheduler:
        """Create and configure the APScheduler instance."""
        if jobstore_url == "memory":
            default_store = MemoryJobStore()
        else:
            default_store = SQLAlchemyJobStore(
                url=jobstore_url,
                tablename=f"apscheduler_{re.sub(r'[^a-zA-Z0-9]+', '_', self.name)}",
            )

        # Maintenance jobs hold bound methods, which cannot be persisted
        jobstores = {"default": default_store, "memory": MemoryJobStore()}

        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Only one instance per job
            "misfire_grace_time": 3600,  # 1 hour grace time for missed jobs
        }

        return BackgroundScheduler(
            jobstores=jobstores,
            job_defaults=job_defaults,
            timezone=self.timezone_name,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register_processor(self, name: str, processor: Processor) -> None:
        """Register the processor for jobs named ``name``."""
        if name in self._processors:
            logger.warning(f"Overwriting existing processor for {name}")
        self._processors[name] = processor

    def get_processors(self) -> list[str]:
        """Names of registered processors."""
        return list(self._processors)

    def add_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Subscribe to a queue event.

        Events: ``active(job)``, ``completed(job, result)``,
        ``retrying(job, error, delay)``, ``failed(job, error)`` once
        attempts are exhausted, and ``stalled(job)``.
        """
        self._listeners[event].append(callback)

    def start_processing(self, concurrency: int = 1, paused: bool = False) -> None:
        """Start pulling jobs with ``concurrency`` worker slots.

        Stalled-job recovery runs before anything can fire.

        Args:
            concurrency: Number of jobs executed in parallel
            paused: Start without firing any job until ``resume`` is called
        """
        if self._started:
            logger.warning(f"Queue {self.name} already processing")
            return

        self._scheduler.add_executor(
            ThreadPoolExecutor(max_workers=concurrency), "default"
        )
        _queues[self.name] = self
        self._scheduler.start(paused=True)
        self._started = True

        self._recover_stalled_jobs()

        if not paused:
            self._scheduler.resume()
        logger.info(
            f"Queue {self.name} processing with concurrency {concurrency}"
            f"{' (paused)' if paused else ''}"
        )

    @property
    def is_running(self) -> bool:
        """Check if the queue is processing."""
        return self._started

    def pause(self) -> None:
        """Stop firing jobs; running jobs finish."""
        self._scheduler.pause()
        logger.info(f"Queue {self.name} paused")

    def resume(self) -> None:
        """Resume firing jobs."""
        self._scheduler.resume()
        logger.info(f"Queue {self.name} resumed")

    def close(self, wait: bool = True) -> None:
        """Shut the queue down.

        Args:
            wait: Whether to wait for running jobs to complete
        """
        if self._started:
            self._scheduler.shutdown(wait=wait)
            self._started = False
            logger.info(f"Queue {self.name} shut down")
        if _queues.get(self.name) is self:
            del _queues[self.name]

    # ------------------------------------------------------------------
    # Submission and cancellation
    # ------------------------------------------------------------------

    def add_job(
        self,
        name: str,
        data: dict[str, Any],
        options: JobOptions | None = None,
        job_id: str | None = None,
    ) -> QueueJob:
        """Add a one-shot or repeatable job, replacing any pending entry.

        Args:
            name: Processor name
            data: Job payload
            options: Attempts, backoff, delay or repeat settings
            job_id: Stable id; defaults to the repeat key or a new UUID

        Returns:
            The job record (the placeholder record for repeatable jobs)
        """
        opts = replace(options or self.default_options)
        if opts.repeat is not None:
            job_id = job_id or opts.repeat.key
        job_id = job_id or str(uuid.uuid4())

        with self._lock:
            existing = self._records.get(job_id)
            self.cancel_job(job_id)
            running = existing is not None and existing.state is JobState.ACTIVE

            if opts.repeat is not None:
                return self._add_repeatable(job_id, name, data, opts, save=not running)

            if running:
                logger.info(f"Job {job_id} is already running; submission ignored")
                return existing
            return self._add_one_shot(job_id, name, data, opts)

    def _add_one_shot(
        self, job_id: str, name: str, data: dict[str, Any], opts: JobOptions
    ) -> QueueJob:
        job = QueueJob(
            id=job_id,
            name=name,
            queue=self.name,
            data=dict(data),
            opts=opts,
            state=JobState.DELAYED if opts.delay > 0 else JobState.WAITING,
        )
        self._records.save(job)
        self._schedule_run(job_id, _utcnow() + timedelta(seconds=opts.delay))
        logger.info(f"Added job {job_id} ({name})")
        return job

    def _add_repeatable(
        self,
        job_id: str,
        name: str,
        data: dict[str, Any],
        opts: JobOptions,
        save: bool = True,
    ) -> QueueJob:
        key = opts.repeat.key or job_id
        opts.repeat = replace(opts.repeat, key=key)
        placeholder = QueueJob(
            id=job_id,
            name=name,
            queue=self.name,
            data=dict(data),
            opts=opts,
            state=JobState.DELAYED,
            repeat_key=key,
        )
        if save:
            self._records.save(placeholder)
        self._register_repeatable(placeholder)
        logger.info(
            f"Added repeatable job {key} ({name}) with pattern: {opts.repeat.pattern}"
        )
        return placeholder

    def _register_repeatable(self, placeholder: QueueJob) -> None:
        repeat = placeholder.opts.repeat
        trigger = parse_cron(repeat.pattern, self.timezone_name)
        extra: dict[str, Any] = {}
        if repeat.immediately:
            extra["next_run_time"] = _utcnow()

        self._scheduler.add_job(
            _dispatch_repeatable,
            trigger=trigger,
            id=_repeat_id(repeat.key),
            name=placeholder.name,
            kwargs={
                "queue_name": self.name,
                "repeat_key": repeat.key,
                "name": placeholder.name,
                "data": placeholder.data,
                "options": placeholder.opts.to_dict(),
            },
            replace_existing=True,
            **extra,
        )

    def _schedule_run(self, job_id: str, run_date: datetime) -> None:
        self._scheduler.add_job(
            _dispatch_job,
            trigger=DateTrigger(run_date=run_date),
            id=_run_id(job_id),
            name=job_id,
            kwargs={"queue_name": self.name, "job_id": job_id},
            replace_existing=True,
            misfire_grace_time=None,
        )

    def _remove_trigger(self, aps_job_id: str) -> bool:
        try:
            self._scheduler.remove_job(aps_job_id)
            return True
        except JobLookupError:
            return False

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a job by id.

        Removes the repeatable definition keyed by the job's repeat key,
        queued instances of it, and the job record itself. An active job
        is left to finish.

        Returns:
            True if anything was found
        """
        with self._lock:
            found = False
            record = self._records.get(job_id)

            keys = {job_id}
            if record is not None and record.repeat_key:
                keys.add(record.repeat_key)

            for key in keys:
                if self._remove_trigger(_repeat_id(key)):
                    found = True
                for instance in self._records.list_by_repeat_key(key):
                    if instance.id == job_id:
                        continue
                    if instance.state in PENDING_STATES:
                        self._remove_trigger(_run_id(instance.id))
                        self._records.delete(instance.id)
                        found = True

            if self._remove_trigger(_run_id(job_id)):
                found = True

            if record is not None:
                found = True
                if record.state is JobState.ACTIVE:
                    logger.info(f"Job {job_id} is active; leaving it to finish")
                else:
                    self._records.delete(job_id)

            if found:
                logger.info(f"Cancelled job {job_id}")
            return found

    def remove_job(self, job_id: str, force: bool = False) -> bool:
        """Remove a job record and its triggers.

        Args:
            job_id: Job to remove
            force: Also remove the record of an active job

        Returns:
            True if the job was removed
        """
        with self._lock:
            record = self._records.get(job_id)
            if record is not None and record.state is JobState.ACTIVE and not force:
                return False

            removed = self._remove_trigger(_run_id(job_id))
            if record is not None and record.is_repeat_placeholder:
                removed = self._remove_trigger(_repeat_id(record.repeat_key)) or removed
            if self._records.delete(job_id):
                removed = True
            return removed

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> QueueJob | None:
        """Get a job by id."""
        return self._records.get(job_id)

    def get_jobs(self, states: list[JobState] | None = None) -> list[QueueJob]:
        """Get jobs, optionally limited to the given states."""
        return self._records.list_jobs(states)

    def get_job_by_schedule_id(self, schedule_id: str) -> QueueJob | None:
        """Most recent job belonging to a schedule."""
        for job in self._records.list_jobs():
            if job.schedule_id == schedule_id:
                return job
        return None

    def _to_repeatable(self, aps_job: Any) -> RepeatableJob:
        options = aps_job.kwargs.get("options") or {}
        next_run = getattr(aps_job, "next_run_time", None)
        return RepeatableJob(
            key=aps_job.kwargs.get("repeat_key") or aps_job.id[len(REPEAT_PREFIX):],
            name=aps_job.name,
            pattern=(options.get("repeat") or {}).get("pattern"),
            next_run=next_run,
            paused=next_run is None,
        )

    def get_repeatable_jobs(self) -> list[RepeatableJob]:
        """All repeatable (cron) definitions."""
        return [
            self._to_repeatable(job)
            for job in self._scheduler.get_jobs()
            if job.id.startswith(REPEAT_PREFIX)
        ]

    def get_repeatable_job(self, key: str) -> RepeatableJob | None:
        """The repeatable definition for ``key``, if registered."""
        aps_job = self._scheduler.get_job(_repeat_id(key))
        return self._to_repeatable(aps_job) if aps_job else None

    def get_next_run(self, key: str) -> datetime | None:
        """Next fire time of a repeatable definition."""
        repeatable = self.get_repeatable_job(key)
        return repeatable.next_run if repeatable else None

    def get_queue_stats(self) -> dict[str, int]:
        """Job counts per state plus total."""
        counts = self._records.count_by_state()
        stats = {
            state.value: counts.get(state.value, 0)
            for state in (
                JobState.WAITING,
                JobState.ACTIVE,
                JobState.COMPLETED,
                JobState.FAILED,
                JobState.DELAYED,
            )
        }
        stats["total"] = sum(stats.values())
        return stats

    # ------------------------------------------------------------------
    # Repeatable pause/resume
    # ------------------------------------------------------------------

    def pause_repeatable(self, key: str) -> bool:
        """Stop a repeatable definition from firing until resumed."""
        try:
            self._scheduler.pause_job(_repeat_id(key))
        except JobLookupError:
            return False
        self._records.update(key, state=JobState.PAUSED)
        logger.info(f"Paused repeatable job {key}")
        return True

    def resume_repeatable(self, key: str) -> bool:
        """Resume a paused repeatable definition."""
        try:
            self._scheduler.resume_job(_repeat_id(key))
        except JobLookupError:
            return False
        self._records.update(key, state=JobState.DELAYED)
        logger.info(f"Resumed repeatable job {key}")
        return True

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def update_job_progress(self, job_id: str, progress: float) -> bool:
        """Store progress (0-100) for a job."""
        return self._records.update(job_id, progress=float(progress))

    def get_job_progress(self, job_id: str) -> float | None:
        """Current progress of a job, or None if not found."""
        job = self._records.get(job_id)
        return job.progress if job else None

    def create_progress_tracking_processor(
        self,
        handler: Callable[[QueueJob, ProgressUpdater], Any],
    ) -> Processor:
        """Wrap a handler so progress starts at 0 and ends at 100.

        Exceptions from the handler propagate to the retry machinery.
        """

        def processor(job: QueueJob) -> Any:
            def update_progress(progress: float) -> None:
                job.progress = float(progress)
                self.update_job_progress(job.id, job.progress)

            update_progress(0)
            result = handler(job, update_progress)
            if job.progress != 100:
                update_progress(100)
            return result

        return processor

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _emit(self, event: str, *args: Any) -> None:
        for callback in self._listeners.get(event, []):
            try:
                callback(*args)
            except Exception:
                logger.exception(f"Listener for {event} event failed")

    def run_job(self, job_id: str) -> QueueJob | None:
        """Execute a queued job in the calling thread.

        Returns:
            The job record after this attempt, or None if it does not exist
        """
        record = self._records.get(job_id)
        if record is None:
            logger.warning(f"Job {job_id} not found; skipping run")
            return None
        if record.state is JobState.ACTIVE or record.state in FINISHED_STATES:
            logger.warning(f"Job {job_id} is {record.state.value}; skipping run")
            return record

        self._remove_trigger(_run_id(job_id))

        record.state = JobState.ACTIVE
        record.processed_on = _utcnow().isoformat()
        record.finished_on = None
        self._records.update(
            job_id,
            state=record.state,
            processed_on=record.processed_on,
            finished_on=None,
        )
        logger.info(f"Job {job_id} started processing")
        self._emit("active", record)

        try:
            processor = self._processors.get(record.name)
            if processor is None:
                raise ConfigurationError(
                    f"No processor registered for job type '{record.name}'"
                )
            result = processor(record)
        except Exception as e:
            return self._handle_failure(record, e)

        return self._handle_success(record, result)

    def _handle_success(self, record: QueueJob, result: Any) -> QueueJob:
        record.state = JobState.COMPLETED
        record.attempts_made += 1
        record.finished_on = _utcnow().isoformat()
        record.failed_reason = None
        record.return_value = result if isinstance(result, dict) else None

        if record.opts.remove_on_complete:
            self._records.delete(record.id)
        else:
            self._records.update(
                record.id,
                state=record.state,
                attempts_made=record.attempts_made,
                finished_on=record.finished_on,
                failed_reason=None,
                return_value=record.return_value,
            )
        logger.info(f"Job {record.id} completed successfully")
        self._emit("completed", record, result)
        return record

    def _handle_failure(self, record: QueueJob, error: Exception) -> QueueJob:
        record.attempts_made += 1
        record.failed_reason = str(error) or error.__class__.__name__

        if record.attempts_made < record.opts.attempts:
            delay = record.opts.backoff.compute_delay(record.attempts_made)
            record.state = JobState.DELAYED
            self._records.update(
                record.id,
                state=record.state,
                attempts_made=record.attempts_made,
                failed_reason=record.failed_reason,
            )
            self._schedule_run(record.id, _utcnow() + timedelta(seconds=delay))
            logger.warning(
                f"Job {record.id} failed (attempt {record.attempts_made}/"
                f"{record.opts.attempts}), retrying in {delay:.1f}s: {record.failed_reason}"
            )
            self._emit("retrying", record, error, delay)
            return record

        record.state = JobState.FAILED
        record.finished_on = _utcnow().isoformat()
        if record.opts.remove_on_fail:
            self._records.delete(record.id)
        else:
            self._records.update(
                record.id,
                state=record.state,
                attempts_made=record.attempts_made,
                failed_reason=record.failed_reason,
                finished_on=record.finished_on,
            )
        logger.error(
            f"Job {record.id} failed after {record.attempts_made} attempt(s): "
            f"{record.failed_reason}"
        )
        self._emit("failed", record, error)
        return record

    def fire_repeatable(
        self,
        repeat_key: str,
        name: str | None = None,
        data: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> QueueJob | None:
        """Spawn and run one instance of a repeatable definition."""
        placeholder = self._records.get(repeat_key)
        if placeholder is not None and placeholder.is_repeat_placeholder:
            name, data, opts = placeholder.name, placeholder.data, placeholder.opts
        elif name is not None:
            opts = JobOptions.from_dict(options)
        else:
            logger.warning(f"Repeatable job {repeat_key} has no definition; skipped")
            return None

        instance = QueueJob(
            id=f"{repeat_key}:{int(time.time() * 1000)}",
            name=name,
            queue=self.name,
            data=dict(data or {}),
            opts=replace(opts, repeat=None),
            repeat_key=repeat_key,
        )
        self._records.save(instance)
        return self.run_job(instance.id)

    def _recover_stalled_jobs(self) -> None:
        """Re-queue work a previous process left behind.

        Records still active were interrupted mid-run; each stall counts
        as an attempt. Pending records whose trigger is missing get a new
        one.
        """
        now = _utcnow()

        for record in self._records.list_jobs([JobState.ACTIVE]):
            record.attempts_made += 1
            record.failed_reason = "Job stalled: worker stopped while processing"
            if record.attempts_made >= record.opts.attempts:
                record.state = JobState.FAILED
                record.finished_on = now.isoformat()
                self._records.update(
                    record.id,
                    state=record.state,
                    attempts_made=record.attempts_made,
                    failed_reason=record.failed_reason,
                    finished_on=record.finished_on,
                )
                logger.error(f"Job {record.id} stalled too many times; marked failed")
                self._emit(
                    "failed",
                    record,
                    RetriesExhaustedError(
                        record.id, record.attempts_made, record.failed_reason
                    ),
                )
                continue

            record.state = JobState.WAITING
            self._records.update(
                record.id,
                state=record.state,
                attempts_made=record.attempts_made,
                failed_reason=record.failed_reason,
            )
            self._schedule_run(record.id, now)
            logger.warning(f"Job {record.id} stalled; re-queued")
            self._emit("stalled", record)

        for record in self._records.list_jobs([JobState.WAITING, JobState.DELAYED]):
            if record.is_repeat_placeholder:
                if self._scheduler.get_job(_repeat_id(record.repeat_key)) is None:
                    self._register_repeatable(record)
                    logger.info(f"Re-registered repeatable job {record.repeat_key}")
            elif self._scheduler.get_job(_run_id(record.id)) is None:
                self._schedule_run(record.id, now)
                logger.info(f"Re-queued job {record.id}")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clean(
        self,
        grace_seconds: float,
        states: tuple[JobState, ...] = FINISHED_STATES,
    ) -> int:
        """Purge finished job records older than ``grace_seconds``."""
        return self._records.delete_finished_before(grace_seconds, states)

    def schedule_maintenance(
        self, job_id: str, func: Callable[[], Any], minutes: float
    ) -> None:
        """Run ``func`` every ``minutes`` on the queue's worker pool."""
        self._scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=minutes),
            id=f"{MAINTENANCE_PREFIX}{job_id}",
            name=job_id,
            jobstore="memory",
            replace_existing=True,
        )
