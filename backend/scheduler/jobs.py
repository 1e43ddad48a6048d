"""Job records for the job runtime.

Provides SQLite persistence for job instances (state, progress, attempts,
timestamps, failure reason) alongside the option types used to submit
them. Trigger definitions live in the APScheduler job store; this table
is the runtime's own bookkeeping.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """Job instance states."""

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


PENDING_STATES = (JobState.WAITING, JobState.DELAYED, JobState.PAUSED)
LIVE_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)
FINISHED_STATES = (JobState.COMPLETED, JobState.FAILED)


@dataclass
class BackoffOptions:
    """Delay between attempts."""

    type: str = "exponential"
    delay: float = 5.0

    def compute_delay(self, attempts_made: int) -> float:
        """Seconds to wait before the attempt following ``attempts_made``."""
        if self.type == "fixed":
            return self.delay
        return self.delay * (2 ** max(attempts_made - 1, 0))


@dataclass
class RepeatOptions:
    """Cron recurrence for a repeatable job definition."""

    pattern: str
    immediately: bool = False
    key: str | None = None


@dataclass
class JobOptions:
    """Submission options for a job."""

    attempts: int = 3
    backoff: BackoffOptions = field(default_factory=BackoffOptions)
    repeat: RepeatOptions | None = None
    delay: float = 0.0
    remove_on_complete: bool = False
    remove_on_fail: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobOptions:
        data = dict(data or {})
        backoff = data.pop("backoff", None) or {}
        repeat = data.pop("repeat", None)
        return cls(
            backoff=BackoffOptions(**backoff),
            repeat=RepeatOptions(**repeat) if repeat else None,
            **data,
        )


@dataclass
class QueueJob:
    """One job instance as seen by the runtime."""

    id: str
    name: str
    queue: str
    data: dict[str, Any] = field(default_factory=dict)
    opts: JobOptions = field(default_factory=JobOptions)
    state: JobState = JobState.WAITING
    progress: float = 0.0
    attempts_made: int = 0
    repeat_key: str | None = None
    failed_reason: str | None = None
    return_value: dict[str, Any] | None = None
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    processed_on: str | None = None
    finished_on: str | None = None

    @property
    def schedule_id(self) -> str:
        """Schedule this job belongs to."""
        return str(self.data.get("schedule_id") or self.repeat_key or self.id)

    @property
    def is_repeat_placeholder(self) -> bool:
        """True for the record standing in for a repeatable definition."""
        return self.opts.repeat is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "schedule_id": self.schedule_id,
            "state": self.state.value,
            "progress": self.progress,
            "attempts_made": self.attempts_made,
            "max_attempts": self.opts.attempts,
            "repeat_key": self.repeat_key,
            "failed_reason": self.failed_reason,
            "created_at": self.created_at,
            "processed_on": self.processed_on,
            "finished_on": self.finished_on,
        }


class JobRecordStore:
    """SQLite persistence for job instance records of one queue."""

    def __init__(self, db_path: str, queue_name: str) -> None:
        """Initialize the record store.

        Args:
            db_path: Path to SQLite database
            queue_name: Queue whose records this store scopes to
        """
        self.db_path = db_path
        self.queue_name = queue_name
        self._ensure_tables()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        """Ensure the job record table exists."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS queue_jobs (
                    queue TEXT NOT NULL,
                    id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL,
                    opts TEXT NOT NULL,
                    state TEXT NOT NULL,
                    progress REAL DEFAULT 0,
                    attempts_made INTEGER DEFAULT 0,
                    repeat_key TEXT,
                    failed_reason TEXT,
                    return_value TEXT,
                    created_at TEXT NOT NULL,
                    processed_on TEXT,
                    finished_on TEXT,
                    PRIMARY KEY (queue, id)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_queue_jobs_state
                ON queue_jobs(queue, state)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_queue_jobs_repeat_key
                ON queue_jobs(queue, repeat_key)
            """)
            conn.commit()
        finally:
            conn.close()

    def _row_to_job(self, row: sqlite3.Row) -> QueueJob:
        return QueueJob(
            id=row["id"],
            name=row["name"],
            queue=row["queue"],
            data=json.loads(row["data"]),
            opts=JobOptions.from_dict(json.loads(row["opts"])),
            state=JobState(row["state"]),
            progress=row["progress"] or 0.0,
            attempts_made=row["attempts_made"] or 0,
            repeat_key=row["repeat_key"],
            failed_reason=row["failed_reason"],
            return_value=json.loads(row["return_value"])
            if row["return_value"]
            else None,
            created_at=row["created_at"],
            processed_on=row["processed_on"],
            finished_on=row["finished_on"],
        )

    def save(self, job: QueueJob) -> None:
        """Insert or replace a job record."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO queue_jobs (
                    queue, id, name, data, opts, state, progress,
                    attempts_made, repeat_key, failed_reason, return_value,
                    created_at, processed_on, finished_on
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    self.queue_name,
                    job.id,
                    job.name,
                    json.dumps(job.data),
                    json.dumps(job.opts.to_dict()),
                    job.state.value,
                    job.progress,
                    job.attempts_made,
                    job.repeat_key,
                    job.failed_reason,
                    json.dumps(job.return_value)
                    if job.return_value is not None
                    else None,
                    job.created_at,
                    job.processed_on,
                    job.finished_on,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, job_id: str) -> QueueJob | None:
        """Get a job record by id."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM queue_jobs WHERE queue = ? AND id = ?",
                (self.queue_name, job_id),
            )
            row = cursor.fetchone()
            return self._row_to_job(row) if row else None
        finally:
            conn.close()

    def list_jobs(self, states: Iterable[JobState] | None = None) -> list[QueueJob]:
        """List job records, newest first, optionally filtered by state."""
        query = "SELECT * FROM queue_jobs WHERE queue = ?"
        params: list[Any] = [self.queue_name]

        if states is not None:
            values = [JobState(s).value for s in states]
            if not values:
                return []
            query += f" AND state IN ({', '.join('?' for _ in values)})"
            params.extend(values)

        query += " ORDER BY created_at DESC"

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_job(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list_by_repeat_key(self, repeat_key: str) -> list[QueueJob]:
        """List records sharing a repeat key, placeholder included."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM queue_jobs
                WHERE queue = ? AND repeat_key = ?
                ORDER BY created_at DESC
                """,
                (self.queue_name, repeat_key),
            )
            return [self._row_to_job(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def update(self, job_id: str, **fields: Any) -> bool:
        """Update selected columns of a job record.

        Returns:
            True if a record was updated
        """
        if not fields:
            return False

        updates = []
        params: list[Any] = []
        for column, value in fields.items():
            if isinstance(value, JobState):
                value = value.value
            elif column == "return_value" and value is not None:
                value = json.dumps(value)
            updates.append(f"{column} = ?")
            params.append(value)
        params.extend([self.queue_name, job_id])

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                UPDATE queue_jobs
                SET {", ".join(updates)}
                WHERE queue = ? AND id = ?
                """,
                params,
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete(self, job_id: str) -> bool:
        """Delete a job record."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM queue_jobs WHERE queue = ? AND id = ?",
                (self.queue_name, job_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete_finished_before(
        self,
        grace_seconds: float,
        states: Iterable[JobState] = FINISHED_STATES,
    ) -> int:
        """Delete finished records older than ``grace_seconds``.

        Returns:
            Number of records deleted
        """
        cutoff = (
            datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
        ).isoformat()
        values = [JobState(s).value for s in states]
        if not values:
            return 0

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                DELETE FROM queue_jobs
                WHERE queue = ? AND finished_on IS NOT NULL AND finished_on < ?
                AND state IN ({", ".join("?" for _ in values)})
                """,
                [self.queue_name, cutoff, *values],
            )
            deleted = cursor.rowcount
            conn.commit()
            if deleted:
                logger.info(f"Cleaned up {deleted} finished job record(s)")
            return deleted
        finally:
            conn.close()

    def count_by_state(self) -> dict[str, int]:
        """Count records per state."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT state, COUNT(*) AS total FROM queue_jobs
                WHERE queue = ? GROUP BY state
                """,
                (self.queue_name,),
            )
            return {row["state"]: row["total"] for row in cursor.fetchall()}
        finally:
            conn.close()
