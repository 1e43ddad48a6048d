"""Schedule persistence.

Stores Schedule records in SQLite and provides the status helpers the
scheduler uses while jobs run.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ConfigurationError, NotFoundError
from .models import Schedule, ScheduleCreate, ScheduleStatus

logger = logging.getLogger(__name__)

_JSON_COLUMNS = ("periods", "data")
_BOOL_COLUMNS = ("is_active", "run_immediately")
_DATETIME_COLUMNS = ("last_run", "next_run", "created_at", "updated_at")

_COLUMNS = (
    "id",
    "name",
    "description",
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
    "is_active",
    "status",
    "last_status",
    "progress",
    "message",
    "last_run",
    "next_run",
    "current_job_id",
    "retry_attempts",
    "created_at",
    "updated_at",
)

_TERMINAL_STATUSES = (ScheduleStatus.COMPLETED, ScheduleStatus.FAILED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in _JSON_COLUMNS:
        return json.dumps(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


class ScheduleStore:
    """SQLite-backed store for Schedule records."""

    def __init__(self, db_path: str) -> None:
        """Initialize the schedule store.

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = db_path
        self._ensure_tables()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_tables(self) -> None:
        """Ensure the schedules table exists."""
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schedules (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    type TEXT NOT NULL,
                    cron_expression TEXT,
                    run_immediately INTEGER DEFAULT 0,
                    periods TEXT,
                    processor TEXT NOT NULL,
                    dhis2_instance TEXT,
                    alma_instance TEXT,
                    scorecard INTEGER,
                    indicator_group TEXT,
                    period_type TEXT NOT NULL,
                    run_for TEXT NOT NULL,
                    max_retries INTEGER DEFAULT 3,
                    retry_delay INTEGER DEFAULT 60,
                    data TEXT,
                    is_active INTEGER DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'idle',
                    last_status TEXT,
                    progress REAL DEFAULT 0,
                    message TEXT,
                    last_run TEXT,
                    next_run TEXT,
                    current_job_id TEXT,
                    retry_attempts INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_schedules_active
                ON schedules(is_active)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_schedules_status
                ON schedules(status)
            """)
            conn.commit()
        finally:
            conn.close()

    def _row_to_schedule(self, row: sqlite3.Row) -> Schedule:
        values = dict(row)
        for column in _JSON_COLUMNS:
            values[column] = json.loads(values[column]) if values[column] else None
        values["periods"] = values["periods"] or []
        values["data"] = values["data"] or {}
        for column in _BOOL_COLUMNS:
            values[column] = bool(values[column])
        return Schedule.model_validate(values)

    def _select(self, where: str = "", params: tuple[Any, ...] = ()) -> list[Schedule]:
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT * FROM schedules {where} ORDER BY created_at DESC, rowid DESC",
                params,
            )
            return [self._row_to_schedule(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def create(self, request: ScheduleCreate) -> Schedule:
        """Persist a new schedule in ``idle`` status.

        Args:
            request: Schedule fields; ``id`` is generated when absent

        Returns:
            The stored schedule

        Raises:
            ConfigurationError: If a schedule with the same id exists
        """
        now = _now()
        fields = request.model_dump(exclude={"id"})
        schedule = Schedule(
            id=request.id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **fields,
        )

        values = schedule.model_dump()
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO schedules ({", ".join(_COLUMNS)})
                VALUES ({", ".join("?" for _ in _COLUMNS)})
                """,
                tuple(_to_db(column, values[column]) for column in _COLUMNS),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConfigurationError(f"Schedule {schedule.id} already exists") from e
        finally:
            conn.close()

        logger.info(f"Created schedule {schedule.id} ({schedule.name})")
        return schedule

    def get(self, schedule_id: str) -> Schedule | None:
        """Get a schedule by id."""
        schedules = self._select("WHERE id = ?", (schedule_id,))
        return schedules[0] if schedules else None

    def require(self, schedule_id: str) -> Schedule:
        """Get a schedule by id or raise NotFoundError."""
        schedule = self.get(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        return schedule

    def list_all(self) -> list[Schedule]:
        """All schedules, newest first."""
        return self._select()

    def list_active(self, active: bool = True) -> list[Schedule]:
        """Schedules by active flag."""
        return self._select("WHERE is_active = ?", (int(active),))

    def list_by_status(self, status: ScheduleStatus | str) -> list[Schedule]:
        """Schedules currently in ``status``."""
        return self._select("WHERE status = ?", (ScheduleStatus(status).value,))

    def update(self, schedule_id: str, changes: dict[str, Any]) -> Schedule:
        """Merge ``changes`` into a schedule in one statement.

        Unknown keys are ignored; ``updated_at`` is always bumped.

        Raises:
            NotFoundError: If the schedule does not exist
        """
        changes = {
            column: value
            for column, value in changes.items()
            if column in _COLUMNS and column not in ("id", "created_at")
        }
        changes["updated_at"] = _now()

        updates = [f"{column} = ?" for column in changes]
        params = [_to_db(column, value) for column, value in changes.items()]
        params.append(schedule_id)

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE schedules SET {', '.join(updates)} WHERE id = ?",
                params,
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFoundError("Schedule", schedule_id)
        finally:
            conn.close()

        return self.require(schedule_id)

    def delete(self, schedule_id: str) -> None:
        """Delete a schedule.

        Raises:
            NotFoundError: If the schedule does not exist
        """
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM schedules WHERE id = ?", (schedule_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFoundError("Schedule", schedule_id)
        finally:
            conn.close()

        logger.info(f"Deleted schedule {schedule_id}")

    def set_status(
        self,
        schedule_id: str,
        status: ScheduleStatus,
        message: str | None = None,
        **extra: Any,
    ) -> Schedule:
        """Set status and optional message.

        Terminal statuses also stamp ``last_run`` and ``last_status``.
        """
        status = ScheduleStatus(status)
        changes: dict[str, Any] = {"status": status, **extra}
        if message is not None:
            changes["message"] = message
        if status in _TERMINAL_STATUSES:
            changes["last_run"] = _now()
            changes["last_status"] = status
        return self.update(schedule_id, changes)

    def set_progress(
        self, schedule_id: str, progress: float, message: str | None = None
    ) -> Schedule:
        """Set progress (0-100) and optional message."""
        changes: dict[str, Any] = {"progress": float(progress)}
        if message is not None:
            changes["message"] = message
        return self.update(schedule_id, changes)

    def set_current_job_id(self, schedule_id: str, job_id: str | None) -> Schedule:
        """Point the schedule at its job in the queue."""
        return self.update(schedule_id, {"current_job_id": job_id})
