"""Pytest configuration and fixtures."""

from __future__ import annotations

import atexit
import json
import os
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Any, Callable

import pytest

# Add backend to path for imports
backend_path = str(Path(__file__).parent.parent / "backend")
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

# Set test database path before importing app
# Use a temp file instead of :memory: for SQLite compatibility with FastAPI
_temp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_temp_db_path = _temp_db.name
os.environ["DB_PATH"] = _temp_db_path
os.environ.setdefault("INSTANCES_CONFIG", str(Path(_temp_db_path).with_suffix(".json")))


def _cleanup_test_db() -> None:
    """Clean up temporary test database file."""
    if os.path.exists(_temp_db_path):
        try:
            os.unlink(_temp_db_path)
        except OSError:
            pass  # File may already be deleted or locked


# Register cleanup to run at exit
atexit.register(_cleanup_test_db)


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db() -> None:
    """Pytest fixture to ensure test database cleanup after session."""
    yield
    _cleanup_test_db()


from connectors.instances import InstanceRegistry  # noqa: E402
from scheduler.broadcaster import StatusBroadcaster  # noqa: E402
from scheduler.models import JobPayload  # noqa: E402
from scheduler.queue import JobQueue  # noqa: E402
from scheduler.scheduler import Scheduler  # noqa: E402
from scheduler.store import ScheduleStore  # noqa: E402
from scheduler.worker import SyncResult  # noqa: E402


class FakeWorker:
    """Stands in for SyncWorker; records payloads and reports fixed progress."""

    def __init__(self) -> None:
        self.calls: list[JobPayload] = []
        self.progress_steps: list[Any] = [25, 50, 75]
        self.error: Exception | None = None
        self.failed_units = 0
        self.on_execute: Callable[[JobPayload], None] | None = None

    def execute_sync(
        self, payload: JobPayload, progress: Callable[[float], None] | None = None
    ) -> SyncResult:
        self.calls.append(payload)
        if self.on_execute is not None:
            self.on_execute(payload)
        for step in self.progress_steps:
            if progress is not None:
                progress(step)
        if self.error is not None:
            raise self.error
        total = 6
        return SyncResult(
            periods=["202403"],
            total_units=total,
            succeeded=total - self.failed_units,
            failed=self.failed_units,
            errors=[f"unit {i} failed" for i in range(self.failed_units)],
        )


class RecordingChannel:
    """Broadcaster channel that keeps every message it is sent."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: list[str] = []
        self.fail = fail

    def send(self, message: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(message)

    def events(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.messages]


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Fresh SQLite file per test."""
    return str(tmp_path / "scheduler.db")


@pytest.fixture
def registry() -> InstanceRegistry:
    """Registry with one DHIS2 instance "A" and one ALMA instance "B"."""
    return InstanceRegistry.from_dict(
        {
            "dhis2-instances": {
                "A": {
                    "url": "https://dhis2.example.org/api/",
                    "username": "admin",
                    "password": "district",
                }
            },
            "alma-instances": {
                "B": {
                    "url": "https://alma.example.org/api/",
                    "username": "alma-user",
                    "password": "alma-pass",
                    "backend": "https://dhis2.example.org",
                }
            },
        }
    )


@pytest.fixture
def fake_worker() -> FakeWorker:
    return FakeWorker()


@pytest.fixture
def queue(db_path: str) -> JobQueue:
    """Job queue started paused so nothing fires on its own."""
    job_queue = JobQueue(f"test-{uuid.uuid4().hex[:8]}", db_path, jobstore_url="memory")
    job_queue.start_processing(concurrency=1, paused=True)
    yield job_queue
    job_queue.close(wait=False)


@pytest.fixture
def broadcaster() -> StatusBroadcaster:
    return StatusBroadcaster()


@pytest.fixture
def channel(broadcaster: StatusBroadcaster) -> RecordingChannel:
    recording = RecordingChannel()
    broadcaster.add_channel(recording)
    return recording


def build_scheduler(
    db_path: str,
    worker: Any,
    broadcaster: StatusBroadcaster,
    queue_name: str | None = None,
) -> Scheduler:
    """Scheduler over a paused, memory-backed queue."""
    job_queue = JobQueue(
        queue_name or f"test-{uuid.uuid4().hex[:8]}", db_path, jobstore_url="memory"
    )
    return Scheduler(
        ScheduleStore(db_path),
        job_queue,
        broadcaster,
        worker,
        maintenance_interval_minutes=0,
    )


@pytest.fixture
def scheduler(
    db_path: str, fake_worker: FakeWorker, broadcaster: StatusBroadcaster
) -> Scheduler:
    """Initialized scheduler whose queue never fires on its own."""
    instance = build_scheduler(db_path, fake_worker, broadcaster)
    instance.initialize(concurrency=1, paused=True)
    yield instance
    instance.shutdown(wait=False)


@pytest.fixture
def sync_schedule_data() -> dict[str, Any]:
    """Fields of a recurring sync schedule."""
    return {
        "name": "Nightly HMIS sync",
        "type": "recurring",
        "cron_expression": "0 0 * * *",
        "dhis2_instance": "A",
        "alma_instance": "B",
        "scorecard": 5,
        "indicator_group": "G1",
        "period_type": "month",
        "run_for": "current",
    }
