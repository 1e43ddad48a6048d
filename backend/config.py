"""Shared configuration for the sync scheduler backend.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Database configuration
DB_PATH = os.getenv("DB_PATH", "./data/scheduler.db")

# Instance registry (JSON or YAML)
INSTANCES_CONFIG = os.getenv("INSTANCES_CONFIG", "./configuration.json")

# Job queue
QUEUE_NAME = os.getenv("QUEUE_NAME", "scheduler-jobs")
QUEUE_CONCURRENCY = int(os.getenv("QUEUE_CONCURRENCY", "4"))
QUEUE_ATTEMPTS = int(os.getenv("QUEUE_ATTEMPTS", "3"))
QUEUE_BACKOFF_DELAY = float(os.getenv("QUEUE_BACKOFF_DELAY", "5"))

# Maintenance: purge finished job records after this many hours
JOB_RETENTION_HOURS = float(os.getenv("JOB_RETENTION_HOURS", "24"))
MAINTENANCE_INTERVAL_MINUTES = float(os.getenv("MAINTENANCE_INTERVAL_MINUTES", "15"))

# External calls
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))
UNIT_FAILURE_POLICY = os.getenv("UNIT_FAILURE_POLICY", "continue").lower()

SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
