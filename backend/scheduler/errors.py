"""Error types used across the scheduler package."""

from errors import (
    ConfigurationError,
    ExternalServiceError,
    NotFoundError,
    RecoveryInconsistency,
    RetriesExhaustedError,
    SchedulerError,
)

__all__ = [
    "SchedulerError",
    "NotFoundError",
    "ConfigurationError",
    "ExternalServiceError",
    "RetriesExhaustedError",
    "RecoveryInconsistency",
]
