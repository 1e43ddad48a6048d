"""Sync worker for executing DHIS2 to ALMA sync passes.

Runs one pass for a job payload: resolves the target periods, then for
every (period, org unit level, indicator) work unit downloads the DHIS2
analytics slice and uploads it to the ALMA scorecard, reporting
progress after each unit.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from connectors.alma import ALMAClient
from connectors.dhis2 import DHIS2Client
from connectors.instances import InstanceRegistry

from .errors import ConfigurationError, ExternalServiceError
from .models import JobPayload
from .periods import resolve_periods

logger = logging.getLogger(__name__)

ORG_UNIT_LEVELS = range(1, 7)

ProgressCallback = Callable[[float], None]


class UnitFailurePolicy(str, Enum):
    """What a failed work unit does to the rest of the pass."""

    CONTINUE = "continue"
    ABORT = "abort"


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    periods: list[str]
    total_units: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "periods": self.periods,
            "total_units": self.total_units,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": self.errors[:20],
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SyncWorker:
    """Executes sync passes against configured instances.

    The worker never touches the schedule store; progress flows out only
    through the callback passed to ``execute_sync``.
    """

    def __init__(
        self,
        registry: InstanceRegistry,
        failure_policy: UnitFailurePolicy = UnitFailurePolicy.CONTINUE,
        timeout: float = 30.0,
        dhis2_client_cls: type[DHIS2Client] = DHIS2Client,
        alma_client_cls: type[ALMAClient] = ALMAClient,
    ) -> None:
        """Initialize the sync worker.

        Args:
            registry: Instance registry to resolve instance names
            failure_policy: Whether a failed unit aborts the pass
            timeout: Seconds allowed per external HTTP call
            dhis2_client_cls: DHIS2 client factory
            alma_client_cls: ALMA client factory
        """
        self.registry = registry
        self.failure_policy = UnitFailurePolicy(failure_policy)
        self.timeout = timeout
        self._dhis2_client_cls = dhis2_client_cls
        self._alma_client_cls = alma_client_cls

    def execute_sync(
        self,
        payload: JobPayload,
        progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """Run one sync pass.

        Args:
            payload: Validated sync parameters
            progress: Called with the completed percentage after each unit

        Returns:
            Counts of succeeded and failed units

        Raises:
            ConfigurationError: If an instance or the indicator group is missing
            ExternalServiceError: If the indicator list cannot be fetched, or a
                unit fails under the abort policy
        """
        started = time.monotonic()
        report = progress or (lambda value: None)

        source = self.registry.get_dhis2(payload.dhis2_instance)
        target = self.registry.get_alma(payload.alma_instance)
        if not payload.indicator_group:
            raise ConfigurationError(
                f"Schedule {payload.schedule_id} has no indicator group"
            )

        periods = resolve_periods(payload.period_type, payload.run_for, payload.periods)
        result = SyncResult(periods=periods)

        dhis2 = self._dhis2_client_cls(
            source.url, source.username, source.password, timeout=self.timeout
        )
        alma = self._alma_client_cls(
            target.url,
            target.username,
            target.password,
            target.backend,
            timeout=self.timeout,
        )

        with dhis2, alma:
            indicators = dhis2.get_indicators(payload.indicator_group)
            result.total_units = len(periods) * len(ORG_UNIT_LEVELS) * len(indicators)
            logger.info(
                f"Syncing {len(indicators)} indicator(s) for periods {periods} "
                f"from {source.name} to {target.name} scorecard {payload.scorecard} "
                f"({result.total_units} units)"
            )

            completed = 0
            for period in periods:
                for level in ORG_UNIT_LEVELS:
                    for indicator in indicators:
                        completed += 1
                        self._run_unit(
                            dhis2, alma, payload, indicator, period, level, result
                        )
                        report(completed / result.total_units * 100)

        if result.total_units == 0:
            report(100.0)

        result.duration_seconds = time.monotonic() - started
        logger.info(
            f"Sync for schedule {payload.schedule_id} finished: "
            f"{result.succeeded}/{result.total_units} units uploaded, "
            f"{result.failed} failed"
        )
        return result

    def _run_unit(
        self,
        dhis2: DHIS2Client,
        alma: ALMAClient,
        payload: JobPayload,
        indicator: dict[str, Any],
        period: str,
        level: int,
        result: SyncResult,
    ) -> None:
        """Download one analytics slice and upload it."""
        indicator_id = indicator.get("id")
        label = f"{indicator.get('name', indicator_id)} for {period} at level {level}"

        try:
            logger.debug(f"Downloading data for {label}")
            data = dhis2.get_analytics(indicator_id, period, level)
            alma.login()
            logger.debug(f"Uploading data for {label} to ALMA")
            alma.upload_data_values(payload.scorecard, {"dataValues": [data]})
            result.succeeded += 1
        except ExternalServiceError as e:
            result.failed += 1
            result.errors.append(f"{label}: {e}")
            if self.failure_policy is UnitFailurePolicy.ABORT:
                logger.error(f"Unit {label} failed, aborting sync: {e}")
                raise
            logger.warning(f"Unit {label} failed, continuing: {e}")
