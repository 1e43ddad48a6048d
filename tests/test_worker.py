"""Tests for the sync worker."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from connectors.instances import InstanceRegistry
from scheduler.errors import ConfigurationError, ExternalServiceError
from scheduler.models import JobPayload
from scheduler.worker import ORG_UNIT_LEVELS, SyncWorker, UnitFailurePolicy


class FakeDHIS2:
    instances: list["FakeDHIS2"] = []
    indicators: list[dict[str, Any]] = []
    failing: set[tuple[str, str, int]] = set()

    def __init__(self, base_url, username, password, timeout=30.0) -> None:
        self.base_url = base_url
        self.auth = (username, password)
        self.timeout = timeout
        self.requests: list[tuple[str, str, int]] = []
        self.closed = False
        FakeDHIS2.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def get_indicators(self, indicator_group: str) -> list[dict[str, Any]]:
        self.group = indicator_group
        return list(self.indicators)

    def get_analytics(self, indicator: str, period: str, level: int) -> dict[str, Any]:
        key = (indicator, period, level)
        self.requests.append(key)
        if key in self.failing:
            raise ExternalServiceError("analytics failed", service="dhis2", status_code=500)
        return {"indicator": indicator, "period": period, "level": level}


class FakeALMA:
    instances: list["FakeALMA"] = []

    def __init__(self, base_url, username, password, backend, timeout=30.0) -> None:
        self.base_url = base_url
        self.backend = backend
        self.logins = 0
        self.uploads: list[tuple[int, dict[str, Any]]] = []
        FakeALMA.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        pass

    def login(self) -> str:
        self.logins += 1
        return "sid=abc"

    def upload_data_values(self, scorecard: int, data_values: dict[str, Any]) -> Any:
        self.uploads.append((scorecard, data_values))
        return {}


@pytest.fixture(autouse=True)
def reset_fakes():
    FakeDHIS2.instances = []
    FakeDHIS2.indicators = [{"id": "ind1", "name": "ANC coverage"}]
    FakeDHIS2.failing = set()
    FakeALMA.instances = []
    yield


def make_worker(
    registry: InstanceRegistry,
    policy: UnitFailurePolicy = UnitFailurePolicy.CONTINUE,
) -> SyncWorker:
    return SyncWorker(
        registry,
        failure_policy=policy,
        timeout=5,
        dhis2_client_cls=FakeDHIS2,
        alma_client_cls=FakeALMA,
    )


def make_payload(**overrides: Any) -> JobPayload:
    fields = {
        "schedule_id": "s1",
        "dhis2_instance": "A",
        "alma_instance": "B",
        "scorecard": 5,
        "indicator_group": "G1",
        "period_type": "month",
        "periods": ["202401"],
    }
    fields.update(overrides)
    return JobPayload(**fields)


class TestExecuteSync:
    """Tests for a full sync pass."""

    def test_uploads_every_unit(self, registry: InstanceRegistry) -> None:
        """One period and one indicator yields one unit per org unit level."""
        result = make_worker(registry).execute_sync(make_payload())

        alma = FakeALMA.instances[0]
        assert result.total_units == len(ORG_UNIT_LEVELS) == 6
        assert result.succeeded == 6
        assert result.failed == 0
        assert [upload[0] for upload in alma.uploads] == [5] * 6
        assert alma.uploads[0][1] == {
            "dataValues": [{"indicator": "ind1", "period": "202401", "level": 1}]
        }
        assert alma.logins == 6

    def test_uses_registry_connection_settings(
        self, registry: InstanceRegistry
    ) -> None:
        make_worker(registry).execute_sync(make_payload())

        dhis2 = FakeDHIS2.instances[0]
        alma = FakeALMA.instances[0]
        assert dhis2.base_url == "https://dhis2.example.org/api/"
        assert dhis2.auth == ("admin", "district")
        assert dhis2.timeout == 5
        assert dhis2.group == "G1"
        assert dhis2.closed is True
        assert alma.backend == "https://dhis2.example.org"

    def test_iterates_periods_then_levels_then_indicators(
        self, registry: InstanceRegistry
    ) -> None:
        FakeDHIS2.indicators = [{"id": "i1"}, {"id": "i2"}]

        result = make_worker(registry).execute_sync(
            make_payload(periods=["202401", "202402"])
        )

        requests = FakeDHIS2.instances[0].requests
        assert result.total_units == 2 * 6 * 2
        assert requests[:3] == [("i1", "202401", 1), ("i2", "202401", 1), ("i1", "202401", 2)]
        assert requests[-1] == ("i2", "202402", 6)

    def test_progress_is_monotonic_and_reaches_100(
        self, registry: InstanceRegistry
    ) -> None:
        reported: list[float] = []

        make_worker(registry).execute_sync(make_payload(), progress=reported.append)

        assert len(reported) == 6
        assert reported == sorted(reported)
        assert reported[-1] == pytest.approx(100.0)

    def test_empty_indicator_group_reports_complete(
        self, registry: InstanceRegistry
    ) -> None:
        FakeDHIS2.indicators = []
        reported: list[float] = []

        result = make_worker(registry).execute_sync(
            make_payload(), progress=reported.append
        )

        assert result.total_units == 0
        assert reported == [100.0]

    def test_result_to_dict(self, registry: InstanceRegistry) -> None:
        result = make_worker(registry).execute_sync(make_payload())

        summary = result.to_dict()
        assert summary["periods"] == ["202401"]
        assert summary["succeeded"] == 6
        assert summary["duration_seconds"] >= 0


class TestFailurePolicy:
    """Tests for how failed units affect the pass."""

    def test_continue_records_failure_and_keeps_going(
        self, registry: InstanceRegistry
    ) -> None:
        FakeDHIS2.failing = {("ind1", "202401", 2)}

        result = make_worker(registry).execute_sync(make_payload())

        assert result.succeeded == 5
        assert result.failed == 1
        assert "level 2" in result.errors[0]
        assert len(FakeDHIS2.instances[0].requests) == 6

    def test_abort_raises_on_first_failure(self, registry: InstanceRegistry) -> None:
        FakeDHIS2.failing = {("ind1", "202401", 2)}

        with pytest.raises(ExternalServiceError):
            make_worker(registry, UnitFailurePolicy.ABORT).execute_sync(make_payload())

        assert len(FakeDHIS2.instances[0].requests) == 2
        assert len(FakeALMA.instances[0].uploads) == 1


class TestValidation:
    """Tests for configuration errors raised before any call."""

    def test_unknown_dhis2_instance(self, registry: InstanceRegistry) -> None:
        with pytest.raises(ConfigurationError, match="DHIS2 instance 'X'"):
            make_worker(registry).execute_sync(make_payload(dhis2_instance="X"))
        assert FakeDHIS2.instances == []

    def test_unknown_alma_instance(self, registry: InstanceRegistry) -> None:
        with pytest.raises(ConfigurationError, match="ALMA instance 'X'"):
            make_worker(registry).execute_sync(make_payload(alma_instance="X"))

    def test_missing_indicator_group(self, registry: InstanceRegistry) -> None:
        with pytest.raises(ConfigurationError, match="indicator group"):
            make_worker(registry).execute_sync(make_payload(indicator_group=None))

    def test_invalid_period_rejected(self, registry: InstanceRegistry) -> None:
        with pytest.raises(ConfigurationError):
            make_worker(registry).execute_sync(make_payload(periods=["not-a-period"]))


class TestClientLifecycle:
    """Tests for client construction and cleanup."""

    def test_indicator_fetch_failure_propagates_and_closes(
        self, registry: InstanceRegistry
    ) -> None:
        dhis2_cls, alma_cls = MagicMock(), MagicMock()
        dhis2_cls.return_value.get_indicators.side_effect = ExternalServiceError(
            "dhis2 GET failed", service="dhis2", status_code=500
        )
        worker = SyncWorker(
            registry, dhis2_client_cls=dhis2_cls, alma_client_cls=alma_cls
        )

        with pytest.raises(ExternalServiceError):
            worker.execute_sync(make_payload())

        dhis2_cls.assert_called_once_with(
            "https://dhis2.example.org/api/", "admin", "district", timeout=30.0
        )
        assert dhis2_cls.return_value.__exit__.called
        assert alma_cls.return_value.__exit__.called
        alma_cls.return_value.upload_data_values.assert_not_called()
