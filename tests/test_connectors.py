"""Tests for the DHIS2 and ALMA clients and the instance registry."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from connectors.alma import ALMAClient
from connectors.dhis2 import DHIS2Client
from connectors.instances import InstanceRegistry, load_instance_registry
from scheduler.errors import ConfigurationError, ExternalServiceError

DHIS2_URL = "https://dhis2.example.org/api"
ALMA_URL = "https://alma.example.org/api/"


class Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class TestDHIS2Client:
    """Tests for the DHIS2 client."""

    def test_get_indicators(self) -> None:
        handler = Recorder(
            httpx.Response(200, json={"indicators": [{"id": "i1", "name": "ANC"}]})
        )
        client = DHIS2Client(
            DHIS2_URL, "admin", "district", transport=httpx.MockTransport(handler)
        )

        indicators = client.get_indicators("G1")

        request = handler.requests[0]
        assert indicators == [{"id": "i1", "name": "ANC"}]
        assert request.url.path == "/api/indicatorGroups/G1/indicators.json"
        assert request.url.params["paging"] == "false"
        assert request.url.params["fields"].startswith("id,name")
        assert request.headers["authorization"].startswith("Basic ")

    def test_get_indicators_missing_key(self) -> None:
        client = DHIS2Client(
            DHIS2_URL,
            "admin",
            "district",
            transport=httpx.MockTransport(Recorder(httpx.Response(200, json={}))),
        )

        assert client.get_indicators("G1") == []

    def test_get_analytics_dimensions(self) -> None:
        handler = Recorder(httpx.Response(200, json={"rows": [["a", "b", "1"]]}))
        client = DHIS2Client(
            DHIS2_URL, "admin", "district", transport=httpx.MockTransport(handler)
        )

        data = client.get_analytics("i1", "202401", 3)

        request = handler.requests[0]
        assert data == {"rows": [["a", "b", "1"]]}
        assert request.url.path == "/api/analytics.json"
        assert request.url.params.get_list("dimension") == [
            "dx:i1",
            "pe:202401",
            "ou:LEVEL-3",
        ]

    def test_status_error_becomes_external_service_error(self) -> None:
        client = DHIS2Client(
            DHIS2_URL,
            "admin",
            "district",
            transport=httpx.MockTransport(Recorder(httpx.Response(503, text="down"))),
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            client.get_indicators("G1")

        assert exc_info.value.status_code == 503
        assert exc_info.value.service == "dhis2"

    def test_timeout_becomes_external_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = DHIS2Client(
            DHIS2_URL, "admin", "district", timeout=2, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(ExternalServiceError, match="timed out after 2"):
            client.get_analytics("i1", "202401", 1)

    def test_non_json_body(self) -> None:
        client = DHIS2Client(
            DHIS2_URL,
            "admin",
            "district",
            transport=httpx.MockTransport(Recorder(httpx.Response(200, text="<html>"))),
        )

        with pytest.raises(ExternalServiceError, match="non-JSON"):
            client.get_analytics("i1", "202401", 1)

    def test_requires_base_url(self) -> None:
        with pytest.raises(ValueError):
            DHIS2Client("", "admin", "district")


class TestALMAClient:
    """Tests for the ALMA client."""

    def make_client(self, handler: Recorder) -> ALMAClient:
        return ALMAClient(
            ALMA_URL,
            "alma-user",
            "alma-pass",
            "https://dhis2.example.org",
            transport=httpx.MockTransport(handler),
        )

    def test_login_builds_cookie_header(self) -> None:
        handler = Recorder(
            httpx.Response(
                200,
                headers=[
                    ("set-cookie", "sid=abc; Path=/; HttpOnly"),
                    ("set-cookie", "lang=en; Path=/"),
                ],
            )
        )
        client = self.make_client(handler)

        cookie = client.login()

        request = handler.requests[0]
        assert cookie == "sid=abc; lang=en"
        assert request.method == "POST"
        assert request.url.path == "/api/session"
        assert json.loads(request.content) == {
            "backend": "https://dhis2.example.org",
            "username": "alma-user",
            "password": "alma-pass",
        }

    def test_login_without_cookie_fails(self) -> None:
        client = self.make_client(Recorder(httpx.Response(200)))

        with pytest.raises(ExternalServiceError, match="no session cookie"):
            client.login()

    def test_login_rejected(self) -> None:
        client = self.make_client(Recorder(httpx.Response(401, text="bad credentials")))

        with pytest.raises(ExternalServiceError) as exc_info:
            client.login()

        assert exc_info.value.status_code == 401

    def test_upload_logs_in_and_sends_file(self) -> None:
        handler = Recorder(
            httpx.Response(200, headers={"set-cookie": "sid=abc; Path=/"}),
            httpx.Response(200, json={"imported": 3}),
        )
        client = self.make_client(handler)

        body = client.upload_data_values(5, {"dataValues": [{"rows": []}]})

        upload = handler.requests[1]
        assert body == {"imported": 3}
        assert upload.method == "PUT"
        assert upload.url.path == "/api/scorecard/5/upload/dhis"
        assert "sid=abc" in upload.headers["cookie"]
        assert b'filename="temp.json"' in upload.content
        assert b'{"dataValues": [{"rows": []}]}' in upload.content

    def test_upload_non_json_response(self) -> None:
        handler = Recorder(
            httpx.Response(200, headers={"set-cookie": "sid=abc"}),
            httpx.Response(200, text="OK"),
        )
        client = self.make_client(handler)

        assert client.upload_data_values(5, {"dataValues": []}) == {}


class TestInstanceRegistry:
    """Tests for instance configuration loading."""

    config = {
        "dhis2-instances": {
            "hmis": {"url": "https://hmis.example.org/api", "username": "u", "password": "p"}
        },
        "alma-instances": {
            "alma": {
                "url": "https://alma.example.org/api",
                "username": "u",
                "password": "secret",
                "backend": "https://hmis.example.org",
            }
        },
    }

    def test_load_json(self, tmp_path: Path) -> None:
        path = tmp_path / "configuration.json"
        path.write_text(json.dumps(self.config))

        registry = load_instance_registry(path)

        assert registry.dhis2_names() == ["hmis"]
        assert registry.get_alma("alma").backend == "https://hmis.example.org"

    def test_load_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "instances.yaml"
        path.write_text(
            "dhis2-instances:\n"
            "  hmis:\n"
            "    url: https://hmis.example.org/api\n"
            "    username: u\n"
            "    password: p\n"
        )

        registry = load_instance_registry(path)

        assert registry.get_dhis2("hmis").url == "https://hmis.example.org/api"
        assert registry.alma_names() == []

    def test_missing_file_gives_empty_registry(self, tmp_path: Path) -> None:
        registry = load_instance_registry(tmp_path / "absent.json")

        assert registry.dhis2_names() == []
        assert registry.alma_names() == []

    def test_unsupported_format(self, tmp_path: Path) -> None:
        path = tmp_path / "instances.ini"
        path.write_text("[hmis]")

        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_instance_registry(path)

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "configuration.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_instance_registry(path)

    def test_entry_missing_fields(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid instance configuration"):
            InstanceRegistry.from_dict({"dhis2-instances": {"hmis": {"url": "x"}}})

    def test_unknown_instance(self) -> None:
        registry = InstanceRegistry.from_dict(self.config)

        with pytest.raises(ConfigurationError, match="not configured"):
            registry.get_dhis2("other")

    def test_to_dict_hides_passwords(self) -> None:
        listing = InstanceRegistry.from_dict(self.config).to_dict()

        assert listing["dhis2-instances"][0]["name"] == "hmis"
        assert "password" not in listing["alma-instances"][0]
        assert "secret" not in json.dumps(listing)
