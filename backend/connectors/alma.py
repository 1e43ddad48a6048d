"""ALMA target client.

Opens a session and uploads DHIS2 data values to a scorecard.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from errors import ExternalServiceError

from .base import BaseAPIClient

logger = logging.getLogger(__name__)


class ALMAClient(BaseAPIClient):
    """Client for the ALMA scorecard API."""

    service = "alma"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        backend: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.username = username
        self.password = password
        self.backend = backend
        self._session_cookie: str | None = None

    def login(self) -> str:
        """Open a session and keep its cookie for later calls.

        Returns:
            The Cookie header value for the session

        Raises:
            ExternalServiceError: If the login fails or sets no cookie
        """
        response = self._request(
            "POST",
            "session",
            json={
                "backend": self.backend,
                "username": self.username,
                "password": self.password,
            },
        )
        set_cookies = response.headers.get_list("set-cookie")
        if not set_cookies:
            raise ExternalServiceError(
                "alma login returned no session cookie",
                service=self.service,
                status_code=response.status_code,
            )

        self._session_cookie = "; ".join(
            value.split(";", 1)[0].strip() for value in set_cookies
        )
        return self._session_cookie

    def upload_data_values(self, scorecard: int, data_values: dict[str, Any]) -> Any:
        """Upload a data value batch to a scorecard.

        Args:
            scorecard: ALMA scorecard id
            data_values: Body of the uploaded file, ``{"dataValues": [...]}``

        Returns:
            Decoded response body, or an empty dict if it is not JSON
        """
        if self._session_cookie is None:
            self.login()

        response = self._request(
            "PUT",
            f"scorecard/{scorecard}/upload/dhis",
            files={
                "file": (
                    "temp.json",
                    json.dumps(data_values).encode("utf-8"),
                    "application/json",
                )
            },
            headers={"Cookie": self._session_cookie},
        )
        try:
            return response.json()
        except ValueError:
            return {}
