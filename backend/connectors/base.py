"""Base HTTP client for external systems.

Wraps an httpx client with a fixed base URL and per-call timeout, and
translates transport and status failures into ExternalServiceError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from errors import ExternalServiceError

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """Synchronous httpx client bound to one external system.

    Subclasses set ``service`` and add typed calls on top of
    ``_request``.
    """

    service = "api"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        **client_kwargs: Any,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API base URL
            timeout: Seconds allowed per call
            transport: Optional transport, used by tests to stub responses
            **client_kwargs: Extra arguments for ``httpx.Client``
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            follow_redirects=True,
            transport=transport,
            **client_kwargs,
        )

    def __enter__(self) -> BaseAPIClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise on failure.

        Raises:
            ExternalServiceError: On timeout, transport error or non-2xx status
        """
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ExternalServiceError(
                f"{self.service} {method} {path} returned status {status}: "
                f"{e.response.text[:200]}",
                service=self.service,
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise ExternalServiceError(
                f"{self.service} {method} {path} timed out after {self.timeout}s",
                service=self.service,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"{self.service} {method} {path} failed: {str(e)[:200]}",
                service=self.service,
            ) from e

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body, raising ExternalServiceError if it is not JSON."""
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"{self.service} returned a non-JSON response",
                service=self.service,
                status_code=response.status_code,
            ) from e
