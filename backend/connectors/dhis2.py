"""DHIS2 source client.

Reads indicator group membership and analytics slices from a DHIS2
instance using basic authentication.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .base import BaseAPIClient

logger = logging.getLogger(__name__)

INDICATOR_FIELDS = (
    "id,name,numerator,denominator,decimals,indicatorType[id,name],annualized"
)


class DHIS2Client(BaseAPIClient):
    """Client for the DHIS2 Web API."""

    service = "dhis2"

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            transport=transport,
            auth=(username, password),
        )

    def get_indicators(self, indicator_group: str) -> list[dict[str, Any]]:
        """List the indicators of an indicator group.

        Args:
            indicator_group: DHIS2 indicator group id

        Returns:
            Indicator dicts with at least ``id`` and ``name``
        """
        response = self._request(
            "GET",
            f"indicatorGroups/{indicator_group}/indicators.json",
            params={"fields": INDICATOR_FIELDS, "paging": "false"},
        )
        indicators = self._json(response).get("indicators", [])
        logger.info(
            f"Indicator group {indicator_group} has {len(indicators)} indicator(s)"
        )
        return indicators

    def get_analytics(self, indicator: str, period: str, level: int) -> dict[str, Any]:
        """Fetch the analytics slice for one indicator, period and org unit level."""
        params = [
            ("dimension", f"dx:{indicator}"),
            ("dimension", f"pe:{period}"),
            ("dimension", f"ou:LEVEL-{level}"),
        ]
        response = self._request("GET", "analytics.json", params=params)
        return self._json(response)
