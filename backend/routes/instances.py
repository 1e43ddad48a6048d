"""Configured instance listing. Credentials are never returned."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api", tags=["instances"])


@router.get("/instances")
def list_instances(request: Request) -> dict[str, Any]:
    """DHIS2 and ALMA instances available to schedules."""
    return request.app.state.registry.to_dict()
