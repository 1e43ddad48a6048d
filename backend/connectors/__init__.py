"""Clients for the external systems a sync talks to.

DHIS2 is the source of indicator analytics; ALMA is the scorecard
target. Instance credentials come from the static instance registry.
"""

from .alma import ALMAClient
from .base import BaseAPIClient
from .dhis2 import DHIS2Client
from .instances import (
    ALMAInstance,
    DHIS2Instance,
    InstanceRegistry,
    load_instance_registry,
)

__all__ = [
    "ALMAClient",
    "ALMAInstance",
    "BaseAPIClient",
    "DHIS2Client",
    "DHIS2Instance",
    "InstanceRegistry",
    "load_instance_registry",
]
