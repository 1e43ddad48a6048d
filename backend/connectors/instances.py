"""Static registry of source and target instances.

Loads DHIS2 and ALMA connection settings from a JSON or YAML file once
at startup. The registry is read-only afterwards.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from errors import ConfigurationError

logger = logging.getLogger(__name__)

DHIS2_SECTION = "dhis2-instances"
ALMA_SECTION = "alma-instances"


class DHIS2Instance(BaseModel):
    """Connection settings for a DHIS2 source."""

    name: str
    url: str
    username: str
    password: str = Field(..., exclude=True, repr=False)


class ALMAInstance(BaseModel):
    """Connection settings for an ALMA target."""

    name: str
    url: str
    username: str
    password: str = Field(..., exclude=True, repr=False)
    backend: str


class InstanceRegistry:
    """Lookup of configured instances by name."""

    def __init__(
        self,
        dhis2: dict[str, DHIS2Instance] | None = None,
        alma: dict[str, ALMAInstance] | None = None,
    ) -> None:
        self._dhis2 = dict(dhis2 or {})
        self._alma = dict(alma or {})

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> InstanceRegistry:
        """Build a registry from the parsed configuration file.

        Raises:
            ConfigurationError: If an instance entry is malformed
        """
        try:
            dhis2 = {
                name: DHIS2Instance(name=name, **settings)
                for name, settings in (config.get(DHIS2_SECTION) or {}).items()
            }
            alma = {
                name: ALMAInstance(name=name, **settings)
                for name, settings in (config.get(ALMA_SECTION) or {}).items()
            }
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid instance configuration: {e}") from e
        return cls(dhis2=dhis2, alma=alma)

    def get_dhis2(self, name: str) -> DHIS2Instance:
        """Get a DHIS2 instance by name.

        Raises:
            ConfigurationError: If no instance has that name
        """
        instance = self._dhis2.get(name)
        if instance is None:
            raise ConfigurationError(f"DHIS2 instance '{name}' is not configured")
        return instance

    def get_alma(self, name: str) -> ALMAInstance:
        """Get an ALMA instance by name.

        Raises:
            ConfigurationError: If no instance has that name
        """
        instance = self._alma.get(name)
        if instance is None:
            raise ConfigurationError(f"ALMA instance '{name}' is not configured")
        return instance

    def dhis2_names(self) -> list[str]:
        return sorted(self._dhis2)

    def alma_names(self) -> list[str]:
        return sorted(self._alma)

    def to_dict(self) -> dict[str, Any]:
        """Instance listing without credentials."""
        return {
            DHIS2_SECTION: [i.model_dump() for _, i in sorted(self._dhis2.items())],
            ALMA_SECTION: [i.model_dump() for _, i in sorted(self._alma.items())],
        }


def load_instance_registry(file_path: str | Path) -> InstanceRegistry:
    """Load the instance registry from a JSON or YAML file.

    A missing file yields an empty registry.

    Raises:
        ConfigurationError: If the file cannot be parsed
    """
    path = Path(file_path)

    if not path.exists():
        logger.warning(f"Instance configuration not found: {path}; no instances loaded")
        return InstanceRegistry()

    suffix = path.suffix.lower()
    try:
        with open(path, encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                config = yaml.safe_load(f) or {}
            elif suffix == ".json":
                config = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config format: {suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Instance configuration in {path} must be a mapping")

    registry = InstanceRegistry.from_dict(config)
    logger.info(
        f"Loaded {len(registry.dhis2_names())} DHIS2 and "
        f"{len(registry.alma_names())} ALMA instance(s) from {path}"
    )
    return registry
