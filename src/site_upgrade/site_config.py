"""
Codec for the router configuration held in the transport config map.

The config map stores the router configuration under ``qdrouterd.json``
as a JSON list of ``[entity_type, attributes]`` pairs.  The ``router``
entity carries the site metadata as a JSON string in its ``metadata``
attribute::

    [
      ["router", {"id": "site-a", "mode": "interior",
                  "metadata": "{\\"id\\": \\"f1c...\\", \\"version\\": \\"0.4.2\\"}"}],
      ["log", {"module": "DEFAULT", "enable": "info+"}],
      ...
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .models import SiteMetadata

__all__ = ["ROUTER_CONFIG_KEY", "RouterConfig", "SiteConfigError"]

logger = logging.getLogger(__name__)

ROUTER_CONFIG_KEY = "qdrouterd.json"


class SiteConfigError(Exception):
    """Raised when the router configuration cannot be read."""


class RouterConfig:
    """Mutable view over the entity list of a router configuration."""

    def __init__(self, entities: list[list[Any]]):
        self.entities = entities

    @classmethod
    def from_config_map(cls, config_map: dict) -> "RouterConfig":
        name = (config_map.get("metadata") or {}).get("name", "?")
        raw = (config_map.get("data") or {}).get(ROUTER_CONFIG_KEY)
        if not raw:
            raise SiteConfigError(f"Config map '{name}' has no {ROUTER_CONFIG_KEY} entry")
        try:
            entities = json.loads(raw)
        except ValueError as exc:
            raise SiteConfigError(f"Invalid {ROUTER_CONFIG_KEY} in '{name}': {exc}") from exc
        if not isinstance(entities, list) or not all(
            isinstance(e, list) and len(e) == 2 and isinstance(e[1], dict) for e in entities
        ):
            raise SiteConfigError(
                f"Invalid {ROUTER_CONFIG_KEY} in '{name}': expected a list of [type, attributes] pairs"
            )
        return cls(entities)

    def write_to_config_map(self, config_map: dict) -> dict:
        """Serialise the entities back into *config_map* (in place)."""
        data = config_map.setdefault("data", {})
        data[ROUTER_CONFIG_KEY] = json.dumps(self.entities, indent=4)
        return config_map

    # ------------------------------------------------------------------
    # Router entity / site metadata
    # ------------------------------------------------------------------

    def _router(self) -> dict:
        for entity_type, attrs in self.entities:
            if entity_type == "router":
                return attrs
        raise SiteConfigError("Router configuration has no 'router' entity")

    def site_metadata(self) -> SiteMetadata:
        raw = self._router().get("metadata") or ""
        if not raw:
            return SiteMetadata()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise SiteConfigError(f"Invalid site metadata {raw!r}: {exc}") from exc
        if not isinstance(data, dict):
            raise SiteConfigError(f"Invalid site metadata {raw!r}: expected an object")
        return SiteMetadata(id=str(data.get("id", "")), version=str(data.get("version", "")))

    def set_site_metadata(self, metadata: SiteMetadata) -> None:
        self._router()["metadata"] = json.dumps({"id": metadata.id, "version": metadata.version})

    # ------------------------------------------------------------------
    # Log entities
    # ------------------------------------------------------------------

    def log_levels(self) -> dict[str, str]:
        """Map of log module -> enable expression."""
        return {
            attrs.get("module", ""): attrs.get("enable", "")
            for entity_type, attrs in self.entities
            if entity_type == "log"
        }

    def set_log_level(self, module: str, enable: str) -> bool:
        """Set the log level for *module*; returns True if anything changed.

        An empty *enable* removes the module's log entity.
        """
        for index, (entity_type, attrs) in enumerate(self.entities):
            if entity_type != "log" or attrs.get("module") != module:
                continue
            if not enable:
                del self.entities[index]
                return True
            if attrs.get("enable") == enable:
                return False
            attrs["enable"] = enable
            return True
        if not enable:
            return False
        self.entities.append(["log", {"module": module, "enable": enable}])
        return True
