"""
Persisted marker recording that an upgrade started and from which version.

The marker is a config map owned by the same object as the transport
config map.  Its existence is the only cross-invocation state: it is
created before the first mutating step of a rename migration and removed
once every phase has completed.
"""

from __future__ import annotations

import logging

from ..client import KubeClient, NotFoundError
from ..models import UPDATE_STATE_CONFIG_MAP_NAME, ResourceKind, UpgradeStatus

__all__ = ["UpgradeStateTracker"]

logger = logging.getLogger(__name__)


class UpgradeStateTracker:
    def __init__(self, client: KubeClient, name: str = UPDATE_STATE_CONFIG_MAP_NAME):
        self.client = client
        self.name = name

    def start(self, from_version: str, owner_references: list[dict] | None = None) -> None:
        """Create the marker.

        Raises ``AlreadyExistsError`` if one is present; callers check
        ``status()`` first.
        """
        marker = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": self.name,
                "ownerReferences": list(owner_references or []),
            },
            "data": {"from": from_version},
        }
        self.client.create(ResourceKind.CONFIG_MAP, marker)
        logger.info("Upgrade marker '%s' created (from %s)", self.name, from_version)

    def finish(self) -> None:
        try:
            self.client.delete(ResourceKind.CONFIG_MAP, self.name)
        except NotFoundError:
            logger.debug("Upgrade marker '%s' already gone", self.name)
            return
        logger.info("Upgrade marker '%s' removed", self.name)

    def status(self) -> UpgradeStatus:
        try:
            marker = self.client.get(ResourceKind.CONFIG_MAP, self.name)
        except NotFoundError:
            return UpgradeStatus(in_progress=False)
        original = (marker.get("data") or {}).get("from", "")
        return UpgradeStatus(in_progress=True, original_version=original)
