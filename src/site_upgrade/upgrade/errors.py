"""Exceptions raised by the upgrade phases."""

from __future__ import annotations

__all__ = ["SiteNewerThanClientError", "UpgradeError", "WorkloadError"]


class UpgradeError(Exception):
    """Base class for upgrade failures that are not object-store errors."""


class SiteNewerThanClientError(UpgradeError):
    """The site was deployed by a newer release than this library."""

    def __init__(self, site_version: str, client_version: str):
        super().__init__(
            f"Site ({site_version}) is newer than library ({client_version}); cannot update"
        )
        self.site_version = site_version
        self.client_version = client_version


class WorkloadError(UpgradeError):
    """A workload definition cannot be patched."""
