"""Upgrade orchestration: version check, rename migration, workload
redeploy and legacy cleanup."""

from .errors import SiteNewerThanClientError, UpgradeError, WorkloadError
from .orchestrator import UpgradeOrchestrator

__all__ = [
    "SiteNewerThanClientError",
    "UpgradeError",
    "UpgradeOrchestrator",
    "WorkloadError",
]
