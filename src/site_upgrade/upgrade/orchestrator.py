"""
Single-invocation upgrade of a site to the library's version.

A run walks these states, logging each one as it is entered:

  Idle
    -> VersionChecked        site metadata read and compared
    -> MigrationSkipped      nothing to rename
       | MigrationStarted    marker written (or found), rename required
    -> RenamedOrSkipped      rename engine done, or not needed
    -> WorkloadsUpdated      transport then controller
    -> CleanedUp             legacy objects deleted (rename runs only)
    -> Done                  marker cleared

Any error logs ``Failed`` and propagates.  The marker is left in place so
the next invocation resumes the rename with the original version.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from .. import __version__
from ..certs import CertificateAuthority
from ..client import KubeClient
from ..config import Settings
from ..models import (
    TRANSPORT_CONFIG_MAP_NAME,
    ExposureTopology,
    ResourceKind,
    SiteMetadata,
    UpgradePlan,
    UpgradeResult,
)
from ..site_config import RouterConfig
from ..versions import NAMING_THRESHOLD, equivalent, less_recent_than, more_recent_than
from .cleanup import cleanup_legacy_objects
from .errors import SiteNewerThanClientError, UpgradeError
from .rename import RenameMigrationEngine
from .state import UpgradeStateTracker
from .workloads import WorkloadUpdater, local_now

__all__ = ["SiteNewerThanClientError", "UpgradeError", "UpgradeOrchestrator"]

logger = logging.getLogger(__name__)


class UpgradeOrchestrator:
    """Runs one upgrade of the site the client's namespace holds."""

    def __init__(
        self,
        client: KubeClient,
        settings: Settings,
        ca_loader: Callable[[str], CertificateAuthority] | None = None,
        notify: Callable[[str], None] = print,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = local_now,
        version: str = __version__,
    ):
        self.client = client
        self.settings = settings
        self.ca_loader = ca_loader or self._load_ca
        self.notify = notify
        self.sleep = sleep
        self.clock = clock
        self.version = version
        self.tracker = UpgradeStateTracker(client)
        self.state = "Idle"

    def _load_ca(self, name: str) -> CertificateAuthority:
        return CertificateAuthority.from_secret(
            self.client.get(ResourceKind.CERTIFICATE_AUTHORITY, name)
        )

    def _enter(self, state: str) -> None:
        logger.info("Upgrade state: %s -> %s", self.state, state)
        self.state = state

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, force_restart: bool = False) -> UpgradePlan:
        """Check versions and decide what this run does.

        This is the only step that writes before the plan is fixed: the
        marker (when a rename starts) and the bumped site version.
        """
        config_map = self.client.get(ResourceKind.CONFIG_MAP, TRANSPORT_CONFIG_MAP_NAME)
        router_config = RouterConfig.from_config_map(config_map)
        site = router_config.site_metadata()

        if less_recent_than(self.version, site.version):
            raise SiteNewerThanClientError(site.version, self.version)
        self._enter("VersionChecked")
        logger.info("Site version %s, library version %s", site.version or "(unset)", self.version)

        status = self.tracker.status()
        in_progress = status.in_progress
        original_version = status.original_version if in_progress else site.version
        rename = False
        if in_progress:
            rename = less_recent_than(original_version, NAMING_THRESHOLD)
            logger.info("Resuming upgrade started from %s", original_version)

        update_site = False
        if more_recent_than(self.version, site.version) or equivalent(self.version, site.version):
            if not in_progress and less_recent_than(site.version, NAMING_THRESHOLD):
                rename = True
                owners = (config_map.get("metadata") or {}).get("ownerReferences") or []
                self.tracker.start(site.version, owners)
                in_progress = True
            router_config.set_site_metadata(SiteMetadata(id=site.id, version=self.version))
            router_config.write_to_config_map(config_map)
            self.client.update(ResourceKind.CONFIG_MAP, config_map)
            logger.info("Site version updated %s -> %s", site.version, self.version)
            update_site = True

        return UpgradePlan(
            rename=rename,
            update_site=update_site,
            in_progress=in_progress,
            original_version=original_version,
            force_restart=force_restart,
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, force_restart: bool = False) -> UpgradeResult:
        self.state = "Idle"
        try:
            return self._run(force_restart)
        except Exception:
            logger.error("Upgrade state: %s -> Failed", self.state)
            self.state = "Failed"
            raise

    def _run(self, force_restart: bool) -> UpgradeResult:
        plan = self.plan(force_restart)
        self._enter("MigrationStarted" if plan.rename else "MigrationSkipped")
        result = UpgradeResult(plan=plan)

        cfg = self.settings.upgrade
        topology = ExposureTopology()
        if plan.rename:
            config_map = self.client.get(ResourceKind.CONFIG_MAP, TRANSPORT_CONFIG_MAP_NAME)
            engine = RenameMigrationEngine(
                self.client,
                config_map,
                self.ca_loader,
                attempts=cfg.wait_attempts,
                interval=cfg.wait_interval,
                sleep=self.sleep,
            )
            topology = engine.run()
            result.migrated = list(engine.migrated)
            result.skipped = list(engine.skipped)
        result.topology = topology
        self._enter("RenamedOrSkipped")

        updater = WorkloadUpdater(
            self.client,
            self.settings.images,
            notify=self.notify,
            clock=self.clock,
            attempts=cfg.wait_attempts,
            interval=cfg.wait_interval,
            sleep=self.sleep,
        )
        result.transport_updated = updater.update_transport(plan, topology)
        result.controller_updated = updater.update_controller(plan, topology)
        self._enter("WorkloadsUpdated")

        if plan.rename:
            report = cleanup_legacy_objects(self.client, topology)
            result.deleted = list(report.deleted)
            result.retained = list(report.retained)
            self._enter("CleanedUp")

        if plan.in_progress:
            self.tracker.finish()
        self._enter("Done")
        return result
