"""
Deletion of legacy-named objects after a successful rename and redeploy.

Every delete tolerates not-found so an interrupted cleanup can simply be
run again.  Any other failure aborts the run before the upgrade marker is
cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..client import KubeClient, NotFoundError
from ..models import (
    FRIENDLY_KIND_NAMES,
    LEGACY_CONSOLE_ROUTE,
    LEGACY_CONTROLLER_ROLE,
    LEGACY_CONTROLLER_ROLE_BINDING,
    LEGACY_CONTROLLER_SERVICE,
    LEGACY_CONTROLLER_SERVICE_ACCOUNT,
    LEGACY_LOCAL_CA_SECRET,
    LEGACY_LOCAL_CLIENT_SECRET,
    LEGACY_LOCAL_SERVER_SECRET,
    LEGACY_LOCAL_TRANSPORT_SERVICE,
    LEGACY_SITE_CA_SECRET,
    LEGACY_SITE_SERVER_SECRET,
    LEGACY_TRANSPORT_ROLE,
    LEGACY_TRANSPORT_ROLE_BINDING,
    LEGACY_TRANSPORT_SERVICE,
    LEGACY_TRANSPORT_SERVICE_ACCOUNT,
    ExposureTopology,
    ResourceKind,
)

__all__ = ["CleanupReport", "cleanup_legacy_objects", "legacy_objects"]

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    deleted: list[str] = field(default_factory=list)
    absent: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)


def legacy_objects(topology: ExposureTopology, routes_supported: bool) -> tuple[
    list[tuple[ResourceKind, str]],  # to delete, in order
    list[tuple[ResourceKind, str]],  # retained
]:
    """Split the legacy objects into those to delete and those to keep.

    When the transport is exposed through routes, linking tokens issued
    before the rename reference the legacy transport service by name, so
    that service has to stay.
    """
    delete: list[tuple[ResourceKind, str]] = []
    retained: list[tuple[ResourceKind, str]] = []

    if routes_supported:
        delete.append((ResourceKind.ROUTE, LEGACY_CONSOLE_ROUTE))

    delete.append((ResourceKind.SERVICE, LEGACY_LOCAL_TRANSPORT_SERVICE))
    delete.append((ResourceKind.SERVICE, LEGACY_CONTROLLER_SERVICE))
    if topology.routes_in_use:
        retained.append((ResourceKind.SERVICE, LEGACY_TRANSPORT_SERVICE))
    else:
        delete.append((ResourceKind.SERVICE, LEGACY_TRANSPORT_SERVICE))

    for name in (
        LEGACY_LOCAL_CLIENT_SECRET,
        LEGACY_LOCAL_SERVER_SECRET,
        LEGACY_SITE_SERVER_SECRET,
    ):
        delete.append((ResourceKind.CREDENTIAL, name))
    for name in (LEGACY_LOCAL_CA_SECRET, LEGACY_SITE_CA_SECRET):
        delete.append((ResourceKind.CERTIFICATE_AUTHORITY, name))

    for name in (LEGACY_CONTROLLER_ROLE_BINDING, LEGACY_TRANSPORT_ROLE_BINDING):
        delete.append((ResourceKind.ROLE_BINDING, name))
    for name in (LEGACY_TRANSPORT_SERVICE_ACCOUNT, LEGACY_CONTROLLER_SERVICE_ACCOUNT):
        delete.append((ResourceKind.SERVICE_ACCOUNT, name))
    for name in (LEGACY_CONTROLLER_ROLE, LEGACY_TRANSPORT_ROLE):
        delete.append((ResourceKind.ROLE, name))

    return delete, retained


def cleanup_legacy_objects(client: KubeClient, topology: ExposureTopology) -> CleanupReport:
    report = CleanupReport()
    to_delete, retained = legacy_objects(topology, client.supports(ResourceKind.ROUTE))

    for kind, name in to_delete:
        label = f"{kind.collection}/{name}"
        try:
            client.delete(kind, name)
        except NotFoundError:
            logger.debug("  %s '%s' already deleted", FRIENDLY_KIND_NAMES[kind], name)
            report.absent.append(label)
            continue
        logger.info("  %s '%s' deleted", FRIENDLY_KIND_NAMES[kind], name)
        report.deleted.append(label)

    for kind, name in retained:
        logger.info(
            "  %s '%s' retained, referenced by previously issued link tokens",
            FRIENDLY_KIND_NAMES[kind], name,
        )
        report.retained.append(f"{kind.collection}/{name}")

    return report
