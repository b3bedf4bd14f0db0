"""
Day-two maintenance of a running site's router.

These operate on a site that is already at the current naming scheme and
are independent of the upgrade run: restarting the transport, toggling the
router debug mode, pushing pod annotations and adjusting router logging.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ..client import KubeClient
from ..models import (
    CONTROLLER_DEPLOYMENT_NAME,
    TRANSPORT_CONFIG_MAP_NAME,
    TRANSPORT_DEPLOYMENT_NAME,
    TRANSPORT_PROMETHEUS_ANNOTATIONS,
    ResourceKind,
)
from ..site_config import RouterConfig
from .errors import WorkloadError
from .workloads import local_now, touch

__all__ = [
    "DEBUG_MODE_ENV",
    "restart_transport",
    "update_annotations",
    "update_debug_mode",
    "update_router_logging",
]

logger = logging.getLogger(__name__)

DEBUG_MODE_ENV = "QDROUTERD_DEBUG"


def restart_transport(client: KubeClient, now: datetime | None = None) -> None:
    """Roll the transport deployment without changing its definition."""
    router = client.get(ResourceKind.DEPLOYMENT, TRANSPORT_DEPLOYMENT_NAME)
    touch(router, now or local_now())
    client.update(ResourceKind.DEPLOYMENT, router)
    logger.info("Transport '%s' restarted", TRANSPORT_DEPLOYMENT_NAME)


def _router_container(deployment: dict) -> dict:
    containers = (
        ((deployment.get("spec") or {}).get("template") or {}).get("spec") or {}
    ).get("containers") or []
    if not containers:
        raise WorkloadError(f"Deployment '{TRANSPORT_DEPLOYMENT_NAME}' has no containers")
    return containers[0]


def update_debug_mode(client: KubeClient, mode: str) -> bool:
    """Set ``QDROUTERD_DEBUG`` on the router container, or remove it when *mode* is empty.

    Returns True if the deployment was updated.
    """
    router = client.get(ResourceKind.DEPLOYMENT, TRANSPORT_DEPLOYMENT_NAME)
    container = _router_container(router)
    env = container.get("env") or []
    current = next((e.get("value", "") for e in env if e.get("name") == DEBUG_MODE_ENV), "")
    if current == mode:
        return False
    env = [e for e in env if e.get("name") != DEBUG_MODE_ENV]
    if mode:
        env.append({"name": DEBUG_MODE_ENV, "value": mode})
    container["env"] = env
    client.update(ResourceKind.DEPLOYMENT, router)
    logger.info("Router debug mode set to %r", mode)
    return True


def _update_pod_annotations(client: KubeClient, name: str, annotations: dict[str, str]) -> bool:
    deployment = client.get(ResourceKind.DEPLOYMENT, name)
    metadata = deployment.setdefault("spec", {}).setdefault("template", {}).setdefault("metadata", {})
    if (metadata.get("annotations") or {}) == annotations:
        return False
    metadata["annotations"] = dict(annotations)
    client.update(ResourceKind.DEPLOYMENT, deployment)
    logger.info("Pod annotations of '%s' replaced", name)
    return True


def update_annotations(client: KubeClient, annotations: dict[str, str]) -> bool:
    """Replace the pod annotations of both deployments.

    The transport keeps its Prometheus scrape annotations unless
    *annotations* overrides them.  Returns True if either deployment changed.
    """
    controller_changed = _update_pod_annotations(client, CONTROLLER_DEPLOYMENT_NAME, annotations)
    transport_changed = _update_pod_annotations(
        client,
        TRANSPORT_DEPLOYMENT_NAME,
        {**TRANSPORT_PROMETHEUS_ANNOTATIONS, **annotations},
    )
    return controller_changed or transport_changed


def update_router_logging(
    client: KubeClient,
    levels: dict[str, str],
    restart: bool = False,
    clock: Callable[[], datetime] = local_now,
) -> bool:
    """Apply per-module log levels to the router configuration.

    An empty level removes the module's entry.  With *restart* the transport
    is rolled so the router reads the new configuration.  Returns True if
    the configuration changed.
    """
    config_map = client.get(ResourceKind.CONFIG_MAP, TRANSPORT_CONFIG_MAP_NAME)
    router_config = RouterConfig.from_config_map(config_map)
    changed = False
    for module, enable in levels.items():
        if router_config.set_log_level(module, enable):
            changed = True
    if not changed:
        return False
    router_config.write_to_config_map(config_map)
    client.update(ResourceKind.CONFIG_MAP, config_map)
    logger.info("Router logging updated: %s", levels)
    if restart:
        restart_transport(client, clock())
    return True
