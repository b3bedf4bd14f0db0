"""
Patching and redeploying the site's two workloads.

The transport (router) and controller deployments are only written when
something actually changed, or when a restart is forced.  A forced restart
without any other change writes a fresh timestamp into a pod template
annotation so the deployment controller rolls out a new revision.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from ..client import ApiError, KubeClient
from ..config import ImageConfig
from ..models import (
    CONTROLLER_DEPLOYMENT_NAME,
    CONTROLLER_SERVICE_ACCOUNT_NAME,
    CONTROLLER_SERVICE_NAME,
    LEGACY_CONSOLE_CERTS,
    LEGACY_LOCAL_CLIENT_SECRET,
    LEGACY_LOCAL_SERVER_SECRET,
    LEGACY_ROUTER_CONSOLE_CERTS,
    LEGACY_SITE_SERVER_SECRET,
    LOCAL_CLIENT_SECRET,
    LOCAL_SERVER_SECRET,
    OAUTH_CONSOLE_SECRET,
    OAUTH_ROUTER_CONSOLE_SECRET,
    SITE_SERVER_SECRET,
    TRANSPORT_DEPLOYMENT_NAME,
    TRANSPORT_SERVICE_ACCOUNT_NAME,
    UPDATED_ANNOTATION,
    ExposureTopology,
    ResourceKind,
    UpgradePlan,
)
from .errors import WorkloadError
from .exposure import DEFAULT_ATTEMPTS, DEFAULT_INTERVAL, resolve_service_host

__all__ = [
    "OAUTH_PROXY_CONTAINER",
    "WorkloadUpdater",
    "local_now",
    "rfc1123z",
    "touch",
    "update_oauth_proxy_service_account",
    "update_secret_volume",
]

logger = logging.getLogger(__name__)

OAUTH_PROXY_CONTAINER = "oauth-proxy"
_SERVICE_ACCOUNT_ARG = "--openshift-service-account"

CONSOLE_PORT = 8080
TOKENS_INVALIDATED_MESSAGE = "Sites previously linked to this one will require new tokens"


def local_now() -> datetime:
    return datetime.now().astimezone()


def rfc1123z(moment: datetime) -> str:
    """Format like ``Mon, 02 Jan 2006 15:04:05 -0700``."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.strftime("%a, %d %b %Y %H:%M:%S %z")


def _pod_spec(deployment: dict) -> dict:
    return (
        deployment.setdefault("spec", {})
        .setdefault("template", {})
        .setdefault("spec", {})
    )


def touch(deployment: dict, moment: datetime) -> None:
    """Force a new revision by stamping the pod template."""
    metadata = deployment.setdefault("spec", {}).setdefault("template", {}).setdefault("metadata", {})
    annotations = metadata.get("annotations") or {}
    annotations[UPDATED_ANNOTATION] = rfc1123z(moment)
    metadata["annotations"] = annotations


def update_secret_volume(pod_spec: dict, old: str, new: str) -> bool:
    """Point volumes backed by secret *old* at secret *new*.

    A volume named after the old secret is renamed too, along with every
    container mount that referenced it.
    """
    changed = False
    renamed_volumes: dict[str, str] = {}
    for volume in pod_spec.get("volumes") or []:
        secret = volume.get("secret")
        if not secret or secret.get("secretName") != old:
            continue
        secret["secretName"] = new
        changed = True
        if volume.get("name") == old:
            volume["name"] = new
            renamed_volumes[old] = new
    if renamed_volumes:
        for container in pod_spec.get("containers") or []:
            for mount in container.get("volumeMounts") or []:
                if mount.get("name") in renamed_volumes:
                    mount["name"] = renamed_volumes[mount["name"]]
    return changed


def update_oauth_proxy_service_account(pod_spec: dict, name: str) -> bool:
    """Rewrite the service account argument of the oauth-proxy sidecar."""
    containers = pod_spec.get("containers") or []
    if len(containers) < 2 or containers[1].get("name") != OAUTH_PROXY_CONTAINER:
        return False
    args = containers[1].get("args") or []
    changed = False
    for i, arg in enumerate(args):
        if arg.startswith(_SERVICE_ACCOUNT_ARG):
            wanted = f"{_SERVICE_ACCOUNT_ARG}={name}"
            if arg != wanted:
                args[i] = wanted
                changed = True
    return changed


def _repoint(deployment: dict, service_account: str, secrets: list[tuple[str, str]]) -> None:
    pod_spec = _pod_spec(deployment)
    pod_spec["serviceAccountName"] = service_account
    for old, new in secrets:
        update_secret_volume(pod_spec, old, new)
    update_oauth_proxy_service_account(pod_spec, service_account)


def _set_image(deployment: dict, image: str) -> bool:
    containers = _pod_spec(deployment).get("containers") or []
    if not containers:
        raise WorkloadError(
            f"Deployment '{(deployment.get('metadata') or {}).get('name', '?')}' has no containers"
        )
    if containers[0].get("image") == image:
        return False
    logger.info("  Image %s -> %s", containers[0].get("image"), image)
    containers[0]["image"] = image
    return True


class WorkloadUpdater:
    """Applies the rename and image changes to both deployments."""

    def __init__(
        self,
        client: KubeClient,
        images: ImageConfig,
        notify: Callable[[str], None] = print,
        clock: Callable[[], datetime] = local_now,
        attempts: int = DEFAULT_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.images = images
        self.notify = notify
        self.clock = clock
        self.attempts = attempts
        self.interval = interval
        self.sleep = sleep

    def _redeploy(self, deployment: dict, changed: bool) -> None:
        if not changed:
            touch(deployment, self.clock())
        self.client.update(ResourceKind.DEPLOYMENT, deployment)

    def update_transport(self, plan: UpgradePlan, topology: ExposureTopology) -> bool:
        router = self.client.get(ResourceKind.DEPLOYMENT, TRANSPORT_DEPLOYMENT_NAME)
        changed = False
        if plan.rename:
            _repoint(
                router,
                TRANSPORT_SERVICE_ACCOUNT_NAME,
                [
                    (LEGACY_LOCAL_SERVER_SECRET, LOCAL_SERVER_SECRET),
                    (LEGACY_SITE_SERVER_SECRET, SITE_SERVER_SECRET),
                    (LEGACY_ROUTER_CONSOLE_CERTS, OAUTH_ROUTER_CONSOLE_SECRET),
                ],
            )
            changed = True
        if _set_image(router, self.images.router):
            changed = True
        # A bumped site version is only picked up by the router on restart.
        if not (changed or plan.update_site or plan.force_restart):
            logger.info("Transport '%s' is up to date", TRANSPORT_DEPLOYMENT_NAME)
            return False
        self._redeploy(router, changed)
        logger.info("Transport '%s' redeployed", TRANSPORT_DEPLOYMENT_NAME)
        if topology.router_exposed_as_ip:
            self.notify(TOKENS_INVALIDATED_MESSAGE)
        return True

    def update_controller(self, plan: UpgradePlan, topology: ExposureTopology) -> bool:
        controller = self.client.get(ResourceKind.DEPLOYMENT, CONTROLLER_DEPLOYMENT_NAME)
        changed = False
        if plan.rename:
            _repoint(
                controller,
                CONTROLLER_SERVICE_ACCOUNT_NAME,
                [
                    (LEGACY_LOCAL_CLIENT_SECRET, LOCAL_CLIENT_SECRET),
                    (LEGACY_CONSOLE_CERTS, OAUTH_CONSOLE_SECRET),
                ],
            )
            changed = True
        if _set_image(controller, self.images.controller):
            changed = True
        if not (changed or plan.force_restart):
            logger.info("Controller '%s' is up to date", CONTROLLER_DEPLOYMENT_NAME)
            return False
        self._redeploy(controller, changed)
        logger.info("Controller '%s' redeployed", CONTROLLER_DEPLOYMENT_NAME)
        if topology.console_uses_load_balancer:
            self._announce_console()
        return True

    def _announce_console(self) -> None:
        try:
            host = resolve_service_host(
                self.client,
                CONTROLLER_SERVICE_NAME,
                attempts=self.attempts,
                interval=self.interval,
                sleep=self.sleep,
            )
        except ApiError as exc:
            logger.warning("Could not determine new console url: %s", exc)
            return
        if host:
            self.notify(f"Console is now at http://{host}:{CONSOLE_PORT}")
