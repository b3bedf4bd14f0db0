"""
Resolution of externally reachable hosts for load-balanced services.

Cloud load balancers are assigned their external address asynchronously,
so resolution is a bounded poll: a fixed number of attempts at a fixed
interval, no backoff growth and no parallelism.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from typing import Callable, TypeVar

from ..client import KubeClient
from ..models import ResourceKind

__all__ = [
    "DEFAULT_ATTEMPTS",
    "DEFAULT_INTERVAL",
    "is_ip_address",
    "load_balancer_host",
    "poll",
    "qualified_service_name",
    "resolve_service_host",
    "uses_load_balancer",
]

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 120
DEFAULT_INTERVAL = 1.0

T = TypeVar("T")


def poll(
    fetch: Callable[[], T],
    attempts: int = DEFAULT_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> T | None:
    """Call *fetch* until it returns a truthy value or *attempts* run out.

    Sleeps *interval* seconds between attempts, never before the first.
    Exceptions raised by *fetch* propagate immediately.  Returns the last
    (falsy) result, or None when *attempts* is zero.
    """
    result: T | None = None
    for attempt in range(attempts):
        if attempt > 0:
            sleep(interval)
        result = fetch()
        if result:
            return result
    return result


def load_balancer_host(service: dict) -> str:
    """First assigned ingress hostname or IP of a service, or ""."""
    ingress = ((service.get("status") or {}).get("loadBalancer") or {}).get("ingress") or []
    if not ingress:
        return ""
    first = ingress[0] or {}
    return first.get("hostname") or first.get("ip") or ""


def uses_load_balancer(service: dict) -> bool:
    return (service.get("spec") or {}).get("type") == "LoadBalancer"


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def qualified_service_name(name: str, namespace: str) -> str:
    return f"{name}.{namespace}.svc.cluster.local"


def resolve_service_host(
    client: KubeClient,
    name: str,
    attempts: int = DEFAULT_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Wait for service *name* to be assigned an external host or IP.

    Returns "" if nothing was assigned within the wait window.  Errors
    reading the service propagate; callers decide whether they are fatal.
    """
    def fetch() -> str:
        return load_balancer_host(client.get(ResourceKind.SERVICE, name))

    host = poll(fetch, attempts=attempts, interval=interval, sleep=sleep) or ""
    if host:
        logger.debug("Service '%s' resolved to %s", name, host)
    else:
        logger.info(
            "Service '%s' has no external address after %d attempt(s)", name, attempts
        )
    return host
